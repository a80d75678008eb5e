from typing import Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_

from substrack.crud.base import CRUDBase
from substrack.models.subscriber import Subscriber
from substrack.schemas.billing import SubscriberCreate
from pydantic import BaseModel


class CRUDSubscriber(CRUDBase[Subscriber, SubscriberCreate, BaseModel]):
    async def get_by_stripe_subscription_id(
        self,
        db: AsyncSession,
        stripe_subscription_id: str
    ) -> Optional[Subscriber]:
        """Join key between Stripe events and stored subscribers"""
        if not stripe_subscription_id:
            return None
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.stripe_subscription_id == stripe_subscription_id,
                    self.model.is_deleted == False
                )
            )
        )
        return result.scalar_one_or_none()

    async def get_for_merchant(self, db: AsyncSession, subscriber_id: UUID, merchant_id: UUID) -> Optional[Subscriber]:
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.id == subscriber_id,
                    self.model.merchant_id == merchant_id,
                    self.model.is_deleted == False
                )
            )
        )
        return result.scalar_one_or_none()


subscriber_crud = CRUDSubscriber(Subscriber)
