from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from typing import Optional
from uuid import UUID
from datetime import datetime

from substrack.crud.base import CRUDBase
from substrack.models.stripe_webhook import StripeWebhook
from pydantic import BaseModel


class StripeWebhookCreate(BaseModel):
    event_id: str
    merchant_id: UUID
    event_type: str
    action: Optional[str] = None
    object_id: Optional[str] = None
    webhook_timestamp: Optional[datetime] = None


class CRUDStripeWebhook(CRUDBase[StripeWebhook, StripeWebhookCreate, BaseModel]):
    async def get_by_event_id(self, db: AsyncSession, event_id: str) -> Optional[StripeWebhook]:
        result = await db.execute(
            select(self.model).where(and_(self.model.event_id == event_id, self.model.is_deleted == False))
        )
        return result.scalar_one_or_none()

    async def transition_applied(self, db: AsyncSession, merchant_id: UUID, object_id: str, action: str) -> bool:
        """Whether an earlier event already applied this transition to the Stripe object"""
        if not object_id:
            return False
        result = await db.execute(
            select(self.model.id).where(
                and_(
                    self.model.merchant_id == merchant_id,
                    self.model.object_id == object_id,
                    self.model.action == action,
                    self.model.is_deleted == False
                )
            ).limit(1)
        )
        return result.first() is not None


stripe_webhook_crud = CRUDStripeWebhook(StripeWebhook)
