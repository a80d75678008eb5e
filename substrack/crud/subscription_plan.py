from typing import Optional, List
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, update, func

from substrack.crud.base import CRUDBase
from substrack.models.subscription_plan import SubscriptionPlan
from substrack.models.subscriber import Subscriber, SubscriberStatus
from substrack.schemas.billing import SubscriptionPlanCreate, SubscriptionPlanUpdate


class CRUDSubscriptionPlan(CRUDBase[SubscriptionPlan, SubscriptionPlanCreate, SubscriptionPlanUpdate]):
    async def get_for_merchant(
        self,
        db: AsyncSession,
        plan_id: UUID,
        merchant_id: UUID
    ) -> Optional[SubscriptionPlan]:
        """Get a plan only if it belongs to the merchant"""
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.id == plan_id,
                    self.model.merchant_id == merchant_id,
                    self.model.is_deleted == False
                )
            )
        )
        return result.scalar_one_or_none()

    async def increment_subscriber_count(self, db: AsyncSession, plan_id: UUID) -> bool:
        """Store-side atomic +1. Caller commits."""
        result = await db.execute(
            update(self.model)
            .where(self.model.id == plan_id)
            .values(subscriber_count=self.model.subscriber_count + 1)
        )
        return result.rowcount > 0

    async def decrement_subscriber_count(self, db: AsyncSession, plan_id: UUID) -> bool:
        """Store-side atomic -1, floored at zero. Caller commits."""
        result = await db.execute(
            update(self.model)
            .where(and_(self.model.id == plan_id, self.model.subscriber_count > 0))
            .values(subscriber_count=self.model.subscriber_count - 1)
        )
        return result.rowcount > 0

    async def reconcile_subscriber_counts(self, db: AsyncSession, merchant_id: Optional[UUID] = None) -> int:
        """
        Recompute subscriber_count from active subscriber rows.
        Returns the number of plans that were corrected.
        """
        active_counts = (
            select(Subscriber.plan_id, func.count(Subscriber.id).label("active"))
            .where(
                and_(
                    Subscriber.status == SubscriberStatus.ACTIVE,
                    Subscriber.is_deleted == False
                )
            )
            .group_by(Subscriber.plan_id)
        )
        if merchant_id is not None:
            active_counts = active_counts.where(Subscriber.merchant_id == merchant_id)
        counts = {row.plan_id: row.active for row in (await db.execute(active_counts)).all()}

        query = select(self.model).where(self.model.is_deleted == False)
        if merchant_id is not None:
            query = query.where(self.model.merchant_id == merchant_id)
        plans: List[SubscriptionPlan] = (await db.execute(query)).scalars().all()

        corrected = 0
        for plan in plans:
            expected = counts.get(plan.id, 0)
            if plan.subscriber_count != expected:
                plan.subscriber_count = expected
                corrected += 1
        await db.commit()
        return corrected


subscription_plan_crud = CRUDSubscriptionPlan(SubscriptionPlan)
