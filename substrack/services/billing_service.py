from decimal import Decimal
from datetime import timedelta
from typing import Dict
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func

from substrack.crud.payment_transaction import payment_transaction_crud
from substrack.crud.subscriber import subscriber_crud
from substrack.models.subscriber import Subscriber, SubscriberStatus
from substrack.models.subscription_plan import SubscriptionPlan, BillingCycle
from substrack.schemas.billing import DashboardStatsResponse
from substrack.utils.utils import utcnow

# Multiplier turning one cycle's price into a monthly amount
MONTHLY_FACTORS: Dict[BillingCycle, Decimal] = {
    BillingCycle.DAILY: Decimal(30),
    BillingCycle.WEEKLY: Decimal(52) / Decimal(12),
    BillingCycle.MONTHLY: Decimal(1),
    BillingCycle.QUARTERLY: Decimal(1) / Decimal(3),
    BillingCycle.YEARLY: Decimal(1) / Decimal(12),
}

UPCOMING_RENEWAL_WINDOW = timedelta(days=7)


class BillingService:
    """Merchant-level aggregates for the dashboard"""

    @staticmethod
    def monthly_amount(price: Decimal, billing_cycle: BillingCycle) -> Decimal:
        return Decimal(price) * MONTHLY_FACTORS[billing_cycle]

    async def get_dashboard_stats(self, db: AsyncSession, merchant_id: UUID) -> DashboardStatsResponse:
        active_filter = and_(
            Subscriber.merchant_id == merchant_id,
            Subscriber.status == SubscriberStatus.ACTIVE,
            Subscriber.is_deleted == False
        )

        # Active subscribers per plan price/cycle
        result = await db.execute(
            select(SubscriptionPlan.price, SubscriptionPlan.billing_cycle, func.count(Subscriber.id))
            .join(SubscriptionPlan, Subscriber.plan_id == SubscriptionPlan.id)
            .where(active_filter)
            .group_by(SubscriptionPlan.id, SubscriptionPlan.price, SubscriptionPlan.billing_cycle)
        )
        mrr = Decimal(0)
        active = 0
        for price, cycle, count in result.all():
            active += count
            mrr += self.monthly_amount(price, cycle) * count
        mrr = mrr.quantize(Decimal("0.01"))

        now = utcnow()
        upcoming = await db.execute(
            select(func.count(Subscriber.id)).where(
                and_(
                    active_filter,
                    Subscriber.next_renewal_date >= now,
                    Subscriber.next_renewal_date <= now + UPCOMING_RENEWAL_WINDOW
                )
            )
        )

        return DashboardStatsResponse(
            active_subscribers=active,
            total_subscribers=await subscriber_crud.count(db, filters={"merchant_id": merchant_id}),
            mrr=mrr,
            arr=(mrr * 12).quantize(Decimal("0.01")),
            upcoming_renewals=upcoming.scalar() or 0,
            total_revenue=await payment_transaction_crud.total_revenue(db, merchant_id),
        )


# Create singleton instance
billing_service = BillingService()
