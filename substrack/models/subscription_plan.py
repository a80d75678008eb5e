from sqlalchemy import Column, String, Integer, Text, Boolean, Numeric, JSON, ForeignKey, Uuid, Enum as SQLEnum
import uuid
import enum
from .base import Base, TimestampMixin


class BillingCycle(str, enum.Enum):
    """Recurrence interval of a plan"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class SubscriptionPlan(Base, TimestampMixin):
    """A merchant's sellable plan, mirrored as a Stripe product + recurring price"""
    __tablename__ = "subscription_plans"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    merchant_id = Column(Uuid, ForeignKey("merchants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    billing_cycle = Column(SQLEnum(BillingCycle), nullable=False, default=BillingCycle.MONTHLY)
    features = Column(JSON, nullable=False, default=list)  # Ordered feature names
    is_active = Column(Boolean, default=True, nullable=False)

    stripe_product_id = Column(String(255), nullable=True)
    stripe_price_id = Column(String(255), nullable=True)

    # Denormalized count of active subscribers, adjusted atomically on create/delete transitions
    subscriber_count = Column(Integer, default=0, nullable=False)
