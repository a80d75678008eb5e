from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, Uuid, Enum as SQLEnum
import uuid
import enum
from .base import Base, TimestampMixin


class SubscriberStatus(str, enum.Enum):
    """Subscriber lifecycle status"""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Subscriber(Base, TimestampMixin):
    """A customer's subscription to one merchant plan. Never hard-deleted."""
    __tablename__ = "subscribers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    merchant_id = Column(Uuid, ForeignKey("merchants.id"), nullable=False, index=True)
    plan_id = Column(Uuid, ForeignKey("subscription_plans.id"), nullable=False, index=True)
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=False)
    status = Column(SQLEnum(SubscriberStatus), default=SubscriberStatus.ACTIVE, nullable=False)

    # Stripe join keys
    stripe_subscription_id = Column(String(255), nullable=True, unique=True, index=True)
    stripe_customer_id = Column(String(255), nullable=True)

    start_date = Column(DateTime, nullable=True)
    next_renewal_date = Column(DateTime, nullable=True)
    last_payment_date = Column(DateTime, nullable=True)
    last_payment_amount = Column(Numeric(10, 2), nullable=True)
