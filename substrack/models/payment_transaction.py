from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, Uuid, Enum as SQLEnum
import uuid
import enum
from .base import Base, TimestampMixin


class PaymentStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


class PaymentTransaction(Base, TimestampMixin):
    """Append-only payment log, one row per Stripe payment reference"""
    __tablename__ = "payment_transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    merchant_id = Column(Uuid, ForeignKey("merchants.id"), nullable=False, index=True)
    subscriber_id = Column(Uuid, ForeignKey("subscribers.id"), nullable=False, index=True)
    plan_id = Column(Uuid, ForeignKey("subscription_plans.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(SQLEnum(PaymentStatus), nullable=False)
    # Dedup key for payment recording
    stripe_payment_id = Column(String(255), nullable=True, unique=True, index=True)
    payment_date = Column(DateTime, nullable=False)
