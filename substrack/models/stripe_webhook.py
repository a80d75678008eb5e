from sqlalchemy import Column, String, DateTime, Uuid
import uuid
from .base import Base, TimestampMixin


class StripeWebhook(Base, TimestampMixin):
    __tablename__ = "stripe_webhooks"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    # Stripe event id for idempotency
    event_id = Column(String(255), nullable=False, unique=True, index=True)

    merchant_id = Column(Uuid, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)

    # Audit of webhook handling
    action = Column(String(100), nullable=True)  # transition name from the processor
    object_id = Column(String(255), nullable=True, index=True)  # Stripe object the event was about
    webhook_timestamp = Column(DateTime, nullable=True)  # when processed locally
