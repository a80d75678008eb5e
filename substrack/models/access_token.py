from sqlalchemy import Column, String, Text, DateTime, Boolean, ForeignKey, Uuid
import uuid
from .base import Base, TimestampMixin


class AccessToken(Base, TimestampMixin):
    """One-time exchange record binding a signed subscriber token to a checkout session"""
    __tablename__ = "access_tokens"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    merchant_id = Column(Uuid, ForeignKey("merchants.id"), nullable=False, index=True)
    subscriber_id = Column(Uuid, ForeignKey("subscribers.id"), nullable=False, index=True)
    token = Column(Text, nullable=False)
    stripe_session_id = Column(String(255), nullable=True, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)
    used = Column(Boolean, default=False, nullable=False)
