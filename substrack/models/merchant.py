from sqlalchemy import Column, String, Text, Uuid
from .base import Base, TimestampMixin


class Merchant(Base, TimestampMixin):
    """Tenant account. The id is the merchant's Supabase Auth user id."""
    __tablename__ = "merchants"

    id = Column(Uuid, primary_key=True, index=True)
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    business_name = Column(String(255), nullable=True)
    gst_number = Column(String(50), nullable=True)  # Tax id printed on invoices
    address = Column(Text, nullable=True)
    phone = Column(String(50), nullable=True)
    logo_url = Column(String(1024), nullable=True)
    redirect_url = Column(String(1024), nullable=True)

    # Merchant's own Stripe account credentials
    stripe_secret_key = Column(String(255), nullable=True)
    stripe_publishable_key = Column(String(255), nullable=True)
    stripe_webhook_secret = Column(String(255), nullable=True)

    @property
    def display_name(self) -> str:
        return self.business_name or self.full_name or self.email
