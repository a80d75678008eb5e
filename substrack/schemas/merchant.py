from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime
from uuid import UUID
import re

SECRET_KEY_PATTERN = re.compile(r"^(sk|rk)_(test|live)_[A-Za-z0-9]{8,}$")
PUBLISHABLE_KEY_PATTERN = re.compile(r"^pk_(test|live)_[A-Za-z0-9]{8,}$")
WEBHOOK_SECRET_PATTERN = re.compile(r"^whsec_[A-Za-z0-9+/=]{8,}$")


class MerchantProfileUpdate(BaseModel):
    email: Optional[EmailStr] = None
    full_name: Optional[str] = Field(None, max_length=255)
    business_name: Optional[str] = Field(None, max_length=255)
    gst_number: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    logo_url: Optional[str] = Field(None, max_length=1024)
    redirect_url: Optional[str] = Field(None, max_length=1024)


class StripeKeysUpdate(BaseModel):
    """Stripe credentials. Malformed keys are rejected, never trimmed or coerced."""
    stripe_secret_key: Optional[str] = None
    stripe_publishable_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None

    @field_validator("stripe_secret_key")
    @classmethod
    def check_secret_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not SECRET_KEY_PATTERN.match(v):
            raise ValueError("Secret key must start with sk_test_, sk_live_, rk_test_ or rk_live_")
        return v

    @field_validator("stripe_publishable_key")
    @classmethod
    def check_publishable_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not PUBLISHABLE_KEY_PATTERN.match(v):
            raise ValueError("Publishable key must start with pk_test_ or pk_live_")
        return v

    @field_validator("stripe_webhook_secret")
    @classmethod
    def check_webhook_secret(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not WEBHOOK_SECRET_PATTERN.match(v):
            raise ValueError("Webhook signing secret must start with whsec_")
        return v


class MerchantResponse(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    business_name: Optional[str] = None
    gst_number: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    logo_url: Optional[str] = None
    redirect_url: Optional[str] = None
    stripe_publishable_key: Optional[str] = None
    has_stripe_secret_key: bool = False
    has_webhook_secret: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_merchant(cls, merchant) -> "MerchantResponse":
        return cls(
            id=merchant.id,
            email=merchant.email,
            full_name=merchant.full_name,
            business_name=merchant.business_name,
            gst_number=merchant.gst_number,
            address=merchant.address,
            phone=merchant.phone,
            logo_url=merchant.logo_url,
            redirect_url=merchant.redirect_url,
            stripe_publishable_key=merchant.stripe_publishable_key,
            has_stripe_secret_key=bool(merchant.stripe_secret_key),
            has_webhook_secret=bool(merchant.stripe_webhook_secret),
            created_at=merchant.created_at,
            updated_at=merchant.updated_at,
        )
