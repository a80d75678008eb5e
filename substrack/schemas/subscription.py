from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List
from uuid import UUID


class CreateCheckoutRequest(BaseModel):
    price_id: str = Field(..., min_length=1, description="Stripe price id of the plan")
    customer_email: EmailStr
    customer_name: str = Field(..., min_length=1)
    plan_id: UUID
    merchant_id: UUID
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None

class CheckoutResponse(BaseModel):
    url: str
    session_id: str


class TokenExchangeRequest(BaseModel):
    session_id: str = Field(..., min_length=1)

class SubscriberSummary(BaseModel):
    """Redacted subscriber view handed to the merchant's site"""
    email: Optional[str] = None
    name: Optional[str] = None
    plan: Optional[str] = None
    features: List[str] = []
    status: Optional[str] = None

class TokenExchangeResponse(BaseModel):
    token: str
    subscriber: SubscriberSummary


class TokenGenerateRequest(BaseModel):
    subscriber_id: UUID


class TokenVerifyRequest(BaseModel):
    token: str = Field(..., min_length=1)
    feature: Optional[str] = None

class TokenVerifyResponse(BaseModel):
    valid: bool
    has_subscription: bool = False
    has_feature: Optional[bool] = None
    subscriber: Optional[SubscriberSummary] = None
    error: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
