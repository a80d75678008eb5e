from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from substrack.models.subscription_plan import BillingCycle
from substrack.models.subscriber import SubscriberStatus
from substrack.models.payment_transaction import PaymentStatus


# Subscription Plan Schemas
class SubscriptionPlanBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Plan name shown to customers")
    description: Optional[str] = Field(None, description="Plan description")
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, description="Price per billing cycle")
    currency: str = Field("USD", min_length=3, max_length=3, description="ISO 4217 currency code")
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    features: List[str] = Field(default_factory=list, description="Ordered feature names")

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        if not v.isalpha():
            raise ValueError("Currency must be a 3-letter ISO code")
        return v.upper()

class SubscriptionPlanCreate(SubscriptionPlanBase):
    pass

class SubscriptionPlanUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None

class SubscriptionPlanResponse(SubscriptionPlanBase):
    id: UUID
    merchant_id: UUID
    is_active: bool
    stripe_product_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    subscriber_count: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class ReconcileCountsResponse(BaseModel):
    success: bool
    corrected: int = Field(..., description="Number of plans whose counter was off")


# Subscriber Schemas
class SubscriberCreate(BaseModel):
    merchant_id: UUID
    plan_id: UUID
    customer_name: Optional[str] = None
    customer_email: str
    status: SubscriberStatus = SubscriberStatus.ACTIVE
    stripe_subscription_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    start_date: Optional[datetime] = None
    next_renewal_date: Optional[datetime] = None


# Payment Transaction Schemas
class PaymentTransactionCreate(BaseModel):
    merchant_id: UUID
    subscriber_id: UUID
    plan_id: UUID
    amount: Decimal
    status: PaymentStatus
    stripe_payment_id: Optional[str] = None
    payment_date: datetime


# Dashboard
class DashboardStatsResponse(BaseModel):
    """Simple merchant-level aggregates"""
    active_subscribers: int
    total_subscribers: int
    mrr: Decimal = Field(..., description="Monthly recurring revenue of active subscribers")
    arr: Decimal = Field(..., description="Annual recurring revenue (MRR x 12)")
    upcoming_renewals: int = Field(..., description="Active subscribers renewing within 7 days")
    total_revenue: Decimal = Field(..., description="Sum of successful payments")
