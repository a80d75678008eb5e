from pydantic import BaseModel, Field
from typing import Optional
from datetime import date
from decimal import Decimal


class InvoiceData(BaseModel):
    """Everything needed to lay out one invoice"""
    invoice_id: str
    invoice_date: date
    due_date: Optional[date] = None

    # Merchant
    merchant_name: str
    merchant_email: str
    merchant_address: Optional[str] = None
    merchant_gst: Optional[str] = None
    merchant_phone: Optional[str] = None
    merchant_logo_url: Optional[str] = None

    # Customer
    customer_name: str
    customer_email: str

    # Payment
    plan_name: str
    plan_description: Optional[str] = None
    billing_cycle: Optional[str] = None
    amount: Decimal = Field(..., ge=0, description="Tax-inclusive total")
    currency: str = "USD"
    status: str = "success"

    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None


class TaxBreakdown(BaseModel):
    subtotal: Decimal
    tax: Decimal
    total: Decimal
