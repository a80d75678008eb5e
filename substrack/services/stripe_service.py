import json
import logging
from decimal import Decimal
from typing import Optional, Dict, Any, Callable

import stripe

from substrack.models.subscription_plan import BillingCycle

logger = logging.getLogger(__name__)

# Billing cycle -> Stripe recurring (interval, interval_count)
RECURRING_INTERVALS = {
    BillingCycle.DAILY: ("day", 1),
    BillingCycle.WEEKLY: ("week", 1),
    BillingCycle.MONTHLY: ("month", 1),
    BillingCycle.QUARTERLY: ("month", 3),
    BillingCycle.YEARLY: ("year", 1),
}


def to_minor_units(amount: Decimal) -> int:
    """Plan price to Stripe unit_amount (cents)"""
    return int(round(Decimal(amount) * 100))


def _as_dict(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return obj
    return obj.to_dict()


def verify_and_parse_event(
    payload: bytes,
    sig_header: Optional[str],
    secret: Optional[str],
    tolerance: int = 300
) -> Dict[str, Any]:
    """
    Verify a Stripe-Signature header against the raw body and return the parsed event.
    Raises stripe.SignatureVerificationError or ValueError; nothing is parsed before the check passes.
    """
    if not sig_header:
        raise ValueError("Missing Stripe-Signature header")
    if not secret:
        raise ValueError("Webhook signing secret not configured")
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise ValueError("Webhook payload is not valid UTF-8")

    stripe.WebhookSignature.verify_header(text, sig_header, secret, tolerance)
    return json.loads(text)


class StripeGateway:
    """Calls into one merchant's Stripe account"""

    def __init__(self, secret_key: str):
        self.client = stripe.StripeClient(secret_key)

    async def retrieve_subscription(self, subscription_id: str) -> Dict[str, Any]:
        subscription = self.client.subscriptions.retrieve(subscription_id)
        return _as_dict(subscription)

    async def create_checkout_session(
        self,
        price_id: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str]
    ) -> Dict[str, Any]:
        """Create a subscription-mode Checkout Session carrying tenant metadata"""
        session = self.client.checkout.sessions.create(params={
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            # Copied onto the subscription so later subscription/invoice events resolve the tenant
            "subscription_data": {"metadata": metadata},
            "billing_address_collection": "auto",
        })
        return _as_dict(session)

    async def create_product_and_price(
        self,
        name: str,
        description: Optional[str],
        amount: Decimal,
        currency: str,
        billing_cycle: BillingCycle,
        metadata: Dict[str, str]
    ) -> Dict[str, str]:
        """Create a product and its recurring price. Returns product and price ids."""
        product_params: Dict[str, Any] = {"name": name, "metadata": metadata}
        if description:
            product_params["description"] = description
        product = self.client.products.create(params=product_params)

        interval, interval_count = RECURRING_INTERVALS[billing_cycle]
        price = self.client.prices.create(params={
            "product": product.id,
            "unit_amount": to_minor_units(amount),
            "currency": currency.lower(),
            "recurring": {"interval": interval, "interval_count": interval_count},
            "metadata": metadata,
        })
        return {"product_id": product.id, "price_id": price.id}

    async def update_product(self, product_id: str, name: Optional[str] = None, description: Optional[str] = None) -> None:
        params: Dict[str, Any] = {}
        if name:
            params["name"] = name
        if description is not None:
            params["description"] = description
        if params:
            self.client.products.update(product_id, params=params)

    async def archive_product(self, product_id: str) -> None:
        self.client.products.update(product_id, params={"active": False})


def get_stripe_gateway_factory() -> Callable[[str], StripeGateway]:
    """Dependency returning a per-merchant gateway constructor"""
    return StripeGateway
