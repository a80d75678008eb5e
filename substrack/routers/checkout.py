import logging
from typing import Callable

import stripe
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.core.config import settings
from substrack.core.database import get_db
from substrack.core.exceptions import NotFoundError, ValidationError, ExternalServiceError
from substrack.crud import merchant_crud, subscription_plan_crud
from substrack.schemas.subscription import CreateCheckoutRequest, CheckoutResponse
from substrack.services.stripe_service import StripeGateway, get_stripe_gateway_factory

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=CheckoutResponse)
async def create_checkout_session(
    request: CreateCheckoutRequest,
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable[[str], StripeGateway] = Depends(get_stripe_gateway_factory)
):
    """
    Start a Stripe Checkout for a merchant plan.
    Public endpoint, called from the merchant's pricing page.
    """
    merchant = await merchant_crud.get(db, request.merchant_id, raise_if_not_found=False)
    if not merchant:
        raise NotFoundError("Merchant")
    if not merchant.stripe_secret_key:
        raise ValidationError("Merchant has not configured Stripe")

    plan = await subscription_plan_crud.get_for_merchant(db, request.plan_id, merchant.id)
    if not plan or not plan.is_active:
        raise NotFoundError("Plan")
    if plan.stripe_price_id and plan.stripe_price_id != request.price_id:
        raise ValidationError("Price does not belong to this plan")

    success_url = request.success_url or f"{settings.frontend_url}/subscription-success?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = request.cancel_url or merchant.redirect_url or f"{settings.frontend_url}/subscription-cancelled"

    gateway = gateway_factory(merchant.stripe_secret_key)
    try:
        session = await gateway.create_checkout_session(
            price_id=request.price_id,
            customer_email=request.customer_email,
            success_url=success_url,
            cancel_url=cancel_url,
            metadata={
                "merchant_id": str(merchant.id),
                "plan_id": str(plan.id),
                "customer_name": request.customer_name,
            },
        )
    except stripe.StripeError as e:
        logger.error(f"❌ Checkout creation failed for merchant {merchant.id}: {e}")
        raise ExternalServiceError(f"Failed to create checkout session: {e.user_message or str(e)}")

    logger.info(f"Checkout session {session['id']} created for plan {plan.id}")
    return CheckoutResponse(url=session["url"], session_id=session["id"])
