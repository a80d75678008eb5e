import json
import logging
from typing import Callable

import stripe
from fastapi import APIRouter, HTTPException, Depends, status, Request, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.core.config import settings
from substrack.core.database import get_db
from substrack.core.exceptions import WebhookRejectedError
from substrack.crud import merchant_crud, stripe_webhook_crud
from substrack.schemas.subscription import WebhookAck
from substrack.services.notification_service import NotificationDispatcher, get_notification_dispatcher
from substrack.services.stripe_service import StripeGateway, get_stripe_gateway_factory, verify_and_parse_event
from substrack.services.tenant_resolver import resolve_merchant_id
from substrack.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable[[str], StripeGateway] = Depends(get_stripe_gateway_factory),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """
    Handle Stripe webhook events for every merchant.
    The tenant is looked up first so its own signing secret can verify the payload.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    if not signature:
        logger.warning("⚠️ Webhook without Stripe-Signature header")
        raise WebhookRejectedError("Missing Stripe signature")

    try:
        unverified = json.loads(payload)
    except ValueError:
        raise WebhookRejectedError("Invalid webhook payload")
    if not isinstance(unverified, dict):
        raise WebhookRejectedError("Invalid webhook payload")

    merchant_id = await resolve_merchant_id(db, unverified)
    if not merchant_id:
        logger.warning(f"⚠️ Could not resolve merchant for {unverified.get('type')} [{unverified.get('id')}]")
        raise WebhookRejectedError("Could not determine merchant for event")

    merchant = await merchant_crud.get(db, merchant_id, raise_if_not_found=False)
    if not merchant or not merchant.stripe_webhook_secret:
        logger.warning(f"⚠️ No webhook secret configured for merchant {merchant_id}")
        raise WebhookRejectedError("Webhook secret not configured for merchant")

    try:
        event = verify_and_parse_event(
            payload, signature, merchant.stripe_webhook_secret, settings.stripe_webhook_tolerance
        )
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning(f"⚠️ Signature verification failed for merchant {merchant_id}: {e}")
        raise WebhookRejectedError("Invalid Stripe signature")

    event_id = event.get("id")
    if not event_id:
        raise WebhookRejectedError("Event has no id")

    # Idempotency: Stripe redelivers events we already applied
    if await stripe_webhook_crud.get_by_event_id(db, event_id):
        logger.info(f"Event {event_id} already processed")
        return WebhookAck()

    gateway = gateway_factory(merchant.stripe_secret_key) if merchant.stripe_secret_key else None
    processor = WebhookProcessor(db, merchant, gateway)
    try:
        outcome = await processor.process(event)
    except Exception as e:
        await db.rollback()
        logger.exception(f"❌ Failed to process {event.get('type')} [{event_id}]: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing error"
        )

    if outcome.notifications:
        background_tasks.add_task(dispatcher.dispatch, outcome.notifications)
    return WebhookAck()
