import logging
from typing import Optional, Dict, Any, Iterable
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.crud.subscriber import subscriber_crud
from substrack.utils.utils import dig, ref_id, parse_uuid

logger = logging.getLogger(__name__)

# Where Stripe objects carry our metadata, in lookup order
METADATA_PATHS = (
    ("metadata",),
    ("subscription_details", "metadata"),
    ("parent", "subscription_details", "metadata"),
    ("subscription_data", "metadata"),
    ("lines", "data", 0, "metadata"),
    ("items", "data", 0, "metadata"),
)


def merchant_id_from_metadata(obj: Dict[str, Any], paths: Iterable = METADATA_PATHS) -> Optional[UUID]:
    for path in paths:
        merchant_id = parse_uuid(dig(obj, *path, "merchant_id"))
        if merchant_id:
            return merchant_id
    return None


def subscription_ref(obj: Dict[str, Any]) -> Optional[str]:
    """External subscription id of a subscription, invoice or checkout session object"""
    if obj.get("object") == "subscription":
        return obj.get("id")
    return ref_id(obj.get("subscription")) or ref_id(
        dig(obj, "parent", "subscription_details", "subscription")
    )


async def resolve_merchant_id(db: AsyncSession, event: Dict[str, Any]) -> Optional[UUID]:
    """
    Find the tenant an event belongs to. Only used to pick the signing secret,
    the event itself is trusted only after signature verification.
    """
    obj = dig(event, "data", "object", default={})
    if not isinstance(obj, dict):
        return None

    merchant_id = merchant_id_from_metadata(obj)
    if merchant_id:
        return merchant_id

    ref = subscription_ref(obj)
    if ref:
        subscriber = await subscriber_crud.get_by_stripe_subscription_id(db, ref)
        if subscriber:
            logger.info(f"Resolved merchant for {event.get('type')} via stored subscription {ref}")
            return subscriber.merchant_id

    return None
