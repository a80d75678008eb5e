import hashlib
import hmac
import json
import time
from datetime import datetime, timezone, timedelta
from typing import Optional, Dict, Any
from uuid import UUID, uuid4

from jose import jwt
from httpx import AsyncClient
from sqlalchemy import select

from substrack.core.config import settings

WEBHOOK_SECRET = "whsec_testsigningsecret123"
PERIOD_START = 1767225600  # 2026-01-01
PERIOD_END = 1769904000  # 2026-02-01


def create_test_token(user_id: UUID, email: str) -> str:
    """Generate a valid test JWT for Supabase authentication."""
    payload = {
        "sub": str(user_id),
        "email": email,
        "aud": "authenticated",  # Match Supabase default aud
        "exp": int((datetime.now(timezone.utc) + timedelta(hours=1)).timestamp()),
    }
    return jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the way Stripe does"""
    ts = timestamp if timestamp is not None else int(time.time())
    signature = hmac.new(
        secret.encode(),
        f"{ts}.{payload.decode('utf-8')}".encode(),
        hashlib.sha256
    ).hexdigest()
    return f"t={ts},v1={signature}"


def make_event(event_type: str, obj: Dict[str, Any], event_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": event_id or f"evt_{uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "data": {"object": obj},
    }


def checkout_session(
    merchant_id,
    plan_id,
    session_id: str = "cs_test_123",
    subscription_id: str = "sub_123",
    amount_total: int = 2900,
    invoice: Optional[str] = "in_first",
    email: str = "jane@example.com",
    name: str = "Jane Doe",
) -> Dict[str, Any]:
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": "subscription",
        "subscription": subscription_id,
        "customer": "cus_123",
        "invoice": invoice,
        "payment_intent": None,
        "amount_total": amount_total,
        "customer_details": {"email": email, "name": name},
        "metadata": {"merchant_id": str(merchant_id), "plan_id": str(plan_id), "customer_name": name},
    }


def subscription_object(
    subscription_id: str = "sub_123",
    status: str = "active",
    metadata: Optional[Dict[str, str]] = None,
    period_end: int = PERIOD_END,
) -> Dict[str, Any]:
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "metadata": metadata or {},
        "current_period_start": PERIOD_START,
        "current_period_end": period_end,
    }


def invoice_object(
    invoice_id: str,
    subscription_id: str = "sub_123",
    amount: int = 2900,
    billing_reason: str = "subscription_cycle",
    metadata: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Invoice in the newer API shape, subscription nested under parent"""
    return {
        "id": invoice_id,
        "object": "invoice",
        "amount_paid": amount,
        "amount_due": amount,
        "billing_reason": billing_reason,
        "status_transitions": {"paid_at": PERIOD_START},
        "parent": {
            "type": "subscription_details",
            "subscription_details": {"subscription": subscription_id, "metadata": metadata or {}},
        },
        "lines": {"data": [{"period": {"start": PERIOD_START, "end": PERIOD_END}, "metadata": {}}]},
    }


async def post_event(
    client: AsyncClient,
    event: Dict[str, Any],
    secret: str = WEBHOOK_SECRET,
    timestamp: Optional[int] = None
):
    payload = json.dumps(event).encode()
    return await client.post(
        "/api/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": sign_payload(payload, secret, timestamp), "content-type": "application/json"},
    )


async def fetch_all(session_factory, model):
    """Read rows through a fresh session so identity-map state never leaks into assertions"""
    async with session_factory() as session:
        result = await session.execute(select(model).order_by(model.created_at))
        return result.scalars().all()


async def fetch_one(session_factory, model, **filters):
    async with session_factory() as session:
        result = await session.execute(select(model).filter_by(**filters))
        return result.scalar_one_or_none()
