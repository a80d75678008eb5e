import base64
import hashlib
import hmac
import json
import logging
import time
from datetime import timedelta
from typing import Optional, Dict, Any
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.core.config import settings
from substrack.core.exceptions import NotFoundError
from substrack.crud.access_token import access_token_crud, AccessTokenCreate
from substrack.crud.subscriber import subscriber_crud
from substrack.crud.subscription_plan import subscription_plan_crud
from substrack.models.access_token import AccessToken
from substrack.models.subscriber import Subscriber, SubscriberStatus
from substrack.models.subscription_plan import SubscriptionPlan
from substrack.schemas.subscription import SubscriberSummary, TokenExchangeResponse, TokenVerifyResponse
from substrack.utils.utils import utcnow, from_iso, parse_uuid

logger = logging.getLogger(__name__)

TOKEN_HEADER = {"alg": "HS256", "typ": "JWT"}


class InvalidAccessToken(Exception):
    pass


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(segment: str) -> bytes:
    padding = "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(segment + padding)


def _compact_json(data: Dict[str, Any]) -> bytes:
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


def _signature(signing_input: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_input.encode("ascii"), hashlib.sha256).digest()
    return _b64url_encode(digest)


def sign_token(claims: Dict[str, Any], secret: Optional[str] = None) -> str:
    """header.payload.signature, HMAC-SHA256, unpadded base64url"""
    secret = secret or settings.access_token_secret
    signing_input = f"{_b64url_encode(_compact_json(TOKEN_HEADER))}.{_b64url_encode(_compact_json(claims))}"
    return f"{signing_input}.{_signature(signing_input, secret)}"


def verify_access_token(token: str, secret: Optional[str] = None, now: Optional[int] = None) -> Dict[str, Any]:
    """Check signature and expiry, return the claims. Raises InvalidAccessToken."""
    secret = secret or settings.access_token_secret
    parts = token.split(".")
    if len(parts) != 3 or not token.isascii():
        raise InvalidAccessToken("Malformed token")

    header_b64, payload_b64, signature = parts
    expected = _signature(f"{header_b64}.{payload_b64}", secret)
    if not hmac.compare_digest(expected, signature):
        raise InvalidAccessToken("Invalid signature")

    try:
        header = json.loads(_b64url_decode(header_b64))
        claims = json.loads(_b64url_decode(payload_b64))
    except (ValueError, UnicodeDecodeError):
        raise InvalidAccessToken("Malformed token")
    if header.get("alg") != "HS256" or not isinstance(claims, dict):
        raise InvalidAccessToken("Malformed token")

    now = int(time.time()) if now is None else now
    exp = claims.get("exp")
    if not isinstance(exp, int) or exp < now:
        raise InvalidAccessToken("Token expired")
    return claims


def _status_value(value) -> Optional[str]:
    return value.value if isinstance(value, SubscriberStatus) else value


def build_claims(subscriber: Subscriber, plan: SubscriptionPlan, issued_at: Optional[int] = None) -> Dict[str, Any]:
    issued_at = int(time.time()) if issued_at is None else issued_at
    status_value = _status_value(subscriber.status)
    return {
        "sub": subscriber.customer_email,
        "email": subscriber.customer_email,
        "name": subscriber.customer_name,
        "merchant_id": str(subscriber.merchant_id),
        "subscriber_id": str(subscriber.id),
        "plan_id": str(plan.id),
        "plan_name": plan.name,
        "features": list(plan.features or []),
        "status": status_value,
        "expires_at": subscriber.next_renewal_date.isoformat() if subscriber.next_renewal_date else None,
        "iat": issued_at,
        "exp": issued_at + settings.access_token_ttl_days * 24 * 60 * 60,
    }


def summarize(subscriber: Optional[Subscriber], plan: Optional[SubscriptionPlan]) -> SubscriberSummary:
    if not subscriber:
        return SubscriberSummary()
    status_value = _status_value(subscriber.status)
    return SubscriberSummary(
        email=subscriber.customer_email,
        name=subscriber.customer_name,
        plan=plan.name if plan else None,
        features=list(plan.features or []) if plan else [],
        status=status_value,
    )


class AccessTokenService:
    """Issues, exchanges and verifies subscriber access tokens"""

    async def issue_access_token(
        self,
        db: AsyncSession,
        subscriber: Subscriber,
        plan: SubscriptionPlan,
        session_id: str
    ) -> AccessToken:
        """Sign a token and stage its one-time exchange row. Caller commits."""
        token = sign_token(build_claims(subscriber, plan))
        return await access_token_crud.stage(
            db,
            obj_in=AccessTokenCreate(
                merchant_id=subscriber.merchant_id,
                subscriber_id=subscriber.id,
                token=token,
                stripe_session_id=session_id,
                expires_at=utcnow() + timedelta(days=settings.access_token_ttl_days),
                used=False,
            )
        )

    async def exchange_session_token(self, db: AsyncSession, session_id: str) -> TokenExchangeResponse:
        """One-time swap of a checkout session id for its signed token"""
        record = await access_token_crud.consume(db, session_id, utcnow())
        if not record:
            logger.info(f"Token exchange refused for session {session_id}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found or expired")

        subscriber = await subscriber_crud.get(db, record.subscriber_id, raise_if_not_found=False)
        plan = None
        if subscriber:
            plan = await subscription_plan_crud.get(db, subscriber.plan_id, raise_if_not_found=False)
        return TokenExchangeResponse(token=record.token, subscriber=summarize(subscriber, plan))

    async def generate_for_subscriber(
        self,
        db: AsyncSession,
        merchant_id: UUID,
        subscriber_id: UUID
    ) -> TokenExchangeResponse:
        """Re-issue a token for one of the merchant's subscribers from its current state"""
        subscriber = await subscriber_crud.get_for_merchant(db, subscriber_id, merchant_id)
        if not subscriber:
            raise NotFoundError("Subscriber")
        plan = await subscription_plan_crud.get(db, subscriber.plan_id, include_deleted=True)

        token = sign_token(build_claims(subscriber, plan))
        logger.info(f"✅ Access token generated for subscriber {subscriber.id}")
        return TokenExchangeResponse(token=token, subscriber=summarize(subscriber, plan))

    async def verify(self, db: AsyncSession, token: str, feature: Optional[str] = None) -> TokenVerifyResponse:
        """
        Signature and expiry come from the token. Status and renewal date come
        from the stored subscriber when it still exists.
        """
        try:
            claims = verify_access_token(token)
        except InvalidAccessToken as e:
            return TokenVerifyResponse(valid=False, error=str(e))

        status_value = claims.get("status")
        expires_at = from_iso(claims.get("expires_at"))
        subscriber_id = parse_uuid(claims.get("subscriber_id"))
        if subscriber_id:
            subscriber = await subscriber_crud.get(db, subscriber_id, raise_if_not_found=False)
            if subscriber and str(subscriber.merchant_id) == claims.get("merchant_id"):
                status_value = _status_value(subscriber.status)
                expires_at = subscriber.next_renewal_date or expires_at

        features = claims.get("features") or []
        summary = SubscriberSummary(
            email=claims.get("email"),
            name=claims.get("name"),
            plan=claims.get("plan_name"),
            features=features,
            status=status_value,
        )
        has_subscription = status_value == SubscriberStatus.ACTIVE.value and (
            expires_at is None or expires_at >= utcnow()
        )
        return TokenVerifyResponse(
            valid=True,
            has_subscription=has_subscription,
            has_feature=(has_subscription and feature in features) if feature else None,
            subscriber=summary,
        )


access_token_service = AccessTokenService()
