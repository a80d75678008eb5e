from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.core.auth import get_current_merchant_id
from substrack.core.database import get_db
from substrack.schemas.subscription import (
    TokenExchangeRequest,
    TokenExchangeResponse,
    TokenGenerateRequest,
    TokenVerifyRequest,
    TokenVerifyResponse
)
from substrack.services.access_token_service import access_token_service

router = APIRouter()


@router.post("/exchange", response_model=TokenExchangeResponse)
async def exchange_token(
    request: TokenExchangeRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Swap a completed checkout session id for the subscriber's access token.
    Works once per session.
    """
    return await access_token_service.exchange_session_token(db, request.session_id)


@router.post("/generate", response_model=TokenExchangeResponse)
async def generate_token(
    request: TokenGenerateRequest,
    merchant_id: UUID = Depends(get_current_merchant_id),
    db: AsyncSession = Depends(get_db)
):
    """Issue a fresh access token for one of the merchant's subscribers"""
    return await access_token_service.generate_for_subscriber(db, merchant_id, request.subscriber_id)


@router.post("/verify", response_model=TokenVerifyResponse)
async def verify_token(
    request: TokenVerifyRequest,
    db: AsyncSession = Depends(get_db)
):
    """Authoritative check of an access token and, optionally, one feature"""
    return await access_token_service.verify(db, request.token, request.feature)
