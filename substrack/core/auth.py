import asyncio
import logging
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from substrack.services.supabase_service import supabase_service
from substrack.schemas.auth import TokenData
from substrack.core.config import settings

logger = logging.getLogger(__name__)

security = HTTPBearer()


def decode_supabase_token(token: str) -> TokenData:
    """Verify a Supabase access token locally with the project JWT secret"""
    payload = jwt.decode(
        token,
        settings.supabase_jwt_secret,
        algorithms=["HS256"],
        audience="authenticated",
    )
    user_id = payload.get("sub")
    if not user_id:
        raise JWTError("Token has no subject")
    return TokenData(user_id=user_id, email=payload.get("email") or "")


async def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)) -> TokenData:
    """Verify the merchant's bearer token and return user data"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    token = credentials.credentials

    # Local verification first (no network call)
    if settings.supabase_jwt_secret:
        try:
            return decode_supabase_token(token)
        except JWTError as decode_error:
            logger.info(f"⚠️ Local JWT verification failed, trying Supabase: {decode_error}")

    # Fallback: ask Supabase Auth
    try:
        user_result = await asyncio.wait_for(supabase_service.get_user(token), timeout=3.0)
        if user_result["success"] and user_result.get("user"):
            user = user_result["user"]
            return TokenData(user_id=str(user.id), email=user.email or "")
    except asyncio.TimeoutError:
        logger.warning("⚠️ Supabase auth timeout")
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Authentication service timeout"
        )
    except Exception as supabase_error:
        logger.warning(f"⚠️ Supabase auth error: {supabase_error}")

    raise credentials_exception


async def get_current_user(token_data: TokenData = Depends(verify_token)) -> TokenData:
    """Get current authenticated merchant"""
    return token_data


async def get_current_merchant_id(current_user: TokenData = Depends(get_current_user)) -> UUID:
    """The authenticated Supabase user id is the merchant id"""
    try:
        return UUID(str(current_user.user_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
