from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.core.auth import get_current_user, get_current_merchant_id
from substrack.core.database import get_db
from substrack.crud import merchant_crud
from substrack.schemas.auth import TokenData
from substrack.schemas.merchant import MerchantProfileUpdate, StripeKeysUpdate, MerchantResponse

router = APIRouter()


@router.get("/me", response_model=MerchantResponse)
async def get_profile(
    merchant_id: UUID = Depends(get_current_merchant_id),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the merchant profile, creating it on first access"""
    merchant = await merchant_crud.get_or_create(db, merchant_id, current_user.email)
    return MerchantResponse.from_merchant(merchant)


@router.put("/me", response_model=MerchantResponse)
async def update_profile(
    profile: MerchantProfileUpdate,
    merchant_id: UUID = Depends(get_current_merchant_id),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update business details printed on invoices and emails"""
    merchant = await merchant_crud.get_or_create(db, merchant_id, current_user.email)
    merchant = await merchant_crud.update(db, db_obj=merchant, obj_in=profile)
    return MerchantResponse.from_merchant(merchant)


@router.put("/me/stripe-keys", response_model=MerchantResponse)
async def update_stripe_keys(
    keys: StripeKeysUpdate,
    merchant_id: UUID = Depends(get_current_merchant_id),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Store the merchant's Stripe credentials.
    Malformed keys never reach this point, the request fails validation with 422.
    """
    merchant = await merchant_crud.get_or_create(db, merchant_id, current_user.email)
    merchant = await merchant_crud.update(db, db_obj=merchant, obj_in=keys)
    return MerchantResponse.from_merchant(merchant)
