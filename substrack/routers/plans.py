import logging
from typing import Callable, List
from uuid import UUID

import stripe
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.core.auth import get_current_user, get_current_merchant_id
from substrack.core.database import get_db
from substrack.core.exceptions import NotFoundError, ValidationError, ExternalServiceError
from substrack.crud import merchant_crud, subscription_plan_crud
from substrack.schemas.auth import TokenData
from substrack.schemas.billing import (
    SubscriptionPlanCreate,
    SubscriptionPlanUpdate,
    SubscriptionPlanResponse,
    ReconcileCountsResponse
)
from substrack.services.stripe_service import StripeGateway, get_stripe_gateway_factory

logger = logging.getLogger(__name__)

router = APIRouter()


async def _merchant_gateway(db, merchant_id: UUID, email: str, gateway_factory) -> StripeGateway:
    merchant = await merchant_crud.get_or_create(db, merchant_id, email)
    if not merchant.stripe_secret_key:
        raise ValidationError("Configure your Stripe keys before managing plans")
    return gateway_factory(merchant.stripe_secret_key)


@router.get("", response_model=List[SubscriptionPlanResponse])
async def list_plans(
    skip: int = 0,
    limit: int = 100,
    merchant_id: UUID = Depends(get_current_merchant_id),
    db: AsyncSession = Depends(get_db)
):
    """List the merchant's plans, newest first"""
    plans, _ = await subscription_plan_crud.get_multi(
        db, skip=skip, limit=limit, filters={"merchant_id": merchant_id}
    )
    return plans


@router.post("", response_model=SubscriptionPlanResponse, status_code=status.HTTP_201_CREATED)
async def create_plan(
    plan_in: SubscriptionPlanCreate,
    merchant_id: UUID = Depends(get_current_merchant_id),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable[[str], StripeGateway] = Depends(get_stripe_gateway_factory)
):
    """
    Create a plan and its Stripe product + recurring price.
    Nothing is stored if Stripe rejects the product.
    """
    gateway = await _merchant_gateway(db, merchant_id, current_user.email, gateway_factory)
    try:
        stripe_ids = await gateway.create_product_and_price(
            name=plan_in.name,
            description=plan_in.description,
            amount=plan_in.price,
            currency=plan_in.currency,
            billing_cycle=plan_in.billing_cycle,
            metadata={"merchant_id": str(merchant_id)},
        )
    except stripe.StripeError as e:
        logger.error(f"❌ Stripe product creation failed for merchant {merchant_id}: {e}")
        raise ExternalServiceError(f"Failed to create Stripe product: {e.user_message or str(e)}")

    plan = await subscription_plan_crud.create_with_extra(
        db,
        obj_in=plan_in,
        extra_data={
            "merchant_id": merchant_id,
            "stripe_product_id": stripe_ids["product_id"],
            "stripe_price_id": stripe_ids["price_id"],
        }
    )
    logger.info(f"✅ Plan {plan.id} created with price {plan.stripe_price_id}")
    return plan


@router.put("/{plan_id}", response_model=SubscriptionPlanResponse)
async def update_plan(
    plan_id: UUID,
    plan_in: SubscriptionPlanUpdate,
    merchant_id: UUID = Depends(get_current_merchant_id),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable[[str], StripeGateway] = Depends(get_stripe_gateway_factory)
):
    """Update plan details. Price and cycle are fixed once created."""
    plan = await subscription_plan_crud.get_for_merchant(db, plan_id, merchant_id)
    if not plan:
        raise NotFoundError("Plan")

    if plan.stripe_product_id and (plan_in.name is not None or plan_in.description is not None):
        gateway = await _merchant_gateway(db, merchant_id, current_user.email, gateway_factory)
        try:
            await gateway.update_product(plan.stripe_product_id, name=plan_in.name, description=plan_in.description)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe product update failed for plan {plan_id}: {e}")
            raise ExternalServiceError(f"Failed to update Stripe product: {e.user_message or str(e)}")

    return await subscription_plan_crud.update(db, db_obj=plan, obj_in=plan_in)


@router.delete("/{plan_id}")
async def delete_plan(
    plan_id: UUID,
    merchant_id: UUID = Depends(get_current_merchant_id),
    current_user: TokenData = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway_factory: Callable[[str], StripeGateway] = Depends(get_stripe_gateway_factory)
):
    """Archive the Stripe product and soft-delete the plan"""
    plan = await subscription_plan_crud.get_for_merchant(db, plan_id, merchant_id)
    if not plan:
        raise NotFoundError("Plan")

    if plan.stripe_product_id:
        gateway = await _merchant_gateway(db, merchant_id, current_user.email, gateway_factory)
        try:
            await gateway.archive_product(plan.stripe_product_id)
        except stripe.StripeError as e:
            logger.error(f"❌ Stripe product archive failed for plan {plan_id}: {e}")
            raise ExternalServiceError(f"Failed to archive Stripe product: {e.user_message or str(e)}")

    await subscription_plan_crud.soft_delete(db, id=plan.id)
    return {"success": True, "message": "Plan deleted"}


@router.post("/reconcile-counts", response_model=ReconcileCountsResponse)
async def reconcile_counts(
    merchant_id: UUID = Depends(get_current_merchant_id),
    db: AsyncSession = Depends(get_db)
):
    """Recompute subscriber counters from active subscribers"""
    corrected = await subscription_plan_crud.reconcile_subscriber_counts(db, merchant_id)
    if corrected:
        logger.warning(f"⚠️ Corrected subscriber counts on {corrected} plan(s) for merchant {merchant_id}")
    return ReconcileCountsResponse(success=True, corrected=corrected)
