from typing import Optional, Tuple
from decimal import Decimal
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func

from substrack.crud.base import CRUDBase
from substrack.models.payment_transaction import PaymentTransaction, PaymentStatus
from substrack.schemas.billing import PaymentTransactionCreate
from pydantic import BaseModel


class CRUDPaymentTransaction(CRUDBase[PaymentTransaction, PaymentTransactionCreate, BaseModel]):
    async def get_by_stripe_payment_id(self, db: AsyncSession, stripe_payment_id: str) -> Optional[PaymentTransaction]:
        result = await db.execute(
            select(self.model).where(self.model.stripe_payment_id == stripe_payment_id)
        )
        return result.scalar_one_or_none()

    async def stage_if_absent(
        self,
        db: AsyncSession,
        *,
        obj_in: PaymentTransactionCreate
    ) -> Tuple[PaymentTransaction, bool]:
        """
        Append a transaction unless one already exists for the Stripe payment id.
        Returns (transaction, created). The unique index on stripe_payment_id
        turns a lost race into an IntegrityError at flush time.
        """
        if obj_in.stripe_payment_id:
            existing = await self.get_by_stripe_payment_id(db, obj_in.stripe_payment_id)
            if existing:
                return existing, False
        return await self.stage(db, obj_in=obj_in), True

    async def get_for_merchant(
        self,
        db: AsyncSession,
        transaction_id: UUID,
        merchant_id: UUID
    ) -> Optional[PaymentTransaction]:
        result = await db.execute(
            select(self.model).where(
                and_(
                    self.model.id == transaction_id,
                    self.model.merchant_id == merchant_id,
                    self.model.is_deleted == False
                )
            )
        )
        return result.scalar_one_or_none()

    async def total_revenue(self, db: AsyncSession, merchant_id: UUID) -> Decimal:
        """Sum of successful payments for a merchant"""
        result = await db.execute(
            select(func.coalesce(func.sum(self.model.amount), 0)).where(
                and_(
                    self.model.merchant_id == merchant_id,
                    self.model.status == PaymentStatus.SUCCESS,
                    self.model.is_deleted == False
                )
            )
        )
        return Decimal(str(result.scalar() or 0)).quantize(Decimal("0.01"))


payment_transaction_crud = CRUDPaymentTransaction(PaymentTransaction)
