from typing import Optional
from uuid import UUID
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.crud.base import CRUDBase
from substrack.models.merchant import Merchant
from substrack.schemas.merchant import MerchantProfileUpdate


class MerchantCreate(BaseModel):
    id: UUID
    email: str


class CRUDMerchant(CRUDBase[Merchant, MerchantCreate, MerchantProfileUpdate]):
    async def get_or_create(self, db: AsyncSession, merchant_id: UUID, email: Optional[str]) -> Merchant:
        """Merchant row is created lazily on first authenticated call"""
        merchant = await self.get(db, merchant_id, raise_if_not_found=False)
        if merchant:
            return merchant
        return await self.create(db, obj_in=MerchantCreate(id=merchant_id, email=email or ""))


merchant_crud = CRUDMerchant(Merchant)
