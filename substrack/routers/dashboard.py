from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.core.auth import get_current_merchant_id
from substrack.core.database import get_db
from substrack.schemas.billing import DashboardStatsResponse
from substrack.services.billing_service import billing_service

router = APIRouter()


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    merchant_id: UUID = Depends(get_current_merchant_id),
    db: AsyncSession = Depends(get_db)
):
    """Subscriber counts, recurring revenue and upcoming renewals"""
    return await billing_service.get_dashboard_stats(db, merchant_id)
