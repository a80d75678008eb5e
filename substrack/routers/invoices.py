from uuid import UUID
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from substrack.core.auth import get_current_merchant_id
from substrack.core.database import get_db
from substrack.core.exceptions import NotFoundError
from substrack.crud import merchant_crud, payment_transaction_crud, subscriber_crud, subscription_plan_crud
from substrack.services.invoice_service import invoice_service, build_invoice_data

router = APIRouter()


@router.get("/{transaction_id}/pdf")
async def download_invoice(
    transaction_id: UUID,
    merchant_id: UUID = Depends(get_current_merchant_id),
    db: AsyncSession = Depends(get_db)
):
    """Download the invoice PDF of one of the merchant's payments"""
    transaction = await payment_transaction_crud.get_for_merchant(db, transaction_id, merchant_id)
    if not transaction:
        raise NotFoundError("Transaction")

    merchant = await merchant_crud.get(db, merchant_id)
    subscriber = await subscriber_crud.get(db, transaction.subscriber_id)
    # Soft-deleted plans still appear on historical invoices
    plan = await subscription_plan_crud.get(db, transaction.plan_id, include_deleted=True)

    data = build_invoice_data(merchant, subscriber, plan, transaction)
    pdf = await invoice_service.generate_pdf(data)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename=invoice-{data.invoice_id}.pdf"}
    )
