"""Invoice API endpoints"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.api.deps import CurrentUser, require_admin
from nannygold.db.database import get_db
from nannygold.schemas.invoices import InvoiceResponse
from nannygold.services.documents import InvoiceService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/bookings/{booking_id}", status_code=status.HTTP_201_CREATED)
async def generate_invoice(
    booking_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    invoice = await InvoiceService(db).generate_booking_invoice(booking_id)
    return {"success": True, "data": InvoiceResponse.model_validate(invoice)}


@router.post("/{invoice_id}/mark-paid")
async def mark_invoice_paid(
    invoice_id: UUID,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Record a manual EFT payment against an invoice"""
    invoice = await InvoiceService(db).mark_invoice_paid(invoice_id)
    logger.info(f"Admin {admin.user_id} marked invoice {invoice.invoice_number} paid")
    return {"success": True, "data": InvoiceResponse.model_validate(invoice)}
