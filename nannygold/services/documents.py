"""Invoices for clients and payment advice for nannies"""

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.config import settings
from nannygold.db.models import (
    Booking,
    BookingStatus,
    BookingType,
    Invoice,
    InvoiceStatus,
    LivingArrangement,
    PaymentAdvice,
)
from nannygold.errors import ConflictError, NotFoundError
from nannygold.services.lifecycle import guarded_booking_update, load_booking
from nannygold.services.notifications import NotificationService
from nannygold.services.revenue import RevenueSplit, split_for_booking, to_money
from nannygold.utils.dates import utcnow

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "INV"
ADVICE_PREFIX = "PA"


def build_payment_advice_lines(advice: PaymentAdvice) -> dict[str, Any]:
    """Payee-facing figures for one billing period"""
    return {
        "advice_number": advice.advice_number,
        "period_start": advice.period_start.isoformat(),
        "period_end": advice.period_end.isoformat(),
        "gross_amount": float(advice.gross_amount),
        "commission_deducted": float(advice.commission_deducted),
        "net_amount": float(advice.net_amount),
        "currency": advice.currency,
    }


async def next_document_number(
    db: AsyncSession,
    column: Any,
    prefix: str,
    when: date | datetime,
) -> str:
    """PREFIX-YYMM-NNNN with a per-month running sequence"""
    stem = f"{prefix}-{when:%y%m}-"
    count = (await db.execute(
        select(func.count()).select_from(column.class_).where(column.like(f"{stem}%"))
    )).scalar_one()
    return f"{stem}{count + 1:04d}"


class InvoiceService:
    """Issues client invoices from the shared placement fee table"""

    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    def build_line_items(self, booking: Booking, split: RevenueSplit) -> list[dict[str, Any]]:
        if booking.booking_type is BookingType.LONG_TERM:
            arrangement = "Live-In" if booking.living_arrangement is LivingArrangement.LIVE_IN else "Live-Out"
            return [{
                "description": f"{arrangement} Nanny Placement Fee",
                "amount": float(split.fixed_fee),
            }]

        total = to_money(booking.total_cost)
        return [
            {
                "description": "Short-term Service Charges",
                "amount": float(max(total - split.fixed_fee, Decimal("0.00"))),
            },
            {"description": "Booking Fee", "amount": float(min(split.fixed_fee, total))},
        ]

    async def generate_booking_invoice(self, booking_id: uuid.UUID, today: date | None = None) -> Invoice:
        """
        Create the invoice for a booking

        Long-term bookings are invoiced the placement fee; short-term bookings
        the full total split into service charges and the booking fee.
        """
        booking = await load_booking(self.db, booking_id)
        today = today or date.today()
        split = split_for_booking(booking)
        line_items = self.build_line_items(booking, split)
        amount = to_money(sum(Decimal(str(item["amount"])) for item in line_items))

        invoice_number = await next_document_number(self.db, Invoice.invoice_number, INVOICE_PREFIX, today)
        invoice = Invoice(
            invoice_number=invoice_number,
            booking_id=booking.id,
            client_id=booking.client_id,
            amount=amount,
            currency=settings.currency,
            status=InvoiceStatus.PENDING,
            issue_date=today,
            due_date=today,
            line_items=line_items,
            notes=(
                f"Reference: {invoice_number}\n\n"
                "Please use the invoice number as your payment reference."
            ),
        )
        self.db.add(invoice)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(f"Invoice number {invoice_number} already issued, retry") from e
        await self.db.refresh(invoice)

        logger.info(
            f"Generated invoice {invoice_number} for booking {booking.id}",
            extra={"booking_id": str(booking.id), "amount": str(amount)},
        )
        await self.notifications.send(
            booking.client_id,
            "New Invoice",
            f"Invoice {invoice_number} for {settings.currency} {amount} is ready.",
            "invoice_issued",
            {"booking_id": str(booking.id), "invoice_id": str(invoice.id)},
        )
        return invoice

    async def mark_invoice_paid(self, invoice_id: uuid.UUID, paid_at: datetime | None = None) -> Invoice:
        invoice = await self.db.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        result = await self.db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == InvoiceStatus.PENDING)
            .values(status=InvoiceStatus.PAID, paid_at=paid_at or utcnow())
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise ConflictError(f"Invoice {invoice.invoice_number} is already paid")

        # A paid placement invoice confirms a booking still awaiting payment
        booking = await load_booking(self.db, invoice.booking_id)
        if booking.status is BookingStatus.PENDING:
            await guarded_booking_update(
                self.db, booking.id, BookingStatus.PENDING, status=BookingStatus.CONFIRMED
            )
        await self.db.commit()
        await self.db.refresh(invoice)

        logger.info(f"Invoice {invoice.invoice_number} marked paid", extra={"booking_id": str(booking.id)})
        return invoice
