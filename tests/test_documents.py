"""Tests for invoices and payment advice"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from nannygold.db.models import (
    BookingStatus,
    BookingType,
    InvoiceStatus,
    LivingArrangement,
    Notification,
    PaymentAdvice,
)
from nannygold.errors import ConflictError
from nannygold.services.documents import (
    InvoiceService,
    build_payment_advice_lines,
)
from nannygold.services.revenue import split_for_booking
from nannygold.utils.dates import utcnow


@pytest.fixture
def invoices(test_db, notifications):
    return InvoiceService(test_db, notifications)


def line_total(line_items) -> Decimal:
    return sum((Decimal(str(item["amount"])) for item in line_items), Decimal("0"))


class TestLineItems:
    async def test_long_term_live_out_placement_fee(self, invoices, make_client, make_nanny, make_booking):
        booking = await make_booking(await make_client(), await make_nanny())

        items = invoices.build_line_items(booking, split_for_booking(booking))

        assert items == [{"description": "Live-Out Nanny Placement Fee", "amount": 2500.0}]

    async def test_long_term_live_in_label(self, invoices, make_client, make_nanny, make_booking):
        booking = await make_booking(
            await make_client(), await make_nanny(), living_arrangement=LivingArrangement.LIVE_IN
        )

        items = invoices.build_line_items(booking, split_for_booking(booking))
        assert items[0]["description"] == "Live-In Nanny Placement Fee"

    async def test_short_term_lines_sum_to_total(self, invoices, make_client, make_nanny, make_booking):
        start = date.today() + timedelta(days=1)
        booking = await make_booking(
            await make_client(),
            await make_nanny(),
            booking_type=BookingType.SHORT_TERM,
            base_rate=Decimal("500.00"),
            home_size=None,
            start_date=start,
            end_date=start + timedelta(days=2),
        )

        items = invoices.build_line_items(booking, split_for_booking(booking))

        assert items == [
            {"description": "Short-term Service Charges", "amount": 395.0},
            {"description": "Booking Fee", "amount": 105.0},
        ]
        assert line_total(items) == booking.total_cost

    async def test_tiny_short_term_total_is_all_booking_fee(
        self, invoices, make_client, make_nanny, make_booking
    ):
        booking = await make_booking(
            await make_client(),
            await make_nanny(),
            booking_type=BookingType.SHORT_TERM,
            base_rate=Decimal("20.00"),
            home_size=None,
        )

        items = invoices.build_line_items(booking, split_for_booking(booking))
        assert [item["amount"] for item in items] == [0.0, 20.0]


class TestInvoices:
    async def test_generate_numbers_sequentially(self, invoices, make_client, make_nanny, make_booking, test_db):
        booking = await make_booking(await make_client(), await make_nanny())
        today = date(2025, 3, 14)

        first = await invoices.generate_booking_invoice(booking.id, today=today)
        second = await invoices.generate_booking_invoice(booking.id, today=today)

        assert first.invoice_number == "INV-2503-0001"
        assert second.invoice_number == "INV-2503-0002"
        assert first.amount == Decimal("2500.00")
        assert first.status is InvoiceStatus.PENDING
        assert "INV-2503-0001" in first.notes
        assert line_total(first.line_items) == first.amount

        issued = (await test_db.execute(
            select(Notification).where(Notification.type == "invoice_issued")
        )).scalars().all()
        assert {n.user_id for n in issued} == {booking.client_id}

    async def test_mark_paid_confirms_pending_booking(
        self, invoices, make_client, make_nanny, make_booking, test_db
    ):
        booking = await make_booking(await make_client(), await make_nanny())
        invoice = await invoices.generate_booking_invoice(booking.id)

        paid = await invoices.mark_invoice_paid(invoice.id)

        assert paid.status is InvoiceStatus.PAID
        assert paid.paid_at is not None
        await test_db.refresh(booking)
        assert booking.status is BookingStatus.CONFIRMED

    async def test_mark_paid_twice_is_a_conflict(self, invoices, make_client, make_nanny, make_booking):
        booking = await make_booking(await make_client(), await make_nanny())
        invoice = await invoices.generate_booking_invoice(booking.id)
        await invoices.mark_invoice_paid(invoice.id)

        with pytest.raises(ConflictError):
            await invoices.mark_invoice_paid(invoice.id)


def test_payment_advice_lines():
    advice = PaymentAdvice(
        advice_number="PA-2504-0001",
        period_start=date(2025, 4, 1),
        period_end=date(2025, 4, 30),
        gross_amount=Decimal("8000.00"),
        commission_deducted=Decimal("1200.00"),
        net_amount=Decimal("6800.00"),
        currency="ZAR",
        issued_at=utcnow(),
    )

    assert build_payment_advice_lines(advice) == {
        "advice_number": "PA-2504-0001",
        "period_start": "2025-04-01",
        "period_end": "2025-04-30",
        "gross_amount": 8000.0,
        "commission_deducted": 1200.0,
        "net_amount": 6800.0,
        "currency": "ZAR",
    }
