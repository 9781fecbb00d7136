"""Monthly billing sweeps: authorize ahead, capture after the hold period"""

import logging
import uuid
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.config import settings
from nannygold.db.models import (
    AuthorizationStatus,
    Booking,
    BookingStatus,
    BookingType,
    PaymentAuthorization,
)
from nannygold.errors import AppError
from nannygold.services.payments import PaymentService
from nannygold.utils.dates import add_months, as_utc, month_bounds, utcnow

logger = logging.getLogger(__name__)

BILLABLE_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.ACTIVE)
RETRYABLE_STATUSES = (BookingStatus.PENDING, *BILLABLE_STATUSES)
MAX_AUTHORIZATION_ATTEMPTS = 3


def current_billing_period(today: date) -> tuple[date, date]:
    return month_bounds(today.year, today.month)


def next_billing_period(today: date) -> tuple[date, date]:
    first = add_months(today, 1)
    return month_bounds(first.year, first.month)


class BillingSweepService:
    """Scheduled batch runs over long-term bookings; one failure never stops a sweep"""

    def __init__(self, db: AsyncSession, payments: PaymentService | None = None):
        self.db = db
        self.payments = payments or PaymentService(db)

    async def _billable_booking_ids(self, period_start: date, period_end: date) -> list[uuid.UUID]:
        result = await self.db.execute(
            select(Booking.id)
            .where(
                Booking.booking_type == BookingType.LONG_TERM,
                Booking.status.in_(BILLABLE_STATUSES),
                Booking.start_date <= period_end,
                or_(Booking.end_date.is_(None), Booking.end_date >= period_start),
            )
            .order_by(Booking.start_date, Booking.id)
        )
        return list(result.scalars().all())

    async def _covered_booking_ids(self, period_start: date) -> set[uuid.UUID]:
        result = await self.db.execute(
            select(PaymentAuthorization.booking_id).where(
                PaymentAuthorization.period_start == period_start,
                PaymentAuthorization.status != AuthorizationStatus.FAILED,
            )
        )
        return set(result.scalars().all())

    async def _authorize_each(
        self,
        booking_ids: list[uuid.UUID],
        period_start: date,
        period_end: date,
    ) -> dict[str, Any]:
        summary: dict[str, Any] = {"authorized": 0, "failed": 0, "errors": []}
        for booking_id in booking_ids:
            try:
                authorization = await self.payments.authorize_booking_payment(
                    booking_id, period_start, period_end
                )
            except (AppError, SQLAlchemyError) as e:
                await self.db.rollback()
                logger.error(f"Authorization sweep failed for booking {booking_id}: {e}")
                summary["errors"].append({"booking_id": str(booking_id), "error": str(e)})
                continue
            if authorization.status is AuthorizationStatus.AUTHORIZED:
                summary["authorized"] += 1
            else:
                summary["failed"] += 1
        return summary

    async def authorize_upcoming_period(self, today: date | None = None) -> dict[str, Any]:
        """Authorize next month for every billable long-term booking not yet covered"""
        today = today or date.today()
        period_start, period_end = next_billing_period(today)

        booking_ids = await self._billable_booking_ids(period_start, period_end)
        covered = await self._covered_booking_ids(period_start)
        pending = [b for b in booking_ids if b not in covered]

        summary = await self._authorize_each(pending, period_start, period_end)
        summary.update({
            "period_start": period_start.isoformat(),
            "period_end": period_end.isoformat(),
            "skipped": len(booking_ids) - len(pending),
        })
        logger.info(f"Authorization sweep complete: {summary}")
        return summary

    async def capture_due_authorizations(self, now: datetime | None = None) -> dict[str, Any]:
        """Capture every authorization held at least the minimum hold period"""
        now = as_utc(now) if now else utcnow()
        cutoff = now - timedelta(days=settings.capture_min_hold_days)

        result = await self.db.execute(
            select(PaymentAuthorization.id, PaymentAuthorization.authorized_at)
            .where(PaymentAuthorization.status == AuthorizationStatus.AUTHORIZED)
            .order_by(PaymentAuthorization.authorized_at)
        )
        due = [
            auth_id for auth_id, authorized_at in result.all()
            if authorized_at is not None and as_utc(authorized_at) <= cutoff
        ]

        summary: dict[str, Any] = {"captured": 0, "failed": 0, "errors": []}
        for authorization_id in due:
            try:
                authorization = await self.payments.capture_authorization(authorization_id, now=now)
            except (AppError, SQLAlchemyError) as e:
                await self.db.rollback()
                logger.error(f"Capture sweep failed for authorization {authorization_id}: {e}")
                summary["errors"].append({"authorization_id": str(authorization_id), "error": str(e)})
                continue
            if authorization.status is AuthorizationStatus.CAPTURED:
                summary["captured"] += 1
            else:
                summary["failed"] += 1

        logger.info(f"Capture sweep complete: {summary}")
        return summary

    async def retry_failed_authorizations(self, today: date | None = None) -> dict[str, Any]:
        """
        Re-authorize current or upcoming periods whose only attempts failed

        Pending bookings are included: a declined first hold leaves the booking
        pending until a retry succeeds. A period whose capture failed is never
        retried here; the hold was placed once already and admins were alerted.
        """
        today = today or date.today()
        result = await self.db.execute(
            select(
                PaymentAuthorization.booking_id,
                PaymentAuthorization.period_start,
                PaymentAuthorization.period_end,
                PaymentAuthorization.attempt_count,
                PaymentAuthorization.authorized_at,
            )
            .join(Booking, Booking.id == PaymentAuthorization.booking_id)
            .where(
                PaymentAuthorization.status == AuthorizationStatus.FAILED,
                PaymentAuthorization.period_end >= today,
                Booking.status.in_(RETRYABLE_STATUSES),
            )
        )
        # Keep the highest attempt count per (booking, period)
        periods: dict[tuple[uuid.UUID, date], tuple[date, int]] = {}
        capture_failed: set[tuple[uuid.UUID, date]] = set()
        for booking_id, period_start, period_end, attempts, authorized_at in result.all():
            key = (booking_id, period_start)
            # Only a successful hold sets authorized_at, so this row failed at capture
            if authorized_at is not None:
                capture_failed.add(key)
            if key not in periods or attempts > periods[key][1]:
                periods[key] = (period_end, attempts)
        for key in capture_failed:
            periods.pop(key, None)

        covered: dict[date, set[uuid.UUID]] = {}
        summary: dict[str, Any] = {"authorized": 0, "failed": 0, "exhausted": 0, "errors": []}
        for (booking_id, period_start), (period_end, attempts) in sorted(periods.items(), key=lambda item: item[0][1]):
            if period_start not in covered:
                covered[period_start] = await self._covered_booking_ids(period_start)
            if booking_id in covered[period_start]:
                continue
            if attempts >= MAX_AUTHORIZATION_ATTEMPTS:
                summary["exhausted"] += 1
                continue
            partial = await self._authorize_each([booking_id], period_start, period_end)
            summary["authorized"] += partial["authorized"]
            summary["failed"] += partial["failed"]
            summary["errors"].extend(partial["errors"])

        logger.info(f"Authorization retry sweep complete: {summary}")
        return summary
