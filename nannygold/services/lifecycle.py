"""Booking lifecycle service

Every status change is a conditional UPDATE guarded on the status the caller
last saw. When the row has moved on, zero rows match and ConflictError is
raised instead of overwriting a concurrent change.
"""

import logging
import uuid
from collections.abc import Collection
from datetime import date, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.config import settings
from nannygold.db.models import (
    ApprovalStatus,
    AuthorizationStatus,
    Booking,
    BookingFinancials,
    BookingStatus,
    BookingType,
    Client,
    Nanny,
    PaymentAuthorization,
)
from nannygold.errors import ConflictError, NotFoundError, ValidationError
from nannygold.schemas.bookings import BookingCreate
from nannygold.services.candidates import CandidateSelector, nanny_supports
from nannygold.services.notifications import NotificationService
from nannygold.services.revenue import normalize_home_size, split_for_booking, to_money
from nannygold.utils.dates import utcnow

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.REASSIGNED,
        BookingStatus.ADMIN_INTERVENTION_REQUIRED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.ACTIVE, BookingStatus.CANCELLED}),
    BookingStatus.ACTIVE: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.REASSIGNED: frozenset({
        BookingStatus.ACTIVE,
        BookingStatus.ADMIN_INTERVENTION_REQUIRED,
    }),
    BookingStatus.ADMIN_INTERVENTION_REQUIRED: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED})

# Bookings that still hold the nanny's calendar
OCCUPYING_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.ACTIVE,
})

LONG_TERM_DEFAULT_LEAD_DAYS = 7


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


async def guarded_booking_update(
    db: AsyncSession,
    booking_id: uuid.UUID,
    expected: BookingStatus | Collection[BookingStatus],
    **values: Any,
) -> None:
    """UPDATE bookings SET ... WHERE id = :id AND status IN (:expected)

    Does not commit. Raises ConflictError when no row matched.
    """
    statuses = [expected] if isinstance(expected, BookingStatus) else list(expected)
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status.in_(statuses))
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        raise ConflictError(
            f"Booking {booking_id} is no longer in status {', '.join(s.value for s in statuses)}",
            booking_id=str(booking_id),
        )


async def load_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    booking = await db.get(Booking, booking_id)
    if not booking:
        raise NotFoundError(f"Booking {booking_id} not found", booking_id=str(booking_id))
    return booking


class BookingLifecycleService:
    """Creates bookings and moves them through the status table"""

    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    async def get_booking(self, booking_id: uuid.UUID) -> Booking:
        return await load_booking(self.db, booking_id)

    async def list_bookings(
        self,
        client_id: uuid.UUID | None = None,
        nanny_id: uuid.UUID | None = None,
        status: BookingStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Booking]:
        query = select(Booking).order_by(Booking.created_at.desc(), Booking.id)
        if client_id:
            query = query.where(Booking.client_id == client_id)
        if nanny_id:
            query = query.where(Booking.nanny_id == nanny_id)
        if status:
            query = query.where(Booking.status == status)
        result = await self.db.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    async def create_booking(
        self,
        client_id: uuid.UUID,
        request: BookingCreate,
        today: date | None = None,
    ) -> Booking:
        """
        Validate a booking request, pick the nanny and persist it as pending

        Financials are not computed here; they are fixed at the first capture.
        """
        today = today or date.today()
        client = await self.db.get(Client, client_id)
        if not client:
            raise NotFoundError(f"Client profile {client_id} not found")

        start_date, end_date, home_size = self._validate_request(request, client, today)
        base_rate = to_money(request.base_rate)
        additional = to_money(request.additional_services_cost)
        if base_rate < 0 or additional < 0:
            raise ValidationError("Rates must be zero or greater")

        services = dict(request.services)
        if request.booking_type is BookingType.LONG_TERM:
            surcharge = self._household_surcharge(client)
            if surcharge:
                services["household_surcharge"] = float(surcharge)
                additional += surcharge

        booking = Booking(
            id=uuid.uuid4(),
            client_id=client_id,
            start_date=start_date,
            end_date=end_date,
            booking_type=request.booking_type,
            status=BookingStatus.PENDING,
            base_rate=base_rate,
            additional_services_cost=additional,
            cost_adjustment=Decimal("0.00"),
            total_cost=base_rate + additional,
            home_size=home_size,
            living_arrangement=request.living_arrangement,
            required_skills=list(request.required_skills),
            services=services,
            notes=request.notes,
        )

        nanny = await self._select_nanny(booking, request.nanny_id)
        booking.nanny_id = nanny.id
        await self._ensure_no_overlap(booking)

        self.db.add(booking)
        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            f"Created booking {booking.id}",
            extra={
                "booking_id": str(booking.id),
                "client_id": str(client_id),
                "nanny_id": str(nanny.id),
                "booking_type": booking.booking_type.value,
                "total_cost": str(booking.total_cost),
            },
        )

        await self.notifications.send(
            nanny.id,
            "New Booking Request",
            f"You have a new {booking.booking_type.value.replace('_', '-')} booking request "
            f"starting {booking.start_date.isoformat()}.",
            "booking_request",
            {"booking_id": str(booking.id)},
        )
        return booking

    def _validate_request(
        self,
        request: BookingCreate,
        client: Client,
        today: date,
    ) -> tuple[date, date | None, Any]:
        start_date = request.start_date
        end_date = request.end_date

        if request.booking_type is BookingType.LONG_TERM:
            home_size = normalize_home_size(request.home_size or client.home_size)
            if start_date is None:
                start_date = today + timedelta(days=LONG_TERM_DEFAULT_LEAD_DAYS)
            if start_date < today:
                raise ValidationError("Long-term bookings cannot start in the past")
        else:
            home_size = request.home_size
            if start_date is None:
                raise ValidationError("start_date is required for short-term bookings")

        if end_date is not None and end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        return start_date, end_date, home_size

    def _household_surcharge(self, client: Client) -> Decimal:
        """Flat amount per child and per dependent beyond the included counts"""
        extra_children = max((client.number_of_children or 0) - settings.included_children, 0)
        extra_dependents = max((client.other_dependents or 0) - settings.included_dependents, 0)
        return to_money(
            Decimal(str(settings.child_surcharge_amount)) * (extra_children + extra_dependents)
        )

    async def _select_nanny(self, booking: Booking, requested_id: uuid.UUID | None) -> Nanny:
        if requested_id:
            nanny = await self.db.get(Nanny, requested_id)
            if not nanny:
                raise NotFoundError(f"Nanny {requested_id} not found")
            eligible = (
                nanny.approval_status == ApprovalStatus.APPROVED
                and nanny.is_available
                and nanny.can_receive_bookings
                and nanny_supports(
                    nanny,
                    booking.booking_type.value,
                    booking.living_arrangement,
                    booking.required_skills,
                )
            )
            if eligible:
                return nanny
            logger.info(
                f"Requested nanny {requested_id} cannot take booking {booking.id}, ranking alternatives"
            )

        candidates = await CandidateSelector(self.db).find_candidates(booking, limit=1)
        if not candidates:
            raise ConflictError("No available nanny matches this booking request")
        return candidates[0]

    async def _ensure_no_overlap(self, booking: Booking) -> None:
        query = select(Booking.id).where(
            Booking.client_id == booking.client_id,
            Booking.nanny_id == booking.nanny_id,
            Booking.status.in_(OCCUPYING_STATUSES),
            or_(Booking.end_date.is_(None), Booking.end_date >= booking.start_date),
        )
        if booking.end_date is not None:
            query = query.where(Booking.start_date <= booking.end_date)
        existing = (await self.db.execute(query.limit(1))).scalar_one_or_none()
        if existing:
            raise ConflictError(
                "An overlapping booking with this nanny already exists",
                existing_booking_id=str(existing),
            )

    async def transition(
        self,
        booking_id: uuid.UUID,
        target: BookingStatus,
        expected: BookingStatus | None = None,
        **values: Any,
    ) -> Booking:
        """Move a booking to ``target`` if the status table allows it"""
        booking = await self.get_booking(booking_id)
        current = expected or booking.status
        if not can_transition(current, target):
            raise ConflictError(
                f"Cannot move booking from {current.value} to {target.value}",
                booking_id=str(booking_id),
                status=booking.status.value,
            )

        await guarded_booking_update(self.db, booking_id, current, status=target, **values)
        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            f"Booking {booking_id} moved {current.value} -> {target.value}",
            extra={"booking_id": str(booking_id), "from_status": current.value, "to_status": target.value},
        )
        return booking

    async def confirm_booking(self, booking_id: uuid.UUID) -> Booking:
        return await self.transition(booking_id, BookingStatus.CONFIRMED)

    async def activate_booking(self, booking_id: uuid.UUID) -> Booking:
        return await self.transition(booking_id, BookingStatus.ACTIVE)

    async def complete_booking(self, booking_id: uuid.UUID) -> Booking:
        booking = await self.transition(booking_id, BookingStatus.COMPLETED)
        await self.notifications.send(
            booking.client_id,
            "Booking Completed",
            "Your booking has been marked as completed.",
            "booking_completed",
            {"booking_id": str(booking.id)},
        )
        return booking

    async def _void_open_holds(self, booking_id: uuid.UUID) -> None:
        """Fail every hold not yet captured so no sweep charges a cancelled booking"""
        result = await self.db.execute(
            update(PaymentAuthorization)
            .where(
                PaymentAuthorization.booking_id == booking_id,
                PaymentAuthorization.status.in_(
                    (AuthorizationStatus.PENDING, AuthorizationStatus.AUTHORIZED)
                ),
            )
            .values(status=AuthorizationStatus.FAILED, failure_reason="Booking cancelled")
            .execution_options(synchronize_session="fetch")
        )
        await self.db.commit()
        if result.rowcount:
            logger.info(
                f"Voided {result.rowcount} open payment holds for cancelled booking {booking_id}",
                extra={"booking_id": str(booking_id)},
            )

    async def cancel_booking(self, booking_id: uuid.UUID, reason: str | None = None) -> Booking:
        booking = await self.get_booking(booking_id)
        values: dict[str, Any] = {}
        if reason:
            values["notes"] = f"{booking.notes}\nCancelled: {reason}" if booking.notes else f"Cancelled: {reason}"
        booking = await self.transition(booking_id, BookingStatus.CANCELLED, **values)
        await self._void_open_holds(booking.id)

        for user_id in (booking.client_id, booking.nanny_id):
            await self.notifications.send(
                user_id,
                "Booking Cancelled",
                f"Booking starting {booking.start_date.isoformat()} has been cancelled.",
                "booking_cancelled",
                {"booking_id": str(booking.id), "reason": reason},
            )
        return booking

    async def _correct_financials(
        self,
        booking: Booking,
        reason: str,
        corrected_by: uuid.UUID | None,
    ) -> None:
        financials = (await self.db.execute(
            select(BookingFinancials).where(BookingFinancials.booking_id == booking.id)
        )).scalar_one_or_none()
        if financials is None:
            return

        split = split_for_booking(booking)
        financials.gross_amount = to_money(booking.total_cost)
        financials.fixed_fee = split.fixed_fee
        financials.commission_percent = split.commission_percent
        financials.commission_amount = split.commission_amount
        financials.payer_total_revenue = split.payer_total
        financials.payee_net_earnings = split.payee_net
        financials.corrected_at = utcnow()
        financials.corrected_by = corrected_by
        financials.correction_reason = reason

    async def adjust_booking_cost(
        self,
        booking_id: uuid.UUID,
        delta: Decimal,
        reason: str,
        corrected_by: uuid.UUID | None = None,
    ) -> Booking:
        """
        Apply a modification request to cost_adjustment and total_cost together

        Financials already fixed by a capture are recomputed on the new total
        and stamped with the correction trail.
        """
        booking = await self.get_booking(booking_id)
        if booking.status in TERMINAL_STATUSES:
            raise ConflictError(
                f"Cannot adjust a {booking.status.value} booking",
                booking_id=str(booking_id),
            )

        adjustment = to_money(booking.cost_adjustment + to_money(delta))
        total = to_money(booking.base_rate + booking.additional_services_cost + adjustment)
        if total < 0:
            raise ValidationError("Adjustment would make the booking total negative", total=str(total))

        note = f"Cost adjustment {to_money(delta)}: {reason}"
        await guarded_booking_update(
            self.db,
            booking_id,
            booking.status,
            cost_adjustment=adjustment,
            total_cost=total,
            notes=f"{booking.notes}\n{note}" if booking.notes else note,
        )
        await self._correct_financials(booking, reason, corrected_by)
        await self.db.commit()
        await self.db.refresh(booking)

        logger.info(
            f"Adjusted booking {booking_id} by {delta}",
            extra={"booking_id": str(booking_id), "total_cost": str(total)},
        )
        return booking
