"""Nanny rejection, automatic reassignment and admin escalation"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.config import settings
from nannygold.db.models import (
    ApprovalStatus,
    Booking,
    BookingReassignment,
    BookingStatus,
    ClientResponse,
    Nanny,
)
from nannygold.errors import (
    ConflictError,
    NoCandidateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from nannygold.services.candidates import CandidateSelector, snapshot
from nannygold.services.email_notifications import EmailTemplate
from nannygold.services.lifecycle import (
    TERMINAL_STATUSES,
    can_transition,
    guarded_booking_update,
    load_booking,
)
from nannygold.services.notifications import NotificationService
from nannygold.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

NANNY_REJECTION = "nanny_rejection"
ADMIN_INITIATED = "admin_initiated"
NO_AVAILABLE_NANNIES = "no_available_nannies"
CLIENT_REJECTED = "client_rejected_reassignment"
RESPONSE_TIMEOUT = "reassignment_response_timeout"


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note


class ReassignmentService:
    """Keeps a booking staffed when its nanny declines"""

    def __init__(self, db: AsyncSession, notifications: NotificationService | None = None):
        self.db = db
        self.notifications = notifications or NotificationService(db)

    async def _open_reassignments(self, booking_id: uuid.UUID) -> list[BookingReassignment]:
        result = await self.db.execute(
            select(BookingReassignment)
            .where(
                BookingReassignment.original_booking_id == booking_id,
                BookingReassignment.client_response == ClientResponse.PENDING,
                BookingReassignment.resolved_at.is_(None),
                BookingReassignment.escalated_to_admin.is_(False),
            )
            .order_by(BookingReassignment.created_at.desc())
        )
        return list(result.scalars().all())

    async def _get_reassignment(self, reassignment_id: uuid.UUID) -> BookingReassignment:
        reassignment = await self.db.get(BookingReassignment, reassignment_id)
        if not reassignment:
            raise NotFoundError(f"Reassignment {reassignment_id} not found")
        return reassignment

    async def handle_nanny_rejection(
        self,
        booking_id: uuid.UUID,
        nanny_id: uuid.UUID,
        reason: str | None = None,
    ) -> BookingReassignment:
        """
        Replace a nanny who declined a booking with the best-rated eligible nanny

        The client keeps a short list of alternatives and can accept the new
        nanny or pick one of them. When nobody is eligible the booking is
        escalated to admins and NoCandidateError is raised.
        """
        booking = await load_booking(self.db, booking_id)
        if booking.nanny_id != nanny_id:
            raise PermissionDeniedError("Only the assigned nanny can decline this booking")
        if booking.status not in (BookingStatus.PENDING, BookingStatus.REASSIGNED):
            raise ConflictError(
                f"A {booking.status.value} booking cannot be declined",
                booking_id=str(booking_id),
                status=booking.status.value,
            )

        expected = booking.status
        open_reassignments = await self._open_reassignments(booking.id)
        excluded = {nanny_id} | {r.original_nanny_id for r in open_reassignments}
        candidates = await CandidateSelector(self.db).find_candidates(booking, exclude_ids=excluded)

        if not candidates:
            await self._escalate(
                booking,
                expected,
                NO_AVAILABLE_NANNIES,
                reassignments=open_reassignments,
                details={"rejected_by": str(nanny_id), "rejection_reason": reason},
            )
            raise NoCandidateError(
                "No available nannies for this booking; it has been escalated to an admin",
                booking_id=booking.id,
            )

        top = candidates[0]
        alternatives = candidates[1:1 + settings.max_alternative_candidates]
        original_name = booking.nanny.profile.full_name if booking.nanny and booking.nanny.profile else "Unknown"
        now = utcnow()

        reassignment = BookingReassignment(
            id=uuid.uuid4(),
            original_booking_id=booking.id,
            original_nanny_id=nanny_id,
            new_nanny_id=top.id,
            client_id=booking.client_id,
            reassignment_reason=NANNY_REJECTION,
            alternative_nannies=[snapshot(n) for n in alternatives],
            client_response=ClientResponse.PENDING,
            admin_notes=f"Nanny reason: {reason}" if reason else None,
            respond_by=now + timedelta(hours=settings.reassignment_response_window_hours),
        )
        try:
            await guarded_booking_update(
                self.db,
                booking.id,
                expected,
                nanny_id=top.id,
                status=BookingStatus.REASSIGNED,
            )
            for superseded in open_reassignments:
                superseded.resolved_at = now
                superseded.admin_notes = _append_note(superseded.admin_notes, "Superseded by a later reassignment")
            self.db.add(reassignment)
            await self.db.commit()
        except (ConflictError, SQLAlchemyError):
            await self.db.rollback()
            raise
        await self.db.refresh(booking)
        await self.db.refresh(reassignment)

        logger.info(
            f"Booking {booking.id} reassigned from {nanny_id} to {top.id}",
            extra={
                "booking_id": str(booking.id),
                "reassignment_id": str(reassignment.id),
                "alternatives": len(alternatives),
            },
        )

        payload = {
            "booking_id": str(booking.id),
            "reassignment_id": str(reassignment.id),
            "new_payee_id": str(top.id),
            "alternative_payee_ids": [str(n.id) for n in alternatives],
            "reason": reassignment.reassignment_reason,
        }
        new_name = top.profile.full_name if top.profile else "a new nanny"
        await self.notifications.send(
            booking.client_id,
            "Nanny Reassigned",
            f"Your original nanny is unavailable. We've assigned {new_name} to your booking. "
            "You can accept this nanny or choose one of the alternatives.",
            "booking_reassigned",
            payload,
        )
        await self.notifications.send(
            top.id,
            "New Booking Assignment",
            f"You have been assigned a booking starting {booking.start_date.isoformat()}.",
            "booking_assigned",
            payload,
        )
        await self.notifications.notify_admins(
            "Booking Reassigned",
            f"Booking {booking.id} was reassigned from {original_name} to {new_name}.",
            "admin_booking_reassignment",
            payload,
        )
        self.notifications.send_admin_email(
            f"Booking Reassigned: {booking.id}",
            EmailTemplate.reassignment_html(
                str(booking.id), original_name, new_name, reassignment.reassignment_reason, len(alternatives)
            ),
        )
        return reassignment

    async def _escalate(
        self,
        booking: Booking,
        expected: BookingStatus,
        reason: str,
        reassignments: list[BookingReassignment] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Hand a booking to admins: status change, reassignment flags, alerts"""
        note = f"Escalated: {reason}"
        try:
            await guarded_booking_update(
                self.db,
                booking.id,
                expected,
                status=BookingStatus.ADMIN_INTERVENTION_REQUIRED,
                notes=_append_note(booking.notes, note),
            )
            for reassignment in reassignments or []:
                reassignment.escalated_to_admin = True
                reassignment.admin_notes = _append_note(reassignment.admin_notes, note)
            await self.db.commit()
        except (ConflictError, SQLAlchemyError):
            await self.db.rollback()
            raise
        await self.db.refresh(booking)

        logger.warning(
            f"Booking {booking.id} escalated to admin: {reason}",
            extra={"booking_id": str(booking.id), "reason": reason},
        )
        await self._alert_admins(booking, reason, details)

    async def _alert_admins(self, booking: Booking, reason: str, details: dict[str, Any] | None) -> None:
        payload = {
            "booking_id": str(booking.id),
            "reason": reason,
            "priority": "urgent",
            **{k: v for k, v in (details or {}).items() if v is not None},
        }
        await self.notifications.notify_admins(
            "URGENT: Booking Requires Admin Intervention",
            f"Booking {booking.id} requires admin intervention: {reason.replace('_', ' ')}.",
            "admin_escalation",
            payload,
        )
        self.notifications.send_admin_email(
            f"URGENT: Booking Requires Admin Intervention - {booking.id}",
            EmailTemplate.escalation_html(str(booking.id), reason, details),
        )

    async def respond_to_reassignment(
        self,
        reassignment_id: uuid.UUID,
        client_id: uuid.UUID,
        response: ClientResponse | str,
        selected_nanny_id: uuid.UUID | None = None,
        notes: str | None = None,
    ) -> BookingReassignment:
        """Client accepts the new nanny (optionally picking an alternative) or rejects"""
        response = ClientResponse(response)
        if response is ClientResponse.PENDING:
            raise ValidationError("Response must be accepted or rejected")

        reassignment = await self._get_reassignment(reassignment_id)
        if reassignment.client_id != client_id:
            raise PermissionDeniedError("This reassignment belongs to another client")
        if not reassignment.is_open:
            raise ConflictError("This reassignment has already been resolved")

        booking = await load_booking(self.db, reassignment.original_booking_id)
        now = utcnow()

        if response is ClientResponse.REJECTED:
            reassignment.client_response = ClientResponse.REJECTED
            reassignment.responded_at = now
            await self._escalate(
                booking,
                BookingStatus.REASSIGNED,
                CLIENT_REJECTED,
                reassignments=[reassignment],
                details={"reassignment_id": str(reassignment.id), "client_notes": notes},
            )
            return reassignment

        auto_selected = reassignment.new_nanny_id
        chosen = selected_nanny_id or auto_selected
        allowed = {auto_selected} | {uuid.UUID(str(a["id"])) for a in reassignment.alternative_nannies}
        if chosen not in allowed:
            raise ValidationError("Selected nanny was not offered for this reassignment")

        nanny = await self.db.get(Nanny, chosen)
        if not nanny or nanny.approval_status != ApprovalStatus.APPROVED or not nanny.is_available:
            raise ConflictError("Selected nanny is no longer available")

        try:
            await guarded_booking_update(
                self.db,
                booking.id,
                BookingStatus.REASSIGNED,
                nanny_id=chosen,
                status=BookingStatus.ACTIVE,
            )
            reassignment.client_response = ClientResponse.ACCEPTED
            reassignment.responded_at = now
            reassignment.resolved_at = now
            reassignment.new_nanny_id = chosen
            await self.db.commit()
        except (ConflictError, SQLAlchemyError):
            await self.db.rollback()
            raise
        await self.db.refresh(booking)

        logger.info(
            f"Client accepted reassignment {reassignment.id} with nanny {chosen}",
            extra={"booking_id": str(booking.id), "reassignment_id": str(reassignment.id)},
        )

        await self.notifications.send(
            chosen,
            "Booking Confirmed",
            f"The client confirmed you for the booking starting {booking.start_date.isoformat()}.",
            "booking_confirmed",
            {"booking_id": str(booking.id), "reassignment_id": str(reassignment.id)},
        )
        if chosen != auto_selected:
            await self.notifications.send(
                auto_selected,
                "Booking Assignment Withdrawn",
                "The client chose a different nanny for this booking.",
                "booking_assignment_withdrawn",
                {"booking_id": str(booking.id)},
            )
        return reassignment

    async def admin_reassign(
        self,
        booking_id: uuid.UUID,
        new_nanny_id: uuid.UUID,
        admin_id: uuid.UUID,
        notes: str | None = None,
    ) -> BookingReassignment:
        """Admin picks the nanny directly; no ranking is applied"""
        booking = await load_booking(self.db, booking_id)
        if booking.status in TERMINAL_STATUSES:
            raise ConflictError(f"Cannot reassign a {booking.status.value} booking")
        nanny = await self.db.get(Nanny, new_nanny_id)
        if not nanny:
            raise NotFoundError(f"Nanny {new_nanny_id} not found")
        if nanny.id == booking.nanny_id:
            raise ValidationError("Booking is already assigned to this nanny")

        # The admin's choice stands in for the client's acceptance
        target = {
            BookingStatus.REASSIGNED: BookingStatus.ACTIVE,
            BookingStatus.ADMIN_INTERVENTION_REQUIRED: BookingStatus.CONFIRMED,
        }.get(booking.status, booking.status)
        expected = booking.status
        original_nanny_id = booking.nanny_id
        now = utcnow()

        reassignment = BookingReassignment(
            id=uuid.uuid4(),
            original_booking_id=booking.id,
            original_nanny_id=original_nanny_id,
            new_nanny_id=nanny.id,
            client_id=booking.client_id,
            reassignment_reason=ADMIN_INITIATED,
            alternative_nannies=[],
            client_response=ClientResponse.PENDING,
            resolved_at=now,
            admin_id=admin_id,
            admin_notes=notes,
        )
        try:
            open_reassignments = await self._open_reassignments(booking.id)
            await guarded_booking_update(
                self.db,
                booking.id,
                expected,
                nanny_id=nanny.id,
                status=target,
            )
            for previous in open_reassignments:
                previous.resolved_at = now
                previous.admin_id = admin_id
                previous.admin_notes = _append_note(previous.admin_notes, "Closed by admin reassignment")
            self.db.add(reassignment)
            await self.db.commit()
        except (ConflictError, SQLAlchemyError):
            await self.db.rollback()
            raise
        await self.db.refresh(booking)
        await self.db.refresh(reassignment)

        logger.info(
            f"Admin {admin_id} reassigned booking {booking.id} to {nanny.id}",
            extra={"booking_id": str(booking.id), "from_status": expected.value, "to_status": target.value},
        )

        payload = {
            "booking_id": str(booking.id),
            "reassignment_id": str(reassignment.id),
            "new_payee_id": str(nanny.id),
            "reason": ADMIN_INITIATED,
        }
        new_name = nanny.profile.full_name if nanny.profile else "a new nanny"
        await self.notifications.send(
            booking.client_id,
            "Nanny Reassigned",
            f"Our team has assigned {new_name} to your booking.",
            "booking_reassigned",
            payload,
        )
        await self.notifications.send(
            nanny.id,
            "New Booking Assignment",
            f"You have been assigned a booking starting {booking.start_date.isoformat()}.",
            "booking_assigned",
            payload,
        )
        return reassignment

    async def escalate_booking(
        self,
        booking_id: uuid.UUID,
        reason: str,
        additional_info: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Explicitly flag a booking for admin attention

        Bookings whose status can move to admin_intervention_required do so;
        confirmed and active bookings keep their status and admins are alerted.
        """
        booking = await load_booking(self.db, booking_id)
        if booking.status in TERMINAL_STATUSES:
            raise ConflictError(f"Cannot escalate a {booking.status.value} booking")

        if can_transition(booking.status, BookingStatus.ADMIN_INTERVENTION_REQUIRED):
            await self._escalate(
                booking,
                booking.status,
                reason,
                reassignments=await self._open_reassignments(booking.id),
                details=additional_info,
            )
            return {"booking_id": str(booking.id), "status": booking.status.value, "status_changed": True}

        await self._alert_admins(booking, reason, additional_info)
        return {"booking_id": str(booking.id), "status": booking.status.value, "status_changed": False}

    async def expire_stale_reassignments(self, now: datetime | None = None) -> dict[str, int]:
        """Escalate automatic reassignments the client left unanswered past respond_by"""
        now = as_utc(now) if now else utcnow()
        result = await self.db.execute(
            select(BookingReassignment).where(
                BookingReassignment.client_response == ClientResponse.PENDING,
                BookingReassignment.resolved_at.is_(None),
                BookingReassignment.escalated_to_admin.is_(False),
                BookingReassignment.respond_by.is_not(None),
            )
        )
        stale = [r for r in result.scalars().all() if as_utc(r.respond_by) < now]

        summary = {"escalated": 0, "closed": 0, "conflicts": 0}
        for reassignment in stale:
            booking = await load_booking(self.db, reassignment.original_booking_id)
            if booking.status is not BookingStatus.REASSIGNED:
                # Booking moved on without a client response
                reassignment.resolved_at = now
                await self.db.commit()
                summary["closed"] += 1
                continue
            try:
                await self._escalate(
                    booking,
                    BookingStatus.REASSIGNED,
                    RESPONSE_TIMEOUT,
                    reassignments=[reassignment],
                    details={"reassignment_id": str(reassignment.id)},
                )
                summary["escalated"] += 1
            except ConflictError:
                logger.info(f"Booking {booking.id} changed during timeout sweep, skipping")
                summary["conflicts"] += 1

        if stale:
            logger.info(f"Reassignment timeout sweep: {summary}")
        return summary

    async def search_bookings_for_reassignment(self, term: str, limit: int = 20) -> list[dict[str, Any]]:
        """Match open bookings by id prefix, client name or nanny name"""
        needle = term.strip().lower()
        if len(needle) < 2:
            raise ValidationError("Search term must be at least 2 characters")

        result = await self.db.execute(
            select(Booking)
            .where(Booking.status.not_in(TERMINAL_STATUSES))
            .order_by(Booking.created_at.desc())
        )
        rows = []
        for booking in result.scalars().all():
            client_name = booking.client.profile.full_name if booking.client and booking.client.profile else ""
            nanny_name = booking.nanny.profile.full_name if booking.nanny and booking.nanny.profile else ""
            if not (
                str(booking.id).startswith(needle)
                or needle in client_name.lower()
                or needle in nanny_name.lower()
            ):
                continue
            rows.append({
                "booking_id": str(booking.id),
                "status": booking.status.value,
                "booking_type": booking.booking_type.value,
                "start_date": booking.start_date.isoformat(),
                "client_name": client_name,
                "nanny_id": str(booking.nanny_id),
                "nanny_name": nanny_name,
            })
            if len(rows) >= limit:
                break
        return rows

    async def list_pending_reassignments(self, client_id: uuid.UUID) -> list[BookingReassignment]:
        result = await self.db.execute(
            select(BookingReassignment)
            .where(
                BookingReassignment.client_id == client_id,
                BookingReassignment.client_response == ClientResponse.PENDING,
                BookingReassignment.resolved_at.is_(None),
                BookingReassignment.escalated_to_admin.is_(False),
            )
            .order_by(BookingReassignment.created_at.desc())
        )
        return list(result.scalars().all())
