"""Booking API endpoints"""

import logging
from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.api.deps import CurrentUser, get_current_user, require_admin
from nannygold.db.database import get_db
from nannygold.db.models import Booking, BookingFinancials, BookingStatus, BookingType, HomeSize, UserRole
from nannygold.errors import NotFoundError, PermissionDeniedError
from nannygold.schemas.bookings import (
    BookingCreate,
    BookingResponse,
    CancelRequest,
    CostAdjustmentRequest,
    FinancialsResponse,
    RejectionRequest,
)
from nannygold.schemas.reassignments import ReassignmentResponse
from nannygold.services.lifecycle import BookingLifecycleService
from nannygold.services.reassignment import ReassignmentService
from nannygold.services.revenue import calculate_revenue_split

logger = logging.getLogger(__name__)
router = APIRouter()


def ensure_party(booking: Booking, user: CurrentUser) -> None:
    """Only the booking's client, its nanny, or an admin may touch it"""
    if user.is_admin or user.user_id in (booking.client_id, booking.nanny_id):
        return
    raise PermissionDeniedError("Not a party to this booking")


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Create a booking for the calling client"""
    if user.role is not UserRole.CLIENT:
        raise PermissionDeniedError("Only clients can create bookings")
    booking = await BookingLifecycleService(db).create_booking(user.user_id, request)
    return {"success": True, "data": BookingResponse.model_validate(booking)}


@router.get("/")
async def list_bookings(
    status_filter: BookingStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    service = BookingLifecycleService(db)
    scope: dict[str, UUID] = {}
    if user.role is UserRole.CLIENT:
        scope["client_id"] = user.user_id
    elif user.role is UserRole.NANNY:
        scope["nanny_id"] = user.user_id

    bookings = await service.list_bookings(status=status_filter, limit=limit, offset=offset, **scope)
    return {
        "success": True,
        "data": [BookingResponse.model_validate(b) for b in bookings],
        "limit": limit,
        "offset": offset,
    }


@router.get("/revenue-split")
async def quote_revenue_split(
    booking_type: BookingType,
    amount: Decimal = Query(..., ge=0),
    home_size: HomeSize | None = None,
    booking_days: int = Query(1),
) -> dict[str, Any]:
    """Price preview; nothing is persisted"""
    split = calculate_revenue_split(booking_type, amount, home_size, booking_days)
    return {"success": True, "data": split.to_dict()}


@router.get("/{booking_id}")
async def get_booking(
    booking_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    booking = await BookingLifecycleService(db).get_booking(booking_id)
    ensure_party(booking, user)
    return {"success": True, "data": BookingResponse.model_validate(booking)}


@router.get("/{booking_id}/financials")
async def get_booking_financials(
    booking_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    booking = await BookingLifecycleService(db).get_booking(booking_id)
    ensure_party(booking, user)
    financials = (await db.execute(
        select(BookingFinancials).where(BookingFinancials.booking_id == booking_id)
    )).scalar_one_or_none()
    if not financials:
        raise NotFoundError(f"No financials recorded for booking {booking_id} yet")
    return {"success": True, "data": FinancialsResponse.model_validate(financials)}


@router.post("/{booking_id}/cancel")
async def cancel_booking(
    booking_id: UUID,
    request: CancelRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    service = BookingLifecycleService(db)
    booking = await service.get_booking(booking_id)
    if not (user.is_admin or user.user_id == booking.client_id):
        raise PermissionDeniedError("Only the client or an admin can cancel a booking")
    booking = await service.cancel_booking(booking_id, request.reason)
    return {"success": True, "data": BookingResponse.model_validate(booking)}


@router.post("/{booking_id}/complete")
async def complete_booking(
    booking_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    service = BookingLifecycleService(db)
    ensure_party(await service.get_booking(booking_id), user)
    booking = await service.complete_booking(booking_id)
    return {"success": True, "data": BookingResponse.model_validate(booking)}


@router.post("/{booking_id}/adjustments")
async def adjust_booking_cost(
    booking_id: UUID,
    request: CostAdjustmentRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Apply an approved modification request to the booking total"""
    booking = await BookingLifecycleService(db).adjust_booking_cost(
        booking_id, request.delta, request.reason, corrected_by=admin.user_id
    )
    logger.info(f"Admin {admin.user_id} adjusted booking {booking_id}")
    return {"success": True, "data": BookingResponse.model_validate(booking)}


@router.post("/{booking_id}/reject")
async def reject_booking(
    booking_id: UUID,
    request: RejectionRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Assigned nanny declines; the booking is reassigned or escalated"""
    if user.role is not UserRole.NANNY:
        raise PermissionDeniedError("Only nannies can decline bookings")
    reassignment = await ReassignmentService(db).handle_nanny_rejection(
        booking_id, user.user_id, request.reason
    )
    return {"success": True, "data": ReassignmentResponse.model_validate(reassignment)}
