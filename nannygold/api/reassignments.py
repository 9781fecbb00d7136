"""Reassignment API endpoints"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.api.bookings import ensure_party
from nannygold.api.deps import CurrentUser, get_current_user, require_admin
from nannygold.db.database import get_db
from nannygold.db.models import UserRole
from nannygold.errors import PermissionDeniedError
from nannygold.schemas.reassignments import (
    AdminReassignRequest,
    EscalationRequest,
    ReassignmentResponse,
    RespondRequest,
)
from nannygold.services.lifecycle import load_booking
from nannygold.services.reassignment import ReassignmentService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/pending")
async def list_pending_reassignments(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Reassignments waiting on the calling client's answer"""
    if user.role is not UserRole.CLIENT:
        raise PermissionDeniedError("Only clients have pending reassignments")
    reassignments = await ReassignmentService(db).list_pending_reassignments(user.user_id)
    return {"success": True, "data": [ReassignmentResponse.model_validate(r) for r in reassignments]}


@router.post("/{reassignment_id}/respond")
async def respond_to_reassignment(
    reassignment_id: UUID,
    request: RespondRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    reassignment = await ReassignmentService(db).respond_to_reassignment(
        reassignment_id,
        user.user_id,
        request.response,
        selected_nanny_id=request.selected_nanny_id,
        notes=request.notes,
    )
    return {"success": True, "data": ReassignmentResponse.model_validate(reassignment)}


@router.post("/admin/reassign")
async def admin_reassign(
    request: AdminReassignRequest,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    reassignment = await ReassignmentService(db).admin_reassign(
        request.booking_id, request.new_nanny_id, admin.user_id, notes=request.notes
    )
    return {"success": True, "data": ReassignmentResponse.model_validate(reassignment)}


@router.get("/admin/search")
async def search_bookings(
    q: str = Query(..., min_length=2, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    rows = await ReassignmentService(db).search_bookings_for_reassignment(q, limit=limit)
    return {"success": True, "data": rows, "count": len(rows)}


@router.post("/escalate")
async def escalate_booking(
    request: EscalationRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    """Flag a booking for admin attention"""
    ensure_party(await load_booking(db, request.booking_id), user)
    result = await ReassignmentService(db).escalate_booking(
        request.booking_id,
        request.reason,
        {**request.additional_info, "escalated_by": str(user.user_id)},
    )
    return {"success": True, "data": result}
