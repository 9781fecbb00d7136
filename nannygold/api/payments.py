"""Payment authorization, capture and billing sweep endpoints"""

import logging
from typing import Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.api.bookings import ensure_party
from nannygold.api.deps import CurrentUser, get_current_user, get_payment_service, require_admin
from nannygold.config import settings
from nannygold.db.database import get_db
from nannygold.db.models import AuthorizationStatus
from nannygold.errors import AppError, PermissionDeniedError
from nannygold.schemas.payments import AuthorizationResponse, AuthorizeRequest, CaptureRequest
from nannygold.services.billing import BillingSweepService
from nannygold.services.lifecycle import load_booking
from nannygold.services.payments import PaymentService
from nannygold.services.reassignment import ReassignmentService

logger = logging.getLogger(__name__)
router = APIRouter()


def _ensure_enabled() -> None:
    if not settings.enable_payments:
        raise AppError("Payments are disabled", status_code=503)


@router.post("/authorize")
async def authorize_payment(
    request: AuthorizeRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    """Hold the client's card for one booking period"""
    _ensure_enabled()
    booking = await load_booking(db, request.booking_id)
    if not (user.is_admin or user.user_id == booking.client_id):
        raise PermissionDeniedError("Only the client or an admin can authorize payment")
    authorization = await payments.authorize_booking_payment(
        request.booking_id, request.period_start, request.period_end, request.amount
    )
    return {
        "success": authorization.status is AuthorizationStatus.AUTHORIZED,
        "data": AuthorizationResponse.model_validate(authorization),
    }


@router.get("/authorizations/{authorization_id}")
async def get_authorization(
    authorization_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    authorization = await payments.get_authorization(authorization_id)
    ensure_party(await load_booking(db, authorization.booking_id), user)
    return {"success": True, "data": AuthorizationResponse.model_validate(authorization)}


@router.post("/authorizations/{authorization_id}/capture")
async def capture_authorization(
    authorization_id: UUID,
    request: CaptureRequest,
    admin: CurrentUser = Depends(require_admin),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    _ensure_enabled()
    authorization = await payments.capture_authorization(
        authorization_id, enforce_hold=request.enforce_hold
    )
    logger.info(f"Admin {admin.user_id} ran capture for authorization {authorization_id}")
    return {
        "success": authorization.status is AuthorizationStatus.CAPTURED,
        "data": AuthorizationResponse.model_validate(authorization),
    }


@router.post("/sweeps/{action}")
async def run_sweep(
    action: Literal["authorize", "capture", "retry", "expire-reassignments"],
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
) -> dict[str, Any]:
    """Run a scheduled job on demand"""
    if action == "expire-reassignments":
        summary = await ReassignmentService(db).expire_stale_reassignments()
        return {"success": True, "data": summary}

    _ensure_enabled()
    sweeps = BillingSweepService(db, payments)
    if action == "authorize":
        summary = await sweeps.authorize_upcoming_period()
    elif action == "capture":
        summary = await sweeps.capture_due_authorizations()
    else:
        summary = await sweeps.retry_failed_authorizations()
    logger.info(f"Admin {admin.user_id} ran {action} sweep")
    return {"success": True, "data": summary}
