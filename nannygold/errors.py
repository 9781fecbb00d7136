"""Application error taxonomy and FastAPI exception handlers"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from nannygold.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 400
    error_code = "bad_request"

    def __init__(self, message: str, status_code: int | None = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "message": self.message, **self.details}


class ValidationError(AppError):
    """Input failed shape or range checks; retrying the same input will not help"""
    status_code = 422
    error_code = "validation_error"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class PermissionDeniedError(AppError):
    status_code = 403
    error_code = "permission_denied"


class ConflictError(AppError):
    """A status guard failed: the record changed underneath the caller"""
    status_code = 409
    error_code = "conflict"


class ExternalServiceError(AppError):
    """Gateway or email provider failure after bounded retries"""
    status_code = 502
    error_code = "external_service_error"

    def __init__(self, message: str, retryable: bool = True, **details: Any):
        super().__init__(message, retryable=retryable, **details)
        self.retryable = retryable


class NoCandidateError(AppError):
    """No eligible nanny was found; the booking has already been escalated to admins"""
    status_code = 409
    error_code = "no_candidate"

    def __init__(self, message: str, booking_id: Any = None, **details: Any):
        super().__init__(
            message,
            booking_id=str(booking_id) if booking_id is not None else None,
            escalated=True,
            **details,
        )
        self.booking_id = booking_id
        self.escalated = True


def register_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto JSON responses"""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code}: {exc.message}", extra={"path": request.url.path})
        else:
            logger.info(f"{exc.error_code}: {exc.message}", extra={"path": request.url.path})
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(IntegrityError)
    async def handle_integrity_error(request: Request, exc: IntegrityError):
        logger.warning("Database integrity error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=409,
            content={"error": "conflict", "message": "Conflict. Resource already exists."},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": str(exc) if settings.app_debug else "An error occurred",
            },
        )
