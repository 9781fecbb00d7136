"""Pydantic schemas for payment authorization API"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from nannygold.db.models import AuthorizationStatus


class AuthorizeRequest(BaseModel):
    booking_id: UUID
    period_start: date
    period_end: date
    amount: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)

    @model_validator(mode="after")
    def validate_period(self) -> "AuthorizeRequest":
        if self.period_end < self.period_start:
            raise ValueError("period_end must not be before period_start")
        return self


class CaptureRequest(BaseModel):
    enforce_hold: bool = True


class AuthorizationResponse(BaseModel):
    id: UUID
    booking_id: UUID
    user_id: UUID
    amount: Decimal
    currency: str
    period_start: date
    period_end: date
    status: AuthorizationStatus
    gateway_reference: str
    authorized_at: datetime | None
    captured_at: datetime | None
    failure_reason: str | None
    attempt_count: int

    model_config = {"from_attributes": True}
