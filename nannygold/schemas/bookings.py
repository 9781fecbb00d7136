"""Pydantic schemas for booking API"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from nannygold.db.models import BookingStatus, BookingType, HomeSize, LivingArrangement


def _normalize_choice(v: Any) -> Any:
    """Accept 'Grand Estate' / 'live-in' spellings for enum fields"""
    if isinstance(v, str):
        return v.strip().lower().replace("-", "_").replace(" ", "_")
    return v


class BookingCreate(BaseModel):
    nanny_id: UUID | None = None
    booking_type: BookingType
    start_date: date | None = None
    end_date: date | None = None
    base_rate: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    additional_services_cost: Decimal = Field(default=Decimal("0"), ge=0, max_digits=12, decimal_places=2)
    home_size: HomeSize | None = None
    living_arrangement: LivingArrangement | None = None
    required_skills: list[str] = Field(default_factory=list)
    services: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = Field(None, max_length=2000)

    @field_validator("booking_type", "home_size", "living_arrangement", mode="before")
    @classmethod
    def normalize_choice(cls, v: Any) -> Any:
        return _normalize_choice(v)


class BookingResponse(BaseModel):
    id: UUID
    client_id: UUID
    nanny_id: UUID
    start_date: date
    end_date: date | None
    booking_type: BookingType
    status: BookingStatus
    base_rate: Decimal
    additional_services_cost: Decimal
    cost_adjustment: Decimal
    total_cost: Decimal
    home_size: HomeSize | None
    living_arrangement: LivingArrangement | None
    required_skills: list[str]
    services: dict[str, Any]
    notes: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CostAdjustmentRequest(BaseModel):
    delta: Decimal = Field(..., max_digits=12, decimal_places=2)
    reason: str = Field(..., min_length=3, max_length=500)

    @field_validator("delta")
    @classmethod
    def validate_delta(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("delta must be non-zero")
        return v


class CancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class RejectionRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class FinancialsResponse(BaseModel):
    booking_id: UUID
    booking_type: BookingType
    gross_amount: Decimal
    fixed_fee: Decimal
    commission_percent: Decimal
    commission_amount: Decimal
    payer_total_revenue: Decimal
    payee_net_earnings: Decimal
    currency: str
    calculated_at: datetime
    corrected_at: datetime | None

    model_config = {"from_attributes": True}
