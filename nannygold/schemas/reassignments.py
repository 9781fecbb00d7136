"""Pydantic schemas for reassignment API"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from nannygold.db.models import ClientResponse


class ReassignmentResponse(BaseModel):
    id: UUID
    original_booking_id: UUID
    original_nanny_id: UUID
    new_nanny_id: UUID
    client_id: UUID
    reassignment_reason: str
    alternative_nannies: list[dict[str, Any]]
    client_response: ClientResponse
    responded_at: datetime | None
    respond_by: datetime | None
    resolved_at: datetime | None
    escalated_to_admin: bool
    admin_notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class RespondRequest(BaseModel):
    response: Literal["accepted", "rejected"]
    selected_nanny_id: UUID | None = None
    notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def selection_only_when_accepting(self) -> "RespondRequest":
        if self.response == "rejected" and self.selected_nanny_id is not None:
            raise ValueError("selected_nanny_id is only allowed when accepting")
        return self


class AdminReassignRequest(BaseModel):
    booking_id: UUID
    new_nanny_id: UUID
    notes: str | None = Field(None, max_length=1000)


class EscalationRequest(BaseModel):
    booking_id: UUID
    reason: str = Field(..., min_length=3, max_length=200)
    additional_info: dict[str, Any] = Field(default_factory=dict)
