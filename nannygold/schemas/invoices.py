"""Pydantic schemas for invoice API"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from nannygold.db.models import InvoiceStatus


class InvoiceResponse(BaseModel):
    id: UUID
    invoice_number: str
    booking_id: UUID
    client_id: UUID
    amount: Decimal
    currency: str
    status: InvoiceStatus
    issue_date: date
    due_date: date
    paid_at: datetime | None
    line_items: list[dict[str, Any]]
    notes: str | None

    model_config = {"from_attributes": True}
