"""Database models for the NannyGold booking core"""

import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from nannygold.db.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

Money = Numeric(12, 2)


def enum_column(enum_cls: type[enum.Enum]) -> SQLEnum:
    """Store enum values (``"long_term"``) rather than member names"""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        name=enum_cls.__name__.lower(),
    )


class TimestampMixin:
    """Mixin for adding timestamp columns to models"""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class UserRole(enum.Enum):
    CLIENT = "client"
    NANNY = "nanny"
    ADMIN = "admin"


class BookingType(enum.Enum):
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


class BookingStatus(enum.Enum):
    """Booking lifecycle states"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REASSIGNED = "reassigned"
    ADMIN_INTERVENTION_REQUIRED = "admin_intervention_required"


class HomeSize(enum.Enum):
    """Home size categories that drive the long-term placement fee"""
    POCKET_PALACE = "pocket_palace"
    FAMILY_HUB = "family_hub"
    GRAND_ESTATE = "grand_estate"
    MONUMENTAL_MANOR = "monumental_manor"
    EPIC_ESTATES = "epic_estates"


class LivingArrangement(enum.Enum):
    LIVE_IN = "live_in"
    LIVE_OUT = "live_out"


class ApprovalStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AuthorizationStatus(enum.Enum):
    """Payment authorization states; captured and failed are terminal"""
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"
    FAILED = "failed"


class ClientResponse(enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class InvoiceStatus(enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class UserProfile(Base, TimestampMixin):
    """Identity-backed profile shared by clients, nannies and admins"""
    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    role: Mapped[UserRole] = mapped_column(enum_column(UserRole), nullable=False)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)

    # Reusable card authorization from the first successful Paystack charge
    paystack_authorization_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    paystack_customer_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or "Unknown"

    __table_args__ = (
        Index("idx_profile_role", "role"),
    )


class Client(Base, TimestampMixin):
    """Payer-side extension of a profile"""
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True
    )
    home_size: Mapped[HomeSize | None] = mapped_column(enum_column(HomeSize), nullable=True)
    number_of_children: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    other_dependents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    profile = relationship("UserProfile", lazy="joined")


class ClientPreferences(Base, TimestampMixin):
    __tablename__ = "client_preferences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    living_arrangement: Mapped[LivingArrangement | None] = mapped_column(
        enum_column(LivingArrangement),
        nullable=True
    )
    required_skills: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    languages: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    extra_preferences: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)


class Nanny(Base, TimestampMixin):
    """Payee-side extension of a profile"""
    __tablename__ = "nannies"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        primary_key=True
    )
    rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    experience_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        enum_column(ApprovalStatus),
        default=ApprovalStatus.PENDING,
        nullable=False
    )
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    can_receive_bookings: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Booking categories the nanny offers ("short_term", "long_term")
    service_categories: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    admin_assigned_categories: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    skills: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    living_arrangements: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    hourly_rate: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    monthly_rate: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    profile = relationship("UserProfile", lazy="joined")

    __table_args__ = (
        Index("idx_nanny_eligibility", "approval_status", "is_available", "can_receive_bookings"),
        Index("idx_nanny_rating", "rating"),
        CheckConstraint("rating >= 0 AND rating <= 5", name="check_nanny_rating"),
    )


class Booking(Base, TimestampMixin):
    """An engagement between a client (payer) and a nanny (payee)"""
    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id"),
        nullable=False
    )
    nanny_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("nannies.id"),
        nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    booking_type: Mapped[BookingType] = mapped_column(enum_column(BookingType), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        enum_column(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=False
    )

    # Pricing; total_cost = base_rate + additional_services_cost + cost_adjustment
    base_rate: Mapped[Decimal] = mapped_column(Money, nullable=False)
    additional_services_cost: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    cost_adjustment: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Money, nullable=False)

    home_size: Mapped[HomeSize | None] = mapped_column(enum_column(HomeSize), nullable=True)
    living_arrangement: Mapped[LivingArrangement | None] = mapped_column(
        enum_column(LivingArrangement),
        nullable=True
    )
    required_skills: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    services: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    client = relationship("Client", lazy="joined")
    nanny = relationship("Nanny", lazy="joined")

    __table_args__ = (
        Index("idx_booking_client", "client_id"),
        Index("idx_booking_nanny", "nanny_id"),
        Index("idx_booking_status", "status"),
        Index("idx_booking_dates", "start_date", "end_date"),
        CheckConstraint("total_cost >= 0", name="check_booking_total_non_negative"),
    )


class BookingFinancials(Base, TimestampMixin):
    """Revenue split computed once, at the first successful capture"""
    __tablename__ = "booking_financials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    booking_type: Mapped[BookingType] = mapped_column(enum_column(BookingType), nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    fixed_fee: Mapped[Decimal] = mapped_column(Money, nullable=False)
    commission_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payer_total_revenue: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payee_net_earnings: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="ZAR", nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Explicit correction trail; financials are otherwise never rewritten
    corrected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    corrected_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    correction_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class PaymentAuthorization(Base, TimestampMixin):
    """A hold on the payer's card for one booking period"""
    __tablename__ = "payment_authorizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("profiles.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="ZAR", nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[AuthorizationStatus] = mapped_column(
        enum_column(AuthorizationStatus),
        default=AuthorizationStatus.PENDING,
        nullable=False
    )
    authorization_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    gateway_reference: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    gateway_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    authorized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    captured_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    __table_args__ = (
        # At most one live authorization per booking per period
        Index(
            "uq_authorization_booking_period_live",
            "booking_id",
            "period_start",
            unique=True,
            sqlite_where=text("status != 'failed'"),
            postgresql_where=text("status != 'failed'"),
        ),
        Index("idx_authorization_status", "status"),
        CheckConstraint("amount > 0", name="check_authorization_amount_positive"),
    )


class BookingReassignment(Base, TimestampMixin):
    """Record of a payee change, automatic or admin-initiated"""
    __tablename__ = "booking_reassignments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    original_booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False
    )
    original_nanny_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("nannies.id"), nullable=False)
    new_nanny_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("nannies.id"), nullable=False)
    client_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("clients.id"), nullable=False)
    reassignment_reason: Mapped[str] = mapped_column(String(100), nullable=False)
    alternative_nannies: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)
    client_response: Mapped[ClientResponse] = mapped_column(
        enum_column(ClientResponse),
        default=ClientResponse.PENDING,
        nullable=False
    )
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    respond_by: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    escalated_to_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    admin_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_open(self) -> bool:
        return (
            self.client_response == ClientResponse.PENDING
            and self.resolved_at is None
            and not self.escalated_to_admin
        )

    __table_args__ = (
        Index("idx_reassignment_booking", "original_booking_id"),
        Index("idx_reassignment_client", "client_id", "client_response"),
    )


class PaymentAdvice(Base, TimestampMixin):
    """Payee-facing earnings statement; immutable once issued"""
    __tablename__ = "payment_advices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    advice_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    booking_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("bookings.id"), nullable=False)
    nanny_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("nannies.id"), nullable=False)
    authorization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payment_authorizations.id"),
        nullable=False
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    commission_deducted: Mapped[Decimal] = mapped_column(Money, nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="ZAR", nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("booking_id", "period_start", name="uq_advice_booking_period"),
        Index("idx_advice_nanny", "nanny_id"),
    )


class Invoice(Base, TimestampMixin):
    """Payer-facing invoice; line_items always sum to amount"""
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    booking_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("bookings.id"), nullable=False)
    client_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("clients.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="ZAR", nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        enum_column(InvoiceStatus),
        default=InvoiceStatus.PENDING,
        nullable=False
    )
    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_invoice_booking", "booking_id"),
        Index("idx_invoice_client", "client_id"),
    )


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_notification_user", "user_id", "is_read"),
        Index("idx_notification_type", "type"),
    )
