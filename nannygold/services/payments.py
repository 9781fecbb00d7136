"""Payment authorization and capture for booking periods

An authorization moves pending -> authorized -> captured, or to failed.
Captured and failed are terminal. The first successful capture fixes the
booking's revenue split; every capture issues one payment advice.
"""

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nannygold.config import settings
from nannygold.db.models import (
    AuthorizationStatus,
    Booking,
    BookingFinancials,
    BookingStatus,
    PaymentAdvice,
    PaymentAuthorization,
    UserProfile,
)
from nannygold.errors import ConflictError, ExternalServiceError, NotFoundError, ValidationError
from nannygold.services.documents import (
    ADVICE_PREFIX,
    build_payment_advice_lines,
    next_document_number,
)
from nannygold.services.email_notifications import EmailTemplate
from nannygold.services.gateway import PaystackGateway
from nannygold.services.lifecycle import guarded_booking_update, load_booking
from nannygold.services.notifications import NotificationService
from nannygold.services.revenue import split_for_booking, to_money
from nannygold.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

AUTHORIZABLE_BOOKING_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.ACTIVE,
})

# Booking status reached by a successful capture
CAPTURE_ADVANCES = {
    BookingStatus.PENDING: BookingStatus.CONFIRMED,
    BookingStatus.CONFIRMED: BookingStatus.ACTIVE,
}


class PaymentService:
    """Authorizes and captures booking payments through the gateway"""

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaystackGateway | None = None,
        notifications: NotificationService | None = None,
    ):
        self.db = db
        self.gateway = gateway or PaystackGateway()
        self.notifications = notifications or NotificationService(db)

    async def get_authorization(self, authorization_id: uuid.UUID) -> PaymentAuthorization:
        authorization = await self.db.get(PaymentAuthorization, authorization_id)
        if not authorization:
            raise NotFoundError(f"Payment authorization {authorization_id} not found")
        return authorization

    async def list_authorizations(self, booking_id: uuid.UUID) -> list[PaymentAuthorization]:
        result = await self.db.execute(
            select(PaymentAuthorization)
            .where(PaymentAuthorization.booking_id == booking_id)
            .order_by(PaymentAuthorization.period_start, PaymentAuthorization.created_at)
        )
        return list(result.scalars().all())

    async def _guarded_update(
        self,
        authorization_id: uuid.UUID,
        expected: AuthorizationStatus,
        **values: Any,
    ) -> None:
        result = await self.db.execute(
            update(PaymentAuthorization)
            .where(
                PaymentAuthorization.id == authorization_id,
                PaymentAuthorization.status == expected,
            )
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            raise ConflictError(
                f"Payment authorization {authorization_id} is no longer {expected.value}",
                authorization_id=str(authorization_id),
            )

    async def authorize_booking_payment(
        self,
        booking_id: uuid.UUID,
        period_start: date,
        period_end: date,
        amount: Decimal | None = None,
    ) -> PaymentAuthorization:
        """
        Place a hold on the client's saved card for one booking period

        The period is reserved with a pending row before the gateway is
        called, so two concurrent requests cannot both charge the card.

        Args:
            booking_id: Booking being paid for
            period_start: First day of the billing period
            period_end: Last day of the billing period
            amount: Hold amount, defaults to the booking total

        Returns:
            The authorization, either authorized or failed

        Raises:
            ConflictError: a live authorization already covers the period
            ExternalServiceError: the gateway stayed unreachable (row marked failed)
        """
        if period_end < period_start:
            raise ValidationError("period_end must not be before period_start")

        booking = await load_booking(self.db, booking_id)
        if booking.status not in AUTHORIZABLE_BOOKING_STATUSES:
            raise ConflictError(
                f"Cannot authorize payment for a {booking.status.value} booking",
                booking_id=str(booking_id),
            )

        amount = to_money(amount if amount is not None else booking.total_cost)
        if amount <= 0:
            raise ValidationError("Authorization amount must be greater than zero")

        payer = await self.db.get(UserProfile, booking.client_id)
        if not payer or not payer.paystack_authorization_code:
            raise ValidationError("Client has no saved card authorization on file")
        email = payer.paystack_customer_email or payer.email
        if not email:
            raise ValidationError("Client has no billing email on file")

        previous_attempts = (await self.db.execute(
            select(func.count()).select_from(PaymentAuthorization).where(
                PaymentAuthorization.booking_id == booking.id,
                PaymentAuthorization.period_start == period_start,
            )
        )).scalar_one()

        authorization = PaymentAuthorization(
            id=uuid.uuid4(),
            booking_id=booking.id,
            user_id=booking.client_id,
            amount=amount,
            currency=settings.currency,
            period_start=period_start,
            period_end=period_end,
            status=AuthorizationStatus.PENDING,
            authorization_code=payer.paystack_authorization_code,
            gateway_reference=f"auth_{booking.id.hex[:12]}_{period_start:%Y%m%d}_{uuid.uuid4().hex[:8]}",
            attempt_count=previous_attempts + 1,
        )
        self.db.add(authorization)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(
                "A payment authorization for this booking period already exists",
                booking_id=str(booking_id),
                period_start=period_start.isoformat(),
            ) from e

        try:
            result = await self.gateway.authorize(
                amount=amount,
                reference=authorization.gateway_reference,
                email=email,
                authorization_code=payer.paystack_authorization_code,
                metadata={
                    "booking_id": str(booking.id),
                    "period_start": period_start.isoformat(),
                    "period_end": period_end.isoformat(),
                },
            )
        except ExternalServiceError as e:
            await self._mark_failed(authorization, e.message, notify_payer=False)
            raise

        if not result.succeeded:
            await self._mark_failed(authorization, result.message or "Authorization declined")
            return authorization

        await self._guarded_update(
            authorization.id,
            AuthorizationStatus.PENDING,
            status=AuthorizationStatus.AUTHORIZED,
            authorized_at=utcnow(),
            gateway_transaction_id=result.authorization_id,
            authorization_code=result.authorization_code or payer.paystack_authorization_code,
        )
        await self.db.commit()
        await self.db.refresh(authorization)

        logger.info(
            f"Authorized {amount} for booking {booking.id}",
            extra={
                "booking_id": str(booking.id),
                "authorization_id": str(authorization.id),
                "period_start": period_start.isoformat(),
            },
        )
        return authorization

    async def _mark_failed(
        self,
        authorization: PaymentAuthorization,
        reason: str,
        notify_payer: bool = True,
    ) -> None:
        await self._guarded_update(
            authorization.id,
            AuthorizationStatus.PENDING,
            status=AuthorizationStatus.FAILED,
            failure_reason=reason,
        )
        await self.db.commit()
        await self.db.refresh(authorization)

        logger.warning(
            f"Authorization {authorization.id} failed: {reason}",
            extra={"booking_id": str(authorization.booking_id), "authorization_id": str(authorization.id)},
        )
        if notify_payer:
            await self.notifications.send(
                authorization.user_id,
                "Payment Authorization Failed",
                "We could not authorize your card for the upcoming booking period. "
                "Please check your payment method.",
                "payment_authorization_failed",
                {"booking_id": str(authorization.booking_id), "authorization_id": str(authorization.id)},
            )

    async def _ensure_financials(self, booking: Booking, now: datetime) -> BookingFinancials:
        """Return the booking's financials, computing them on first capture only"""
        existing = (await self.db.execute(
            select(BookingFinancials).where(BookingFinancials.booking_id == booking.id)
        )).scalar_one_or_none()
        if existing:
            return existing

        split = split_for_booking(booking)
        financials = BookingFinancials(
            booking_id=booking.id,
            booking_type=booking.booking_type,
            gross_amount=to_money(booking.total_cost),
            fixed_fee=split.fixed_fee,
            commission_percent=split.commission_percent,
            commission_amount=split.commission_amount,
            payer_total_revenue=split.payer_total,
            payee_net_earnings=split.payee_net,
            currency=settings.currency,
            calculated_at=now,
        )
        self.db.add(financials)
        return financials

    @staticmethod
    def _period_commission(financials: BookingFinancials, amount: Decimal) -> Decimal:
        """Commission for a captured amount, pro rata when it differs from the gross"""
        if amount == financials.gross_amount or financials.gross_amount <= 0:
            return to_money(financials.commission_amount)
        return to_money(financials.commission_amount * amount / financials.gross_amount)

    async def capture_authorization(
        self,
        authorization_id: uuid.UUID,
        now: datetime | None = None,
        enforce_hold: bool = True,
    ) -> PaymentAuthorization:
        """
        Capture an authorized hold

        Success commits the capture, the booking's financials (first capture
        only), the booking status advance and the payment advice together.
        A declined verification marks the authorization failed and alerts
        admins; it is not retried.
        """
        authorization = await self.get_authorization(authorization_id)
        if authorization.status is not AuthorizationStatus.AUTHORIZED:
            raise ConflictError(
                f"Only authorized payments can be captured (status: {authorization.status.value})",
                authorization_id=str(authorization_id),
                status=authorization.status.value,
            )

        now = as_utc(now) if now else utcnow()
        if enforce_hold:
            held_since = as_utc(authorization.authorized_at)
            min_hold = timedelta(days=settings.capture_min_hold_days)
            if held_since is None or now - held_since < min_hold:
                raise ValidationError(
                    f"Authorization must be held for {settings.capture_min_hold_days} days before capture",
                    authorization_id=str(authorization_id),
                )

        booking = await load_booking(self.db, authorization.booking_id)
        if booking.status not in AUTHORIZABLE_BOOKING_STATUSES:
            raise ConflictError(
                f"Cannot capture payment for a {booking.status.value} booking",
                authorization_id=str(authorization_id),
                booking_id=str(booking.id),
            )

        result = await self.gateway.verify(authorization.gateway_reference)
        if not result.succeeded:
            await self._fail_capture(authorization, result.message or "Transaction verification failed")
            return authorization

        try:
            await self._guarded_update(
                authorization.id,
                AuthorizationStatus.AUTHORIZED,
                status=AuthorizationStatus.CAPTURED,
                captured_at=now,
                gateway_transaction_id=result.authorization_id or authorization.gateway_transaction_id,
            )
            financials = await self._ensure_financials(booking, now)

            target = CAPTURE_ADVANCES.get(booking.status)
            if target:
                await guarded_booking_update(self.db, booking.id, booking.status, status=target)

            amount = to_money(authorization.amount)
            commission = self._period_commission(financials, amount)
            advice = PaymentAdvice(
                advice_number=await next_document_number(
                    self.db, PaymentAdvice.advice_number, ADVICE_PREFIX, now
                ),
                booking_id=booking.id,
                nanny_id=booking.nanny_id,
                authorization_id=authorization.id,
                period_start=authorization.period_start,
                period_end=authorization.period_end,
                gross_amount=amount,
                commission_deducted=commission,
                net_amount=amount - commission,
                currency=authorization.currency,
                issued_at=now,
            )
            self.db.add(advice)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(
                "Capture conflicted with a concurrent update, refetch and retry",
                authorization_id=str(authorization_id),
            ) from e
        except (ConflictError, SQLAlchemyError):
            await self.db.rollback()
            raise

        await self.db.refresh(authorization)
        await self.db.refresh(booking)
        logger.info(
            f"Captured authorization {authorization.id} for booking {booking.id}",
            extra={
                "booking_id": str(booking.id),
                "authorization_id": str(authorization.id),
                "booking_status": booking.status.value,
            },
        )

        lines = build_payment_advice_lines(advice)
        await self.notifications.send(
            booking.client_id,
            "Payment Received",
            f"Your payment of {authorization.currency} {amount} has been processed.",
            "payment_captured",
            {"booking_id": str(booking.id), "authorization_id": str(authorization.id)},
        )
        await self.notifications.send(
            booking.nanny_id,
            "Payment Advice Issued",
            f"Payment advice {advice.advice_number}: net {advice.currency} {advice.net_amount}.",
            "payment_advice",
            {"booking_id": str(booking.id), "advice_id": str(advice.id), **lines},
        )
        nanny_profile = await self.db.get(UserProfile, booking.nanny_id)
        if nanny_profile and nanny_profile.email:
            self.notifications.send_email(
                nanny_profile.email,
                f"Payment Advice {advice.advice_number}",
                EmailTemplate.payment_advice_html(nanny_profile.full_name, advice.advice_number, lines),
            )
        return authorization

    async def _fail_capture(self, authorization: PaymentAuthorization, reason: str) -> None:
        await self._guarded_update(
            authorization.id,
            AuthorizationStatus.AUTHORIZED,
            status=AuthorizationStatus.FAILED,
            failure_reason=reason,
        )
        await self.db.commit()
        await self.db.refresh(authorization)

        logger.error(
            f"Capture failed for authorization {authorization.id}: {reason}",
            extra={"booking_id": str(authorization.booking_id), "authorization_id": str(authorization.id)},
        )
        payload = {
            "booking_id": str(authorization.booking_id),
            "authorization_id": str(authorization.id),
            "reason": reason,
            "priority": "urgent",
        }
        await self.notifications.notify_admins(
            "URGENT: Payment Capture Failed",
            f"Capture failed for booking {authorization.booking_id}: {reason}",
            "admin_payment_failure",
            payload,
        )
        self.notifications.send_admin_email(
            f"URGENT: Payment Capture Failed - {authorization.booking_id}",
            EmailTemplate.escalation_html(str(authorization.booking_id), "payment_capture_failed", {"reason": reason}),
        )
        await self.notifications.send(
            authorization.user_id,
            "Payment Failed",
            "We could not collect your booking payment. Our team will contact you.",
            "payment_failed",
            {"booking_id": str(authorization.booking_id)},
        )
