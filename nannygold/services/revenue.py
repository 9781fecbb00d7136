"""Revenue split engine

Pure functions that turn a booking's rate into the platform's fixed fee and
commission and the nanny's net earnings. No database or network access happens
here so the same numbers come out for quotes, invoices and captured financials.
"""

import enum
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from nannygold.config import settings
from nannygold.db.models import Booking, BookingType, HomeSize
from nannygold.errors import ValidationError

CENT = Decimal("0.01")


class PlacementRule(enum.Enum):
    FLAT = "flat"
    PERCENT_OF_RATE = "percent_of_rate"


# Canonical placement fee table; invoices and the split engine both read it
PLACEMENT_FEE_RULES: dict[HomeSize, PlacementRule] = {
    HomeSize.POCKET_PALACE: PlacementRule.FLAT,
    HomeSize.FAMILY_HUB: PlacementRule.FLAT,
    HomeSize.GRAND_ESTATE: PlacementRule.PERCENT_OF_RATE,
    HomeSize.MONUMENTAL_MANOR: PlacementRule.PERCENT_OF_RATE,
    HomeSize.EPIC_ESTATES: PlacementRule.PERCENT_OF_RATE,
}

# Alternative reading where grand_estate pays the standard flat fee
FLAT_GRAND_ESTATE_RULES: dict[HomeSize, PlacementRule] = {
    **PLACEMENT_FEE_RULES,
    HomeSize.GRAND_ESTATE: PlacementRule.FLAT,
}

# Home sizes whose placement rule still awaits a product decision
DISPUTED_HOME_SIZES = frozenset({HomeSize.GRAND_ESTATE})


@dataclass(frozen=True)
class RevenueSplit:
    fixed_fee: Decimal
    commission_percent: Decimal
    commission_amount: Decimal
    payer_total: Decimal
    payee_net: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixed_fee": float(self.fixed_fee),
            "commission_percent": float(self.commission_percent),
            "commission_amount": float(self.commission_amount),
            "payer_total": float(self.payer_total),
            "payee_net": float(self.payee_net),
        }


def to_decimal(value: Any) -> Decimal:
    """Exact Decimal for a monetary input; nothing is rounded here"""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid monetary amount: {value!r}") from e
    if not amount.is_finite():
        raise ValidationError(f"Invalid monetary amount: {value!r}")
    return amount


def to_money(value: Any) -> Decimal:
    """Coerce to a Decimal rounded half-up to cents"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _setting(name: str) -> Decimal:
    return Decimal(str(getattr(settings, name)))


def placement_fee_rules() -> dict[HomeSize, PlacementRule]:
    """Return the placement table selected by configuration"""
    if settings.grand_estate_placement_rule == PlacementRule.FLAT.value:
        return FLAT_GRAND_ESTATE_RULES
    return PLACEMENT_FEE_RULES


def normalize_home_size(value: HomeSize | str | None) -> HomeSize:
    """Accept enum members, stored values and display forms like 'Grand Estate'"""
    if isinstance(value, HomeSize):
        return value
    if not value or not isinstance(value, str):
        raise ValidationError("home_size is required for long-term bookings")
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return HomeSize(key)
    except ValueError:
        raise ValidationError(
            f"Unrecognized home size: {value!r}",
            allowed=[h.value for h in HomeSize],
        ) from None


def normalize_booking_type(value: BookingType | str) -> BookingType:
    if isinstance(value, BookingType):
        return value
    key = str(value).strip().lower().replace("-", "_")
    try:
        return BookingType(key)
    except ValueError:
        raise ValidationError(f"Unrecognized booking type: {value!r}") from None


def long_term_commission_percent(monthly_rate: Decimal) -> Decimal:
    """Sliding scale on the full monthly rate"""
    if monthly_rate >= _setting("commission_high_threshold"):
        rate = _setting("commission_high_rate")
    elif monthly_rate <= _setting("commission_low_threshold"):
        rate = _setting("commission_low_rate")
    else:
        rate = _setting("commission_standard_rate")
    return (rate * 100).quantize(CENT)


def placement_fee(
    home_size: HomeSize | str | None,
    monthly_rate: Decimal,
    rules: dict[HomeSize, PlacementRule] | None = None,
) -> Decimal:
    size = normalize_home_size(home_size)
    rule = (rules or placement_fee_rules())[size]
    if rule is PlacementRule.PERCENT_OF_RATE:
        return to_money(monthly_rate * _setting("premium_placement_fee_rate"))
    return to_money(_setting("standard_placement_fee"))


def calculate_revenue_split(
    booking_type: BookingType | str,
    amount: Decimal | float | int | str,
    home_size: HomeSize | str | None = None,
    booking_days: int = 1,
    rules: dict[HomeSize, PlacementRule] | None = None,
) -> RevenueSplit:
    """
    Split a booking amount between platform and nanny

    Args:
        booking_type: long_term or short_term
        amount: monthly rate (long-term) or total amount (short-term), >= 0
        home_size: one of the five home size categories, required for long-term
        booking_days: short-term duration; values below 1 count as 1
        rules: placement table override, defaults to the configured table

    Returns:
        RevenueSplit with every amount rounded half-up to cents
    """
    kind = normalize_booking_type(booking_type)
    # Tiers and products use the exact amount; only results are rounded
    gross = to_decimal(amount)
    if gross < 0:
        raise ValidationError("Rate must be zero or greater", amount=str(gross))

    if kind is BookingType.LONG_TERM:
        fixed_fee = placement_fee(home_size, gross, rules)
        percent = long_term_commission_percent(gross)
        commission = to_money(gross * percent / 100)
        return RevenueSplit(
            fixed_fee=fixed_fee,
            commission_percent=percent,
            commission_amount=commission,
            payer_total=fixed_fee + commission,
            payee_net=to_money(gross - commission),
        )

    days = max(int(booking_days or 0), 1)
    fixed_fee = to_money(_setting("short_term_daily_fee") * days)
    percent = (_setting("short_term_commission_rate") * 100).quantize(CENT)
    # Commission never goes negative when the total is below the booking fee
    commissionable = max(gross - fixed_fee, Decimal("0.00"))
    commission = to_money(commissionable * percent / 100)
    return RevenueSplit(
        fixed_fee=fixed_fee,
        commission_percent=percent,
        commission_amount=commission,
        payer_total=fixed_fee + commission,
        payee_net=to_money(gross - commission),
    )


def booking_days_between(start: date, end: date | None) -> int:
    """Inclusive day count, at least 1"""
    if end is None:
        return 1
    return max((end - start).days + 1, 1)


def split_for_booking(booking: Booking) -> RevenueSplit:
    """Revenue split on the booking's current total"""
    if booking.booking_type is BookingType.LONG_TERM:
        return calculate_revenue_split(booking.booking_type, booking.total_cost, booking.home_size)
    return calculate_revenue_split(
        booking.booking_type,
        booking.total_cost,
        booking_days=booking_days_between(booking.start_date, booking.end_date),
    )
