"""Tests for the revenue split engine"""

from datetime import date
from decimal import Decimal

import pytest

from nannygold.config import settings
from nannygold.db.models import BookingType, HomeSize
from nannygold.errors import ValidationError
from nannygold.services.revenue import (
    FLAT_GRAND_ESTATE_RULES,
    PLACEMENT_FEE_RULES,
    PlacementRule,
    booking_days_between,
    calculate_revenue_split,
    long_term_commission_percent,
    placement_fee,
    placement_fee_rules,
    to_money,
)


class TestLongTermSplit:
    """Placement fee plus sliding commission on the monthly rate"""

    def test_family_hub_monthly_8000(self):
        split = calculate_revenue_split(BookingType.LONG_TERM, Decimal("8000"), HomeSize.FAMILY_HUB)

        assert split.fixed_fee == Decimal("2500.00")
        assert split.commission_percent == Decimal("15.00")
        assert split.commission_amount == Decimal("1200.00")
        assert split.payer_total == Decimal("3700.00")
        assert split.payee_net == Decimal("6800.00")

    def test_premium_home_pays_half_the_monthly_rate(self):
        split = calculate_revenue_split(BookingType.LONG_TERM, Decimal("12000"), HomeSize.MONUMENTAL_MANOR)

        assert split.fixed_fee == Decimal("6000.00")
        assert split.commission_percent == Decimal("25.00")
        assert split.commission_amount == Decimal("3000.00")

    @pytest.mark.parametrize(
        "monthly_rate,expected_percent",
        [
            ("5000", "10.00"),
            ("5000.01", "15.00"),
            ("9999.99", "15.00"),
            ("10000", "25.00"),
        ],
    )
    def test_commission_tier_boundaries(self, monthly_rate, expected_percent):
        assert long_term_commission_percent(Decimal(monthly_rate)) == Decimal(expected_percent)

    @pytest.mark.parametrize("home_size", list(HomeSize))
    @pytest.mark.parametrize("monthly_rate", ["0", "4999.99", "7333.33", "15000.55"])
    def test_totals_add_up_to_the_cent(self, home_size, monthly_rate):
        rate = Decimal(monthly_rate)
        split = calculate_revenue_split(BookingType.LONG_TERM, rate, home_size)

        assert split.payer_total == split.fixed_fee + split.commission_amount
        assert split.payee_net == rate - split.commission_amount

    def test_rounding_happens_after_multiplication(self):
        # 7333.33 * 15% = 1099.9995 -> 1100.00
        split = calculate_revenue_split(BookingType.LONG_TERM, Decimal("7333.33"), HomeSize.POCKET_PALACE)
        assert split.commission_amount == Decimal("1100.00")

    def test_sub_cent_amount_is_tiered_before_rounding(self):
        split = calculate_revenue_split("long_term", "5000.004", "family_hub")

        assert split.commission_percent == Decimal("15.00")
        assert split.commission_amount == Decimal("750.00")
        assert split.payee_net == Decimal("4250.00")

    def test_identical_inputs_give_identical_output(self):
        first = calculate_revenue_split("long_term", "8123.45", "grand_estate")
        second = calculate_revenue_split("long_term", "8123.45", "grand_estate")
        assert first == second

    def test_display_form_home_size_is_accepted(self):
        split = calculate_revenue_split("long-term", 8000, "Family Hub")
        assert split.fixed_fee == Decimal("2500.00")

    def test_unknown_home_size_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_revenue_split(BookingType.LONG_TERM, Decimal("8000"), "castle")
        assert "castle" in exc_info.value.message
        assert "family_hub" in exc_info.value.details["allowed"]

    def test_missing_home_size_rejected(self):
        with pytest.raises(ValidationError):
            calculate_revenue_split(BookingType.LONG_TERM, Decimal("8000"), None)

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError):
            calculate_revenue_split(BookingType.LONG_TERM, Decimal("-1"), HomeSize.FAMILY_HUB)


class TestGrandEstateRule:
    def test_default_table_treats_grand_estate_as_premium(self):
        assert placement_fee_rules()[HomeSize.GRAND_ESTATE] is PlacementRule.PERCENT_OF_RATE
        assert placement_fee(HomeSize.GRAND_ESTATE, Decimal("8000")) == Decimal("4000.00")

    def test_flat_rule_setting(self, monkeypatch):
        monkeypatch.setattr(settings, "grand_estate_placement_rule", "flat")
        assert placement_fee_rules() is FLAT_GRAND_ESTATE_RULES
        assert placement_fee(HomeSize.GRAND_ESTATE, Decimal("8000")) == Decimal("2500.00")

    def test_tables_differ_only_for_grand_estate(self):
        differing = {size for size in HomeSize if PLACEMENT_FEE_RULES[size] != FLAT_GRAND_ESTATE_RULES[size]}
        assert differing == {HomeSize.GRAND_ESTATE}

    def test_explicit_rules_override_configuration(self):
        split = calculate_revenue_split(
            BookingType.LONG_TERM, Decimal("8000"), HomeSize.GRAND_ESTATE, rules=FLAT_GRAND_ESTATE_RULES
        )
        assert split.fixed_fee == Decimal("2500.00")


class TestShortTermSplit:
    def test_three_day_booking_of_500(self):
        split = calculate_revenue_split(BookingType.SHORT_TERM, Decimal("500"), booking_days=3)

        assert split.fixed_fee == Decimal("105.00")
        assert split.commission_percent == Decimal("20.00")
        assert split.commission_amount == Decimal("79.00")
        assert split.payer_total == Decimal("184.00")
        assert split.payee_net == Decimal("421.00")

    @pytest.mark.parametrize("booking_days", [0, -3])
    def test_booking_fee_floor_is_one_day(self, booking_days):
        split = calculate_revenue_split(BookingType.SHORT_TERM, Decimal("200"), booking_days=booking_days)
        assert split.fixed_fee == Decimal("35.00")

    def test_home_size_is_ignored(self):
        split = calculate_revenue_split(BookingType.SHORT_TERM, Decimal("500"), "anything", booking_days=1)
        assert split.fixed_fee == Decimal("35.00")

    def test_total_below_booking_fee_has_no_commission(self):
        split = calculate_revenue_split(BookingType.SHORT_TERM, Decimal("50"), booking_days=2)
        assert split.commission_amount == Decimal("0.00")
        assert split.payee_net == Decimal("50.00")

    def test_to_dict_uses_floats(self):
        data = calculate_revenue_split(BookingType.SHORT_TERM, Decimal("500"), booking_days=3).to_dict()
        assert data == {
            "fixed_fee": 105.0,
            "commission_percent": 20.0,
            "commission_amount": 79.0,
            "payer_total": 184.0,
            "payee_net": 421.0,
        }


class TestHelpers:
    def test_to_money_rounds_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(2.675) == Decimal("2.68")

    def test_to_money_rejects_garbage(self):
        with pytest.raises(ValidationError):
            to_money("ten rand")

    def test_booking_days_inclusive(self):
        assert booking_days_between(date(2025, 3, 1), date(2025, 3, 3)) == 3
        assert booking_days_between(date(2025, 3, 1), None) == 1
        assert booking_days_between(date(2025, 3, 5), date(2025, 3, 1)) == 1
