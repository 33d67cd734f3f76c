from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from evswap.exceptions import InvalidPackageChangeError
from evswap.services import proration_service
from evswap.services.proration_service import (
    divide_half_up,
    evaluate_downgrade,
    evaluate_upgrade,
    round_half_up,
    to_whole_half_up,
)

TODAY = date(2026, 10, 18)


def package(pid, name, price, max_swaps, duration=30):
    return SimpleNamespace(id=pid, name=name, price=Decimal(price), max_swaps=max_swaps, duration=duration)


def subscription(remaining, start=date(2026, 10, 8), end=date(2026, 11, 7)):
    return SimpleNamespace(id=7, remaining_swaps=remaining, start_date=start, end_date=end)


BASIC = package(1, "Basic", "400000", 20)
PREMIUM = package(2, "Premium", "800000", 50)
STANDARD = package(3, "Standard", "500000", 30)


class TestRounding:

    def test_half_up_ties_away_from_zero(self):
        assert round_half_up(Decimal("2.345")) == Decimal("2.35")
        assert round_half_up(Decimal("-2.345")) == Decimal("-2.35")

    def test_divide_is_exact_before_rounding(self):
        assert divide_half_up(Decimal("100000"), 3, 2) == Decimal("33333.33")
        assert divide_half_up(2, 3, 4) == Decimal("0.6667")
        assert divide_half_up(1, 8, 2) == Decimal("0.13")

    def test_divide_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            divide_half_up(1, 0, 2)

    def test_whole_numbers(self):
        assert to_whole_half_up(Decimal("2.5")) == 3
        assert to_whole_half_up(Decimal("2.7")) == 3
        assert to_whole_half_up(Decimal("2.4")) == 2


class TestUpgrade:

    def test_reference_figures(self):
        result = evaluate_upgrade(subscription(15), BASIC, PREMIUM, TODAY)

        assert result.price_per_swap_old == Decimal("20000.00")
        assert result.refund_value == Decimal("300000.00")
        assert result.upgrade_fee == Decimal("28000.00")
        assert result.total_payment_required == Decimal("528000.00")
        assert result.used_swaps == 5
        assert result.days_used == 10
        assert result.days_remaining == 20
        assert result.price_per_swap_new == Decimal("16000.00")
        assert result.total_swaps_after_upgrade == 50
        assert result.new_start_date == TODAY
        assert result.new_end_date == date(2026, 11, 17)
        assert result.can_upgrade is True

    def test_recommendation_mentions_savings_and_extra_swaps(self):
        result = evaluate_upgrade(subscription(15), BASIC, PREMIUM, TODAY)

        assert "saves 4,000 VND per swap" in result.recommendation
        assert "15/20 unused swaps (75%)" in result.recommendation
        assert "30 more swaps (20 -> 50)" in result.recommendation

    def test_recommendation_when_mostly_used(self):
        result = evaluate_upgrade(subscription(4), BASIC, PREMIUM, TODAY)

        assert "Good time to upgrade!" in result.recommendation

    def test_total_is_not_clamped(self):
        cheap_but_bigger = package(4, "Lite Plus", "100000", 25)

        result = evaluate_upgrade(subscription(20), BASIC, cheap_but_bigger, TODAY)

        assert result.total_payment_required == Decimal("-272000.00")

    @pytest.mark.parametrize("target", [BASIC, package(5, "Mini", "300000", 10)])
    def test_not_an_upgrade(self, target):
        with pytest.raises(InvalidPackageChangeError):
            evaluate_upgrade(subscription(15), BASIC, target, TODAY)


class TestDowngrade:

    def test_rejected_when_remaining_exceeds_target(self):
        result = evaluate_downgrade(subscription(50), PREMIUM, STANDARD, TODAY)

        assert result.can_downgrade is False
        assert result.swaps_to_consume == 20
        assert "CANNOT DOWNGRADE" in result.reason

    def test_not_a_downgrade(self):
        result = evaluate_downgrade(subscription(10), STANDARD, PREMIUM, TODAY)

        assert result.can_downgrade is False
        assert result.penalty_swaps is None

    def test_penalty_and_extension(self):
        result = evaluate_downgrade(subscription(27), PREMIUM, STANDARD, TODAY)

        assert result.can_downgrade is True
        assert result.penalty_swaps == 3
        assert result.final_remaining_swaps == 24
        assert result.extension_days == 24
        assert result.new_start_date == TODAY
        assert result.new_end_date == date(2026, 11, 11)
        assert result.no_refund == Decimal("0")
        assert result.downgrade_penalty_percent == Decimal("10.00")
        assert "will NOT be refunded 300,000 VND" in result.recommendation
        assert "Think it over!" in result.recommendation

    def test_reasonable_when_few_swaps_left(self):
        result = evaluate_downgrade(subscription(10), PREMIUM, STANDARD, TODAY)

        assert result.penalty_swaps == 1
        assert result.final_remaining_swaps == 9
        assert result.extension_days == 9
        assert "Reasonable" in result.recommendation

    def test_genuineness_checks(self):
        assert proration_service.is_genuine_upgrade(BASIC, PREMIUM)
        assert not proration_service.is_genuine_upgrade(PREMIUM, BASIC)
        assert proration_service.is_genuine_downgrade(PREMIUM, STANDARD)
        assert not proration_service.is_genuine_downgrade(BASIC, BASIC)
