"""
Proration math for package upgrades and downgrades.

Pure functions: no session, no clock. Callers pass the subscription snapshot,
both packages and `today`.

Rounding rules (must stay bit-for-bit stable):
- currency values have 2 fraction digits, ROUND_HALF_UP, rounded after every
  multiplication or division before the next step consumes them;
- divisions are computed exactly and rounded once to the target scale;
- swap counts and day counts are rounded half-up to whole numbers.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from fractions import Fraction
from typing import Optional, Union

from evswap.exceptions import InvalidPackageChangeError

UPGRADE_FEE_RATE = Decimal("0.07")
DOWNGRADE_PENALTY_RATE = Decimal("0.10")

MONEY_PLACES = 2
RATIO_PLACES = 4

Number = Union[int, Decimal]


def round_half_up(value: Decimal, places: int = MONEY_PLACES) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def divide_half_up(dividend: Number, divisor: Number, places: int) -> Decimal:
    """dividend / divisor rounded half-up (away from zero on ties) to `places` digits."""
    if divisor == 0:
        raise ZeroDivisionError("division by zero in proration")
    scaled = Fraction(Decimal(dividend)) / Fraction(Decimal(divisor)) * (10 ** places)
    whole, remainder = divmod(abs(scaled.numerator), scaled.denominator)
    if 2 * remainder >= scaled.denominator:
        whole += 1
    sign = -1 if scaled < 0 else 1
    return Decimal(sign * whole).scaleb(-places)


def to_whole_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _money(value: Number) -> Decimal:
    return Decimal(value)


@dataclass
class UpgradeCalculation:
    current_subscription_id: Optional[int]
    current_package_name: str
    current_package_price: Decimal
    current_max_swaps: int
    used_swaps: int
    remaining_swaps: int
    current_start_date: date
    current_end_date: date
    days_used: int
    days_remaining: int

    new_package_id: Optional[int]
    new_package_name: str
    new_package_price: Decimal
    new_max_swaps: int
    new_duration: int

    price_per_swap_old: Decimal
    refund_value: Decimal
    upgrade_fee_percent: Decimal
    upgrade_fee: Decimal
    total_payment_required: Decimal

    total_swaps_after_upgrade: int
    new_start_date: date
    new_end_date: date

    price_per_swap_new: Decimal
    savings_per_swap: Decimal
    recommendation: str

    can_upgrade: bool = True
    message: str = "You can upgrade your package. The calculation details are provided."


@dataclass
class DowngradeCalculation:
    can_downgrade: bool
    reason: str
    warning: Optional[str] = None
    recommendation: Optional[str] = None

    current_subscription_id: Optional[int] = None
    current_package_name: Optional[str] = None
    current_package_price: Optional[Decimal] = None
    current_max_swaps: Optional[int] = None
    used_swaps: Optional[int] = None
    remaining_swaps: Optional[int] = None
    current_start_date: Optional[date] = None
    current_end_date: Optional[date] = None
    days_used: Optional[int] = None
    days_remaining: Optional[int] = None

    new_package_id: Optional[int] = None
    new_package_name: Optional[str] = None
    new_package_price: Optional[Decimal] = None
    new_max_swaps: Optional[int] = None
    new_duration: Optional[int] = None

    price_per_swap_old: Optional[Decimal] = None
    price_per_swap_new: Optional[Decimal] = None
    total_paid_for_old_package: Optional[Decimal] = None
    no_refund: Decimal = Decimal("0")
    downgrade_penalty_percent: Optional[Decimal] = None
    penalty_swaps: Optional[int] = None
    final_remaining_swaps: Optional[int] = None
    swaps_to_consume: Optional[int] = None

    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    extension_days: Optional[int] = None


def is_genuine_upgrade(current_package, new_package) -> bool:
    return not (
        _money(new_package.price) <= _money(current_package.price)
        and new_package.max_swaps <= current_package.max_swaps
    )


def is_genuine_downgrade(current_package, new_package) -> bool:
    return not (
        _money(new_package.price) >= _money(current_package.price)
        and new_package.max_swaps >= current_package.max_swaps
    )


def evaluate_upgrade(subscription, current_package, new_package, today: date) -> UpgradeCalculation:
    """
    Price an upgrade from `current_package` to `new_package`.

    refund_value = (price / max_swaps) x remaining_swaps
    upgrade_fee  = price x 7%
    total        = new price + upgrade_fee - refund_value   (not clamped)

    Raises:
        InvalidPackageChangeError: new package is neither pricier nor larger
    """
    current_price = _money(current_package.price)
    new_price = _money(new_package.price)

    if not is_genuine_upgrade(current_package, new_package):
        raise InvalidPackageChangeError(
            "Cannot upgrade: the new package must cost more or include more swaps than the current one. "
            f"Current package: {current_price} VND / {current_package.max_swaps} swaps. "
            f"New package: {new_price} VND / {new_package.max_swaps} swaps."
        )

    remaining_swaps = subscription.remaining_swaps
    used_swaps = current_package.max_swaps - remaining_swaps
    days_used = (today - subscription.start_date).days
    days_remaining = (subscription.end_date - today).days

    price_per_swap_old = divide_half_up(current_price, current_package.max_swaps, MONEY_PLACES)
    refund_value = round_half_up(price_per_swap_old * remaining_swaps)
    upgrade_fee = round_half_up(current_price * UPGRADE_FEE_RATE)
    total_payment = round_half_up(new_price + upgrade_fee - refund_value)

    price_per_swap_new = divide_half_up(new_price, new_package.max_swaps, MONEY_PLACES)
    savings_per_swap = price_per_swap_old - price_per_swap_new

    recommendation = build_upgrade_recommendation(
        current_package, new_package, remaining_swaps, savings_per_swap
    )

    logging.debug(
        f"Upgrade evaluation {current_package.name} -> {new_package.name}: "
        f"refund={refund_value}, fee={upgrade_fee}, total={total_payment}"
    )

    return UpgradeCalculation(
        current_subscription_id=subscription.id,
        current_package_name=current_package.name,
        current_package_price=current_price,
        current_max_swaps=current_package.max_swaps,
        used_swaps=used_swaps,
        remaining_swaps=remaining_swaps,
        current_start_date=subscription.start_date,
        current_end_date=subscription.end_date,
        days_used=days_used,
        days_remaining=days_remaining,
        new_package_id=new_package.id,
        new_package_name=new_package.name,
        new_package_price=new_price,
        new_max_swaps=new_package.max_swaps,
        new_duration=new_package.duration,
        price_per_swap_old=price_per_swap_old,
        refund_value=refund_value,
        upgrade_fee_percent=UPGRADE_FEE_RATE * 100,
        upgrade_fee=upgrade_fee,
        total_payment_required=total_payment,
        total_swaps_after_upgrade=new_package.max_swaps,
        new_start_date=today,
        new_end_date=today + timedelta(days=new_package.duration),
        price_per_swap_new=price_per_swap_new,
        savings_per_swap=savings_per_swap,
        recommendation=recommendation,
    )


def build_upgrade_recommendation(current_package, new_package, remaining_swaps: int,
                                 savings_per_swap: Decimal) -> str:
    parts = ["Analysis: "]

    if savings_per_swap > 0:
        parts.append(f"The new package saves {int(savings_per_swap):,} VND per swap compared to the current one. ")

    current_max = current_package.max_swaps
    if remaining_swaps > current_max // 2:
        parts.append(
            f"You still have {remaining_swaps}/{current_max} unused swaps "
            f"({remaining_swaps * 100 // current_max}%). "
            "Consider using a few more swaps before upgrading to get the most out of your package. "
        )
    else:
        parts.append("Good time to upgrade! ")

    additional_swaps = new_package.max_swaps - current_max
    if additional_swaps > 0:
        parts.append(
            f"After upgrading you get {additional_swaps} more swaps "
            f"({current_max} -> {new_package.max_swaps}). "
        )

    return "".join(parts)


def evaluate_downgrade(subscription, current_package, new_package, today: date) -> DowngradeCalculation:
    """
    Check and price a downgrade. Never raises for business-rule failures:
    the result carries can_downgrade=False and the reason instead.

    penalty_swaps   = round(remaining x 10%)
    final_swaps     = remaining - penalty_swaps
    extension_days  = round(round4(final_swaps / new max_swaps) x new duration)
    No money is refunded.
    """
    current_price = _money(current_package.price)
    new_price = _money(new_package.price)
    remaining_swaps = subscription.remaining_swaps

    if not is_genuine_downgrade(current_package, new_package):
        return DowngradeCalculation(
            can_downgrade=False,
            reason=(
                "The new package must cost less or include fewer swaps than the current one. "
                f"Current package: {current_price} VND / {current_package.max_swaps} swaps. "
                f"New package: {new_price} VND / {new_package.max_swaps} swaps."
            ),
            warning="This is not a downgrade! Please choose a cheaper package.",
        )

    if remaining_swaps > new_package.max_swaps:
        swaps_to_consume = remaining_swaps - new_package.max_swaps
        return DowngradeCalculation(
            can_downgrade=False,
            reason=(
                f"CANNOT DOWNGRADE! You have {remaining_swaps} unused swaps, "
                f"but package \"{new_package.name}\" supports at most {new_package.max_swaps} swaps. "
                f"Use some of your swaps (down to {new_package.max_swaps} or fewer) or choose a larger package."
            ),
            warning=(
                f"Tip: use {swaps_to_consume} more swaps ({new_package.max_swaps} left) "
                "and you will be able to downgrade to this package."
            ),
            current_subscription_id=subscription.id,
            current_package_name=current_package.name,
            current_package_price=current_price,
            current_max_swaps=current_package.max_swaps,
            remaining_swaps=remaining_swaps,
            new_package_id=new_package.id,
            new_package_name=new_package.name,
            new_max_swaps=new_package.max_swaps,
            swaps_to_consume=swaps_to_consume,
        )

    used_swaps = current_package.max_swaps - remaining_swaps
    days_used = (today - subscription.start_date).days
    days_remaining = (subscription.end_date - today).days

    price_per_swap_old = divide_half_up(current_price, current_package.max_swaps, MONEY_PLACES)
    price_per_swap_new = divide_half_up(new_price, new_package.max_swaps, MONEY_PLACES)

    penalty_swaps = to_whole_half_up(Decimal(remaining_swaps) * DOWNGRADE_PENALTY_RATE)
    final_swaps = remaining_swaps - penalty_swaps

    swap_ratio = divide_half_up(final_swaps, new_package.max_swaps, RATIO_PLACES)
    extension_days = to_whole_half_up(swap_ratio * new_package.duration)

    new_start_date = today
    new_end_date = today + timedelta(days=extension_days)

    warning = (
        f"DOWNGRADES ARE NOT REFUNDED! You paid {int(current_price):,} VND for \"{current_package.name}\". "
        f"Switching to \"{new_package.name}\" will NOT refund the price difference. "
        f"In addition, {penalty_swaps} swaps will be deducted (10% penalty)."
    )
    recommendation = build_downgrade_recommendation(
        current_package, new_package, remaining_swaps, final_swaps, extension_days
    )

    return DowngradeCalculation(
        can_downgrade=True,
        reason="You are eligible to downgrade. Please review the warning carefully before deciding.",
        warning=warning,
        recommendation=recommendation,
        current_subscription_id=subscription.id,
        current_package_name=current_package.name,
        current_package_price=current_price,
        current_max_swaps=current_package.max_swaps,
        used_swaps=used_swaps,
        remaining_swaps=remaining_swaps,
        current_start_date=subscription.start_date,
        current_end_date=subscription.end_date,
        days_used=days_used,
        days_remaining=days_remaining,
        new_package_id=new_package.id,
        new_package_name=new_package.name,
        new_package_price=new_price,
        new_max_swaps=new_package.max_swaps,
        new_duration=new_package.duration,
        price_per_swap_old=price_per_swap_old,
        price_per_swap_new=price_per_swap_new,
        total_paid_for_old_package=current_price,
        downgrade_penalty_percent=DOWNGRADE_PENALTY_RATE * 100,
        penalty_swaps=penalty_swaps,
        final_remaining_swaps=final_swaps,
        new_start_date=new_start_date,
        new_end_date=new_end_date,
        extension_days=extension_days,
    )


def build_downgrade_recommendation(current_package, new_package, remaining_swaps: int,
                                   final_swaps: int, extension_days: int) -> str:
    lost_value = _money(current_package.price) - _money(new_package.price)
    penalty_swaps = remaining_swaps - final_swaps

    parts = [
        "Analysis: ",
        f"You will NOT be refunded {int(lost_value):,} VND (the price difference between the packages). ",
        f"{penalty_swaps} swaps deducted (10% penalty), {final_swaps} swaps left. ",
        f"The new package will last {extension_days} days (based on {final_swaps} remaining swaps). ",
    ]

    if remaining_swaps < new_package.max_swaps // 2:
        parts.append("Reasonable if you really use fewer swaps than planned. ")
    else:
        parts.append(
            "Think it over! You still have plenty of swaps; using them up and then buying "
            "a new package may be the better deal. "
        )

    return "".join(parts)
