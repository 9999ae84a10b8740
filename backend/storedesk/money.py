# Overview: Minor-unit money helpers shared by cart, checkout, payments and stock costing.
"""
All money is stored and computed as integer cents.

Rounding is half-up to the nearest cent. Comparisons that must absorb
upstream rounding drift (e.g. "is this invoice paid?") use PAID_TOLERANCE_CENTS.
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

PAID_TOLERANCE_CENTS = 1


def round_half_up(value: Decimal | int) -> int:
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_decimal(value: Any, default: Decimal | None = None) -> Decimal | None:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def to_cents(value: Any) -> int | None:
    """Major units (e.g. "12.50", 12.5) -> cents."""
    amount = to_decimal(value)
    if amount is None:
        return None
    return round_half_up(amount * 100)


def from_cents(cents: int | None) -> float | None:
    if cents is None:
        return None
    return float(Decimal(cents) / 100)


def percent_of(amount_cents: int, rate_percent: Decimal) -> int:
    """Half-up cents of amount x rate% (rate given as 12.5 for 12.5%)."""
    return round_half_up(Decimal(amount_cents) * rate_percent / Decimal(100))


def weighted_average_cents(
    old_quantity: int,
    old_average_cents: int,
    added_quantity: int,
    added_unit_cents: int,
) -> int:
    new_quantity = old_quantity + added_quantity
    if new_quantity <= 0:
        return old_average_cents
    combined = Decimal(old_quantity) * old_average_cents + Decimal(added_quantity) * added_unit_cents
    return round_half_up(combined / new_quantity)
