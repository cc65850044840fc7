"""
Integer-cents money arithmetic.

Amounts are always ints in minor units. Rates (tax, platform fee) are handled
as Decimal so that `amount * rate` is exact before rounding half-up.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from .validation import InvalidQuantity, ValidationError

Rate = Union[Decimal, int, str, float]

_ONE = Decimal(1)


def to_rate(rate: Rate) -> Decimal:
    """Normalize a rate to Decimal. Floats go through str() to avoid binary noise."""
    if isinstance(rate, Decimal):
        return rate
    if isinstance(rate, bool):
        raise ValidationError("rate must be a number")
    if isinstance(rate, float):
        return Decimal(str(rate))
    return Decimal(rate)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def tax(amount: int, rate: Rate) -> int:
    """Tax owed on `amount` cents at `rate` (0..1), rounded half-up."""
    rate = to_rate(rate)
    if amount < 0:
        raise ValidationError("amount must be non-negative")
    if rate < 0 or rate > 1:
        raise ValidationError("rate must be between 0 and 1")
    return round_half_up(Decimal(amount) * rate)


def line_total(unit_price: int, quantity: int) -> int:
    if quantity <= 0:
        raise InvalidQuantity("Quantity must be at least 1", {"quantity": quantity})
    return unit_price * quantity


def processing_fee(total: int, percent: Rate, fixed: int) -> int:
    """Platform application fee for a card payment of `total` cents."""
    return tax(total, percent) + fixed


def prorate(total: int, original_quantity: int, quantity: int) -> int:
    """Share of a line's `total` attributable to `quantity` of `original_quantity` units."""
    if original_quantity <= 0:
        raise InvalidQuantity("Original quantity must be positive")
    return round_half_up(Decimal(total) * Decimal(quantity) / Decimal(original_quantity))


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    dollars, rem = divmod(abs(cents), 100)
    return f"{sign}${dollars:,}.{rem:02d}"
