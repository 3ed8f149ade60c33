"""Decimal helpers for currency arithmetic.

Every amount that leaves the engine is a ``Decimal`` quantized to cents with
half-up rounding. Average costs keep four places. Inputs arriving as floats are
converted through ``str`` so ``0.1`` stays ``0.1``.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
COST_STEP = Decimal("0.0001")
ZERO = Decimal("0")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Convert ``value`` into a finite Decimal or raise ``ValueError``."""

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"Boolean is not a number: {value!r}")
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round2(value: Decimal) -> Decimal:
    """Round to cents, half away from zero."""

    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_cost(value: Decimal) -> Decimal:
    return value.quantize(COST_STEP, rounding=ROUND_HALF_UP)


def money_mul(price: Decimal, quantity: Decimal) -> Decimal:
    """Price times quantity, rounded to cents."""

    return round2(price * quantity)


def average_price(cost: Decimal, quantity: Decimal) -> Decimal:
    """Weighted average price of ``cost`` spread over ``quantity``; zero when flat."""

    if quantity == 0:
        return ZERO
    return round_cost(cost / quantity)


def long_realized(close_price: Decimal, open_price: Decimal, quantity: Decimal) -> Decimal:
    """Realized P&L from selling ``quantity`` of a long lot."""

    return round2((close_price - open_price) * quantity)


def short_realized(close_price: Decimal, open_price: Decimal, quantity: Decimal) -> Decimal:
    """Realized P&L from covering ``quantity`` of a short lot."""

    return round2((open_price - close_price) * quantity)


def floating_pnl(last_price: Decimal, average_cost: Decimal, signed_quantity: Decimal) -> Decimal:
    """Unrounded mark-to-market P&L; longs gain when price rises, shorts when it falls.

    ``(last - avg) * qty`` covers both directions because a short carries a
    negative quantity.
    """

    return (last_price - average_cost) * signed_quantity


__all__ = [
    "CENT",
    "COST_STEP",
    "ZERO",
    "to_decimal",
    "round2",
    "round_cost",
    "money_mul",
    "average_price",
    "long_realized",
    "short_realized",
    "floating_pnl",
]
