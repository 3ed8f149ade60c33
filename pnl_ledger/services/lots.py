"""Lot queues and the single FIFO consumption primitive.

Every place that closes quantity against open lots (the FIFO engine, the
intraday trade-pairing view) goes through :func:`consume_fifo`, so the
matching rules cannot drift between equivalent computations.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable

from pnl_ledger.core.money import ZERO, average_price
from pnl_ledger.models import InitialPosition, Lot, LotSide

DEFAULT_EPSILON = Decimal("0.000001")

MatchCallback = Callable[[Lot, Decimal], None]


def consume_fifo(
    queue: deque[Lot],
    demand: Decimal,
    on_match: MatchCallback,
    *,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> Decimal:
    """Consume up to ``demand`` from the head of ``queue``.

    ``on_match(lot, qty)`` fires before the lot is decremented. Exhausted lots
    (at or below ``epsilon``) are dropped. Returns the unmatched remainder,
    which is zero once it falls within ``epsilon``.
    """

    remaining = demand
    while remaining > epsilon and queue:
        lot = queue[0]
        take = min(lot.quantity, remaining)
        on_match(lot, take)
        lot.quantity -= take
        remaining -= take
        if lot.quantity <= epsilon:
            queue.popleft()
    return remaining if remaining > epsilon else ZERO


def total_quantity(lots: Iterable[Lot]) -> Decimal:
    return sum((lot.quantity for lot in lots), ZERO)


def total_cost(lots: Iterable[Lot]) -> Decimal:
    return sum((lot.quantity * lot.price for lot in lots), ZERO)


def merge_initial_positions(positions: Iterable[InitialPosition]) -> list[InitialPosition]:
    """Fold seeds so each symbol has exactly one, in first-seen order.

    Quantities add up with their sign. The average price is weighted over the
    seeds on the side of the net position; seeds on the other side only reduce
    the quantity. A symbol with a single seed keeps it unchanged.
    """

    grouped: dict[str, list[InitialPosition]] = {}
    for position in positions:
        grouped.setdefault(position.symbol, []).append(position)

    merged: list[InitialPosition] = []
    for symbol, seeds in grouped.items():
        if len(seeds) == 1:
            merged.append(seeds[0])
            continue
        quantity = sum((seed.quantity for seed in seeds), ZERO)
        same_side = [seed for seed in seeds if (seed.quantity > 0) == (quantity > 0) and seed.quantity != 0]
        size = sum((abs(seed.quantity) for seed in same_side), ZERO)
        cost = sum((abs(seed.quantity) * seed.average_price for seed in same_side), ZERO)
        merged.append(InitialPosition(symbol, quantity, average_price(cost, size) if quantity != 0 else ZERO))
    return merged


@dataclass
class SymbolBook:
    """Long and short queues for one symbol plus its running realized P&L."""

    symbol: str
    long: deque[Lot] = field(default_factory=deque)
    short: deque[Lot] = field(default_factory=deque)
    realized_total: Decimal = ZERO
    trade_count: int = 0

    def queue(self, side: LotSide) -> deque[Lot]:
        return self.long if side is LotSide.LONG else self.short

    @property
    def long_quantity(self) -> Decimal:
        return total_quantity(self.long)

    @property
    def short_quantity(self) -> Decimal:
        return total_quantity(self.short)

    @property
    def net_quantity(self) -> Decimal:
        return self.long_quantity - self.short_quantity

    def signed_cost(self) -> Decimal:
        """Open cost with the sign of the position (short cost is negative)."""

        return total_cost(self.long) - total_cost(self.short)

    def open_lots(self) -> list[tuple[LotSide, Lot]]:
        lots = [(LotSide.LONG, lot) for lot in self.long]
        lots.extend((LotSide.SHORT, lot) for lot in self.short)
        return lots


__all__ = [
    "DEFAULT_EPSILON",
    "consume_fifo",
    "total_quantity",
    "total_cost",
    "merge_initial_positions",
    "SymbolBook",
]
