"""Price resolution and position marking.

Prices are supplied by the caller as a close-price map (symbol -> day -> price)
plus optional live quotes. Nothing here fetches data. Resolution order for a
symbol on a day: that day's close, the live quote when the day is the
evaluation date, the latest earlier close, then the position's own average
cost. Only the first two count as trustworthy.
"""

from __future__ import annotations

import logging
from bisect import bisect_left
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Sequence

from pnl_ledger.core.money import ZERO, round2
from pnl_ledger.models import EnrichedTrade, InitialPosition, Position
from pnl_ledger.services.lots import DEFAULT_EPSILON, merge_initial_positions

logger = logging.getLogger(__name__)

ClosePriceMap = Mapping[str, Mapping[date, Decimal]]


class PriceOrigin(str, Enum):
    CLOSE = "close"
    LIVE = "live"
    PREVIOUS_CLOSE = "previous_close"
    AVERAGE_COST = "average_cost"


@dataclass(frozen=True)
class ResolvedPrice:
    price: Decimal
    origin: PriceOrigin

    @property
    def trusted(self) -> bool:
        return self.origin in (PriceOrigin.CLOSE, PriceOrigin.LIVE)


class PriceResolver:
    """Resolve a marking price per symbol and day from caller-supplied data."""

    def __init__(
        self,
        close_prices: ClosePriceMap | None = None,
        live_prices: Mapping[str, Decimal] | None = None,
        evaluation_date: date | None = None,
    ):
        self._closes: dict[str, dict[date, Decimal]] = {
            symbol: dict(series) for symbol, series in (close_prices or {}).items()
        }
        self._days: dict[str, list[date]] = {
            symbol: sorted(series) for symbol, series in self._closes.items()
        }
        self._live = dict(live_prices or {})
        self.evaluation_date = evaluation_date

    def close_days(self, symbols: Iterable[str], until: date) -> set[date]:
        days: set[date] = set()
        for symbol in symbols:
            days.update(day for day in self._days.get(symbol, ()) if day <= until)
        return days

    def previous_close(self, symbol: str, day: date) -> Decimal | None:
        days = self._days.get(symbol)
        if not days:
            return None
        index = bisect_left(days, day)
        if index == 0:
            return None
        return self._closes[symbol][days[index - 1]]

    def resolve(self, symbol: str, day: date, average_cost: Decimal | None = None) -> ResolvedPrice | None:
        close = self._closes.get(symbol, {}).get(day)
        if close is not None:
            return ResolvedPrice(close, PriceOrigin.CLOSE)
        if day == self.evaluation_date and symbol in self._live:
            return ResolvedPrice(self._live[symbol], PriceOrigin.LIVE)
        previous = self.previous_close(symbol, day)
        if previous is not None:
            return ResolvedPrice(previous, PriceOrigin.PREVIOUS_CLOSE)
        if average_cost is not None and average_cost != 0:
            logger.warning("No price for %s on %s; marking at average cost", symbol, day)
            return ResolvedPrice(average_cost, PriceOrigin.AVERAGE_COST)
        return None


def open_state(
    trades: Sequence[EnrichedTrade],
    initial_positions: Iterable[InitialPosition] = (),
) -> dict[str, tuple[Decimal, Decimal]]:
    """Symbol -> (signed quantity, average cost) after the last trade of each symbol.

    Symbols without trades keep their seed position; duplicate seeds are merged first.
    """

    state: dict[str, tuple[Decimal, Decimal]] = {}
    for position in merge_initial_positions(initial_positions):
        state[position.symbol] = (position.quantity, position.average_price)
    for trade in trades:
        state[trade.symbol] = (trade.quantity_after, trade.average_cost)
    return state


def mark_positions(
    state: Mapping[str, tuple[Decimal, Decimal]],
    day: date,
    resolver: PriceResolver,
    *,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> list[Position]:
    """Positions still open in ``state`` marked at the price resolved for ``day``."""

    positions: list[Position] = []
    for symbol in sorted(state):
        quantity, average_cost = state[symbol]
        if abs(quantity) <= epsilon:
            continue
        resolved = resolver.resolve(symbol, day, average_cost)
        positions.append(
            Position(
                symbol=symbol,
                quantity=quantity,
                average_cost=average_cost,
                last_price=resolved.price if resolved is not None else None,
                price_ok=resolved.trusted if resolved is not None else False,
            )
        )
    return positions


def positions_from_enriched(
    trades: Sequence[EnrichedTrade],
    initial_positions: Iterable[InitialPosition],
    day: date,
    resolver: PriceResolver,
    *,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> list[Position]:
    return mark_positions(open_state(trades, initial_positions), day, resolver, epsilon=epsilon)


def floating_total(positions: Iterable[Position]) -> Decimal:
    """Floating P&L over positions; positions without any price are left out."""

    return round2(sum((p.floating_pnl for p in positions if p.floating_pnl is not None), ZERO))


__all__ = [
    "ClosePriceMap",
    "PriceOrigin",
    "ResolvedPrice",
    "PriceResolver",
    "open_state",
    "mark_positions",
    "positions_from_enriched",
    "floating_total",
]
