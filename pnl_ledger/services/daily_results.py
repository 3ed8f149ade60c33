"""Daily result generator.

Folds the trade history into one ledger row per calendar day, from the first
trade (or first close price of a traded symbol) through the evaluation date.
Days with no trades and nothing open are skipped, except the evaluation date
itself, which always gets a row.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Mapping, Sequence
from zoneinfo import ZoneInfo

from pnl_ledger.core.calendar import NEW_YORK, iter_days, parse_day
from pnl_ledger.core.money import ZERO, round2
from pnl_ledger.models import DailyResult, EnrichedTrade, InitialPosition, Position, RawTrade
from pnl_ledger.services.fifo import run_fifo
from pnl_ledger.services.lots import DEFAULT_EPSILON, merge_initial_positions
from pnl_ledger.services.metrics import eligible_trades
from pnl_ledger.services.pricing import ClosePriceMap, PriceResolver, floating_total, mark_positions

logger = logging.getLogger(__name__)


def _live_prices(
    positions: Sequence[Position] | None,
    live_prices: Mapping[str, Decimal] | None,
) -> dict[str, Decimal]:
    if live_prices is not None:
        return dict(live_prices)
    return {
        position.symbol: position.last_price
        for position in positions or ()
        if position.price_ok and position.last_price is not None
    }


def generate_daily_results(
    trades: Sequence[RawTrade | EnrichedTrade],
    close_prices: ClosePriceMap | None,
    evaluation_date: date | str,
    *,
    positions: Sequence[Position] | None = None,
    initial_positions: Sequence[InitialPosition] = (),
    live_prices: Mapping[str, Decimal] | None = None,
    tz: ZoneInfo = NEW_YORK,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> list[DailyResult]:
    """Return chronologically ordered daily rows ending on ``evaluation_date``.

    Live quotes come from ``live_prices`` or, when absent, from the trusted
    last prices of ``positions``; they only mark the evaluation date.
    """

    end = parse_day(evaluation_date)
    eligible = eligible_trades(trades, end, tz).trades
    seeds = merge_initial_positions(initial_positions)
    run = run_fifo(eligible, seeds, end, tz=tz, epsilon=epsilon)
    resolver = PriceResolver(close_prices, _live_prices(positions, live_prices), end)

    by_day: dict[date, list[EnrichedTrade]] = defaultdict(list)
    for trade in run.trades:
        by_day[trade.day].append(trade)

    symbols = {trade.symbol for trade in run.trades}
    symbols.update(position.symbol for position in seeds)
    anchors = set(by_day) | resolver.close_days(symbols, end) | {end}
    start = min(anchors)

    state: dict[str, tuple[Decimal, Decimal]] = {
        position.symbol: (position.quantity, position.average_price) for position in seeds
    }
    results: list[DailyResult] = []
    previous_unrealized = ZERO

    for day in iter_days(start, end):
        todays = by_day.get(day, [])
        for trade in todays:
            state[trade.symbol] = (trade.quantity_after, trade.average_cost)
        positions_open = any(abs(quantity) > epsilon for quantity, _ in state.values())
        if not todays and not positions_open and day != end:
            continue

        realized = round2(sum((trade.realized_pnl for trade in todays), ZERO))
        unrealized = floating_total(mark_positions(state, day, resolver, epsilon=epsilon))
        results.append(
            DailyResult(
                date=day,
                realized=realized,
                unrealized=unrealized,
                unrealized_delta=round2(unrealized - previous_unrealized),
            )
        )
        previous_unrealized = unrealized

    logger.debug("Generated %d daily results through %s", len(results), end)
    return results


__all__ = ["generate_daily_results"]
