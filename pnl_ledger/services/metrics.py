"""Metrics calculator: the M1 through M13 bundle for one evaluation date.

Metric map:

* M1 cost basis, M2 market value, M3 floating P&L (from positions)
* M4 today's closes of lots opened before today
* M5 today's closes of lots opened today, as ``trade`` (pairing view) and
  ``fifo`` (tagged FIFO view)
* M6 = M4 + M5.fifo + M3
* M7 / M8 trade counts for today and cumulative (seeded by initial positions)
* M9 realized total from the daily ledger
* M10 win / loss / flat over every FIFO close
* M11 / M12 / M13 week, month and year to date from the daily ledger
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

from pnl_ledger.core.calendar import NEW_YORK, calendar_day, parse_day
from pnl_ledger.core.money import ZERO, round2
from pnl_ledger.models import (
    Breakdown,
    BreakdownRow,
    Bucket,
    DailyResult,
    EnrichedTrade,
    InitialPosition,
    IntradayRealized,
    LotMatch,
    MetricsBundle,
    Position,
    RawTrade,
    Side,
    TradeCounts,
    WinLoss,
)
from pnl_ledger.services.fifo import FifoRun, run_fifo
from pnl_ledger.services.intraday import intraday_pairing_pnl
from pnl_ledger.services.lots import DEFAULT_EPSILON, merge_initial_positions
from pnl_ledger.services.periods import (
    PeriodAggregator,
    history_realized_total,
    validate_daily_results,
)
from pnl_ledger.services.pricing import (
    ClosePriceMap,
    PriceResolver,
    floating_total,
    positions_from_enriched,
)

logger = logging.getLogger(__name__)

RATE_STEP = Decimal("0.0001")


def as_raw(trade: RawTrade | EnrichedTrade) -> RawTrade:
    return trade.trade if isinstance(trade, EnrichedTrade) else trade


@dataclass(frozen=True)
class EligibleTrades:
    """Trades usable as of an evaluation date, split from the ones left out."""

    trades: list[RawTrade]
    undated: int = 0
    future: int = 0


def eligible_trades(
    trades: Iterable[RawTrade | EnrichedTrade],
    evaluation_date: date,
    tz: ZoneInfo = NEW_YORK,
) -> EligibleTrades:
    """Keep trades with a valid timestamp on or before ``evaluation_date``."""

    kept: list[RawTrade] = []
    undated = future = 0
    for item in trades:
        trade = as_raw(item)
        day = calendar_day(trade.timestamp, tz)
        if day is None:
            undated += 1
        elif day > evaluation_date:
            future += 1
        else:
            kept.append(trade)
    if undated:
        logger.warning("Ignoring %d trade(s) with a missing or malformed date", undated)
    if future:
        logger.info("Ignoring %d trade(s) dated after %s", future, evaluation_date)
    return EligibleTrades(kept, undated, future)


def count_trades(trades: Iterable[RawTrade], seeds: Iterable[InitialPosition] = ()) -> TradeCounts:
    counts = {side: 0 for side in Side}
    for trade in trades:
        counts[trade.side] += 1
    for seed in merge_initial_positions(seeds):
        if seed.quantity > 0:
            counts[Side.BUY] += 1
        elif seed.quantity < 0:
            counts[Side.SHORT] += 1
    return TradeCounts(
        buy=counts[Side.BUY],
        sell=counts[Side.SELL],
        short=counts[Side.SHORT],
        cover=counts[Side.COVER],
    )


def win_loss(matches: Iterable[LotMatch]) -> WinLoss:
    win = loss = flat = 0
    for match in matches:
        if match.pnl > 0:
            win += 1
        elif match.pnl < 0:
            loss += 1
        else:
            flat += 1
    decided = win + loss
    rate = (Decimal(win) / Decimal(decided)).quantize(RATE_STEP, ROUND_HALF_UP) if decided else ZERO
    return WinLoss(win=win, loss=loss, flat=flat, rate=rate)


def bucket_total(matches: Iterable[LotMatch], bucket: Bucket) -> Decimal:
    return round2(sum((match.pnl for match in matches if match.bucket is bucket), ZERO))


def breakdown_from_run(run: FifoRun) -> Breakdown:
    """Audit rows for every close that fed M4 or M5.fifo, in trade order."""

    rows = tuple(
        BreakdownRow(
            symbol=match.symbol,
            time=match.timestamp,
            action=match.action,
            into=match.bucket,
            quantity=match.quantity,
            open_price=match.open_price,
            close_price=match.close_price,
            pnl=match.pnl,
        )
        for match in run.matches
        if match.bucket is not None
    )
    return Breakdown(
        rows=rows,
        sum_m4=bucket_total(run.matches, Bucket.HISTORY),
        sum_m52=bucket_total(run.matches, Bucket.INTRADAY),
    )


def metrics_from_run(
    run: FifoRun,
    trades: Sequence[RawTrade],
    positions: Sequence[Position],
    daily_results: Sequence[DailyResult],
    initial_positions: Sequence[InitialPosition],
    evaluation_date: date,
    *,
    aggregator: PeriodAggregator | None = None,
    tz: ZoneInfo = NEW_YORK,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> MetricsBundle:
    """Assemble the bundle from an engine pass over already-eligible ``trades``."""

    validate_daily_results(daily_results)
    aggregator = aggregator or PeriodAggregator()

    cost_basis = round2(sum((p.cost_basis for p in positions), ZERO))
    market_value = round2(sum((p.market_value for p in positions if p.market_value is not None), ZERO))
    floating = floating_total(positions)

    history = bucket_total(run.matches, Bucket.HISTORY)
    intraday = IntradayRealized(
        behavior=round2(intraday_pairing_pnl(trades, evaluation_date, tz=tz, epsilon=epsilon)),
        fifo=bucket_total(run.matches, Bucket.INTRADAY),
    )
    if intraday.diverged:
        logger.warning(
            "Intraday realized views disagree on %s: trade=%s fifo=%s",
            evaluation_date,
            intraday.behavior,
            intraday.fifo,
        )

    todays = [trade for trade in trades if calendar_day(trade.timestamp, tz) == evaluation_date]
    ledger = [row for row in daily_results if row.date <= evaluation_date]

    bundle = MetricsBundle(
        evaluation_date=evaluation_date,
        cost_basis=cost_basis,
        market_value=market_value,
        floating_pnl=floating,
        history_realized=history,
        intraday=intraday,
        today_total=round2(history + intraday.fifo + floating),
        today_counts=count_trades(todays),
        cumulative_counts=count_trades(trades, initial_positions),
        history_realized_total=history_realized_total(ledger, evaluation_date),
        win_loss=win_loss(run.matches),
        periods=aggregator.period_sums(ledger, evaluation_date),
    )
    logger.debug("Metrics for %s: %s", evaluation_date, bundle.as_dict())
    return bundle


def calc_metrics(
    trades: Sequence[RawTrade | EnrichedTrade],
    positions: Sequence[Position] | None = None,
    daily_results: Sequence[DailyResult] = (),
    initial_positions: Sequence[InitialPosition] = (),
    *,
    evaluation_date: date | str,
    close_prices: ClosePriceMap | None = None,
    aggregator: PeriodAggregator | None = None,
    tz: ZoneInfo = NEW_YORK,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> MetricsBundle:
    """Compute the metric bundle as of ``evaluation_date``.

    When ``positions`` is omitted they are derived from the engine pass and
    marked through ``close_prices`` (falling back to average cost).
    Raises :class:`DailyResultMismatchError` for a corrupted ledger row.
    """

    day = parse_day(evaluation_date)
    eligible = eligible_trades(trades, day, tz).trades
    run = run_fifo(eligible, initial_positions, day, tz=tz, epsilon=epsilon)
    if positions is None:
        resolver = PriceResolver(close_prices, evaluation_date=day)
        positions = positions_from_enriched(run.trades, initial_positions, day, resolver, epsilon=epsilon)
    return metrics_from_run(
        run,
        eligible,
        positions,
        daily_results,
        initial_positions,
        day,
        aggregator=aggregator,
        tz=tz,
        epsilon=epsilon,
    )


def realized_breakdown(
    trades: Sequence[RawTrade | EnrichedTrade],
    initial_positions: Sequence[InitialPosition] = (),
    *,
    evaluation_date: date | str,
    tz: ZoneInfo = NEW_YORK,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> Breakdown:
    """Per-match audit of today's realized P&L."""

    day = parse_day(evaluation_date)
    eligible = eligible_trades(trades, day, tz).trades
    return breakdown_from_run(run_fifo(eligible, initial_positions, day, tz=tz, epsilon=epsilon))


__all__ = [
    "as_raw",
    "EligibleTrades",
    "eligible_trades",
    "count_trades",
    "win_loss",
    "bucket_total",
    "breakdown_from_run",
    "metrics_from_run",
    "calc_metrics",
    "realized_breakdown",
]
