"""End-to-end pipeline and the multi-day replay driver.

``LedgerEngine.run`` takes one evaluation date through the whole chain:
FIFO pass, position marking, metrics, audit breakdown, invariant checks.
``LedgerEngine.replay`` repeats that for every day of a range, feeding the
growing daily ledger back in and validating each pass before its row is
appended.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Mapping, Sequence
from zoneinfo import ZoneInfo

from pnl_ledger.config import LedgerSettings, get_settings
from pnl_ledger.core.calendar import iter_days, parse_day, resolve_evaluation_date
from pnl_ledger.core.errors import InputValidationError, InvariantViolation
from pnl_ledger.core.money import ZERO, round2
from pnl_ledger.core.telemetry import get_tracer
from pnl_ledger.models import (
    Breakdown,
    DailyResult,
    EnrichedTrade,
    InitialPosition,
    Lot,
    LotSide,
    MetricsBundle,
    Position,
    RawTrade,
)
from pnl_ledger.services.daily_results import generate_daily_results
from pnl_ledger.services.fifo import run_fifo
from pnl_ledger.services.invariants import InvariantOptions, check_invariants
from pnl_ledger.services.metrics import breakdown_from_run, eligible_trades, metrics_from_run
from pnl_ledger.services.periods import PeriodAggregator, PeriodSumCache, validate_daily_results
from pnl_ledger.services.pricing import ClosePriceMap, PriceResolver, positions_from_enriched

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    evaluation_date: date
    metrics: MetricsBundle
    breakdown: Breakdown
    trades: list[EnrichedTrade]
    positions: list[Position]
    open_lots: dict[str, list[tuple[LotSide, Lot]]] = field(default_factory=dict)

    def daily_result(self, previous_unrealized: Decimal | None = None) -> DailyResult:
        """Ledger row for this evaluation date: today's realized split plus floating P&L."""

        realized = round2(self.metrics.history_realized + self.metrics.intraday.fifo)
        unrealized = self.metrics.floating_pnl
        delta = None if previous_unrealized is None else round2(unrealized - previous_unrealized)
        return DailyResult(date=self.evaluation_date, realized=realized, unrealized=unrealized, unrealized_delta=delta)


@dataclass
class ReplayResult:
    daily_results: list[DailyResult]
    last: PipelineResult | None = None


def replay_days(start: date | str, end: date | str) -> list[date]:
    """Every calendar day of the inclusive range, even days without trades."""

    first, last = parse_day(start), parse_day(end)
    if first > last:
        raise InputValidationError(f"Replay range is inverted: {first} > {last}")
    return list(iter_days(first, last))


class LedgerEngine:
    """Runs the pipeline with one settings object and one period cache."""

    def __init__(
        self,
        settings: LedgerSettings | None = None,
        aggregator: PeriodAggregator | None = None,
    ):
        self.settings = settings or get_settings()
        self.tz = ZoneInfo(self.settings.timezone)
        self.epsilon = self.settings.quantity_epsilon
        self.aggregator = aggregator or PeriodAggregator(
            PeriodSumCache(
                max_datasets=self.settings.period_cache_max_datasets,
                evict_batch=self.settings.period_cache_evict_batch,
            )
        )
        self.invariant_options = InvariantOptions(
            no_over_close=self.settings.enforce_no_over_close,
            long_only=self.settings.long_only,
            epsilon=self.epsilon,
        )
        self._tracer = get_tracer()

    def run(
        self,
        trades: Sequence[RawTrade],
        initial_positions: Sequence[InitialPosition] = (),
        close_prices: ClosePriceMap | None = None,
        daily_results: Sequence[DailyResult] = (),
        *,
        evaluation_date: date | str | None = None,
        live_prices: Mapping[str, Decimal] | None = None,
    ) -> PipelineResult:
        day = resolve_evaluation_date(evaluation_date, settings=self.settings)
        with self._tracer.start_as_current_span("pnl_ledger.run_pipeline") as span:
            span.set_attribute("pnl_ledger.evaluation_date", day.isoformat())
            span.set_attribute("pnl_ledger.trade_count", len(trades))

            eligible = eligible_trades(trades, day, self.tz).trades
            run = run_fifo(eligible, initial_positions, day, tz=self.tz, epsilon=self.epsilon)
            resolver = PriceResolver(close_prices, live_prices, day)
            positions = positions_from_enriched(run.trades, initial_positions, day, resolver, epsilon=self.epsilon)
            bundle = metrics_from_run(
                run,
                eligible,
                positions,
                daily_results,
                initial_positions,
                day,
                aggregator=self.aggregator,
                tz=self.tz,
                epsilon=self.epsilon,
            )
            breakdown = breakdown_from_run(run)
            check_invariants(
                run.trades,
                bundle,
                initial_positions,
                breakdown=breakdown,
                options=self.invariant_options,
            )
            span.set_attribute("pnl_ledger.m6", str(bundle.today_total))

        return PipelineResult(
            evaluation_date=day,
            metrics=bundle,
            breakdown=breakdown,
            trades=run.trades,
            positions=positions,
            open_lots={symbol: book.open_lots() for symbol, book in run.books.items() if book.open_lots()},
        )

    def replay(
        self,
        start: date | str,
        end: date | str,
        trades: Sequence[RawTrade],
        initial_positions: Sequence[InitialPosition] = (),
        close_prices: ClosePriceMap | None = None,
        daily_results: Sequence[DailyResult] = (),
        *,
        live_prices: Mapping[str, Decimal] | None = None,
        cross_check: bool = True,
    ) -> ReplayResult:
        """Produce exactly one ledger row per day of ``start``..``end``.

        Rows already in ``daily_results`` before ``start`` seed the ledger;
        rows on or after ``start`` are replaced by the replay. Live prices
        only mark the final day. With ``cross_check`` each row is compared to
        the daily result generator's row for the same day.
        """

        days = replay_days(start, end)
        validate_daily_results(daily_results)
        ledger = sorted((row for row in daily_results if row.date < days[0]), key=lambda row: row.date)
        last: PipelineResult | None = None

        with self._tracer.start_as_current_span("pnl_ledger.replay") as span:
            span.set_attribute("pnl_ledger.replay_days", len(days))
            for day in days:
                quotes = live_prices if day == days[-1] else None
                last = self.run(
                    trades,
                    initial_positions,
                    close_prices,
                    ledger,
                    evaluation_date=day,
                    live_prices=quotes,
                )
                previous = ledger[-1].unrealized if ledger else ZERO
                row = last.daily_result(previous)
                if cross_check:
                    self._reconcile_with_generator(row, trades, initial_positions, close_prices, quotes)
                ledger.append(row)
                logger.debug("Replayed %s: realized=%s unrealized=%s", day, row.realized, row.unrealized)

        logger.info("Replayed %d day(s) from %s to %s", len(days), days[0], days[-1])
        return ReplayResult(daily_results=ledger, last=last)

    def _reconcile_with_generator(
        self,
        row: DailyResult,
        trades: Sequence[RawTrade],
        initial_positions: Sequence[InitialPosition],
        close_prices: ClosePriceMap | None,
        live_prices: Mapping[str, Decimal] | None,
    ) -> None:
        generated = generate_daily_results(
            trades,
            close_prices,
            row.date,
            initial_positions=initial_positions,
            live_prices=live_prices,
            tz=self.tz,
            epsilon=self.epsilon,
        )
        expected = generated[-1]
        if expected.realized != row.realized or expected.unrealized != row.unrealized:
            raise InvariantViolation(
                "daily_reconciliation",
                f"replay row realized={row.realized} unrealized={row.unrealized} disagrees with daily"
                f" fold realized={expected.realized} unrealized={expected.unrealized} on {row.date}",
            )


def run_pipeline(
    trades: Sequence[RawTrade],
    initial_positions: Sequence[InitialPosition] = (),
    close_prices: ClosePriceMap | None = None,
    daily_results: Sequence[DailyResult] = (),
    *,
    evaluation_date: date | str | None = None,
    live_prices: Mapping[str, Decimal] | None = None,
    settings: LedgerSettings | None = None,
    aggregator: PeriodAggregator | None = None,
) -> PipelineResult:
    """One-shot convenience wrapper around :meth:`LedgerEngine.run`."""

    engine = LedgerEngine(settings, aggregator)
    return engine.run(
        trades,
        initial_positions,
        close_prices,
        daily_results,
        evaluation_date=evaluation_date,
        live_prices=live_prices,
    )


def replay_range(
    start: date | str,
    end: date | str,
    trades: Sequence[RawTrade],
    initial_positions: Sequence[InitialPosition] = (),
    close_prices: ClosePriceMap | None = None,
    daily_results: Sequence[DailyResult] = (),
    *,
    live_prices: Mapping[str, Decimal] | None = None,
    settings: LedgerSettings | None = None,
) -> ReplayResult:
    engine = LedgerEngine(settings)
    return engine.replay(
        start,
        end,
        trades,
        initial_positions,
        close_prices,
        daily_results,
        live_prices=live_prices,
    )


__all__ = [
    "PipelineResult",
    "ReplayResult",
    "replay_days",
    "LedgerEngine",
    "run_pipeline",
    "replay_range",
]
