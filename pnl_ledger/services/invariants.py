"""Post-computation cross-checks.

Each check derives a quantity a second, independent way and compares it with
what the engine or calculator produced. Any disagreement raises
:class:`InvariantViolation`; nothing is corrected in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Sequence

from pnl_ledger.core.errors import InvariantViolation
from pnl_ledger.core.money import ZERO, round2
from pnl_ledger.models import Breakdown, EnrichedTrade, InitialPosition, MetricsBundle, Side
from pnl_ledger.services.lots import DEFAULT_EPSILON, merge_initial_positions

logger = logging.getLogger(__name__)


def assert_m6_equality(bundle: MetricsBundle) -> None:
    expected = round2(bundle.history_realized + bundle.intraday.fifo + bundle.floating_pnl)
    if bundle.today_total != expected:
        raise InvariantViolation(
            "m6",
            f"M6 {bundle.today_total} != M4 {bundle.history_realized} + M5.fifo {bundle.intraday.fifo}"
            f" + M3 {bundle.floating_pnl} ({expected}) on {bundle.evaluation_date}",
        )


def assert_no_over_close(trades: Iterable[EnrichedTrade], *, epsilon: Decimal = DEFAULT_EPSILON) -> None:
    """A SELL may not leave the symbol net short, nor a COVER leave it net long."""

    for trade in trades:
        if trade.side is Side.SELL and trade.quantity_after < -epsilon:
            over = "SELL drives long quantity negative"
        elif trade.side is Side.COVER and trade.quantity_after > epsilon:
            over = "COVER drives short quantity positive"
        else:
            continue
        raise InvariantViolation(
            "over_close",
            f"{over}: position after trade is {trade.quantity_after}",
            symbol=trade.symbol,
            sequence=trade.sequence,
            quantity=trade.quantity,
            timestamp=trade.timestamp,
        )


def _seed_quantities(initial_positions: Iterable[InitialPosition]) -> dict[str, Decimal]:
    running: dict[str, Decimal] = {}
    for position in merge_initial_positions(initial_positions):
        running[position.symbol] = position.quantity
    return running


def assert_lot_conservation(
    trades: Iterable[EnrichedTrade],
    initial_positions: Iterable[InitialPosition] = (),
    *,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> None:
    """Signed deltas replayed from the seeds must track the engine's running quantity."""

    running = _seed_quantities(initial_positions)
    for trade in trades:
        expected = running.get(trade.symbol, ZERO) + trade.trade.signed_quantity()
        running[trade.symbol] = expected
        if abs(expected - trade.quantity_after) > epsilon:
            raise InvariantViolation(
                "lot_conservation",
                f"replayed quantity {expected} != engine quantity {trade.quantity_after}",
                symbol=trade.symbol,
                sequence=trade.sequence,
                quantity=trade.quantity,
                timestamp=trade.timestamp,
            )


def assert_no_negative_lots(
    trades: Iterable[EnrichedTrade],
    initial_positions: Iterable[InitialPosition] = (),
    *,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> None:
    """Long-only books: no seed and no running quantity may go below zero."""

    for symbol, quantity in _seed_quantities(initial_positions).items():
        if quantity < -epsilon:
            raise InvariantViolation(
                "negative_lot", f"initial position is short ({quantity})", symbol=symbol, quantity=quantity
            )
    for trade in trades:
        if trade.quantity_after < -epsilon:
            raise InvariantViolation(
                "negative_lot",
                f"running quantity went negative ({trade.quantity_after})",
                symbol=trade.symbol,
                sequence=trade.sequence,
                quantity=trade.quantity,
                timestamp=trade.timestamp,
            )


def assert_realized_reconciles(trades: Sequence[EnrichedTrade], bundle: MetricsBundle) -> None:
    """Today's per-trade realized P&L must equal M4 + M5.fifo."""

    per_trade = round2(
        sum((trade.realized_pnl for trade in trades if trade.day == bundle.evaluation_date), ZERO)
    )
    per_bucket = round2(bundle.history_realized + bundle.intraday.fifo)
    if per_trade != per_bucket:
        raise InvariantViolation(
            "realized_reconciliation",
            f"trade view {per_trade} != M4 + M5.fifo {per_bucket} on {bundle.evaluation_date}",
        )


def assert_breakdown_matches(breakdown: Breakdown, bundle: MetricsBundle) -> None:
    if breakdown.sum_m4 != bundle.history_realized or breakdown.sum_m52 != bundle.intraday.fifo:
        raise InvariantViolation(
            "breakdown",
            f"breakdown sums M4={breakdown.sum_m4} M5.2={breakdown.sum_m52} disagree with"
            f" M4={bundle.history_realized} M5.fifo={bundle.intraday.fifo}",
        )


@dataclass(frozen=True)
class InvariantOptions:
    no_over_close: bool = True
    long_only: bool = False
    epsilon: Decimal = DEFAULT_EPSILON


def check_invariants(
    trades: Sequence[EnrichedTrade],
    bundle: MetricsBundle,
    initial_positions: Sequence[InitialPosition] = (),
    *,
    breakdown: Breakdown | None = None,
    options: InvariantOptions = InvariantOptions(),
) -> None:
    """Run every enabled check; the first failure propagates."""

    assert_m6_equality(bundle)
    assert_lot_conservation(trades, initial_positions, epsilon=options.epsilon)
    if options.no_over_close:
        assert_no_over_close(trades, epsilon=options.epsilon)
    if options.long_only:
        assert_no_negative_lots(trades, initial_positions, epsilon=options.epsilon)
    assert_realized_reconciles(trades, bundle)
    if breakdown is not None:
        assert_breakdown_matches(breakdown, bundle)
    logger.debug("Invariants hold for %s over %d trades", bundle.evaluation_date, len(trades))


__all__ = [
    "assert_m6_equality",
    "assert_no_over_close",
    "assert_lot_conservation",
    "assert_no_negative_lots",
    "assert_realized_reconciles",
    "assert_breakdown_matches",
    "InvariantOptions",
    "check_invariants",
]
