"""FIFO realized/unrealized P&L ledger with cross-checked daily and period metrics."""

from .core.errors import DailyResultMismatchError, InputValidationError, InvariantViolation, LedgerError
from .models import (
    DailyResult,
    EnrichedTrade,
    InitialPosition,
    MetricsBundle,
    Position,
    RawTrade,
    Side,
)
from .services import (
    LedgerEngine,
    PeriodAggregator,
    PeriodSumCache,
    calc_metrics,
    compute_fifo,
    generate_daily_results,
    replay_range,
    run_pipeline,
)

__all__ = [
    "DailyResult",
    "DailyResultMismatchError",
    "EnrichedTrade",
    "InitialPosition",
    "InputValidationError",
    "InvariantViolation",
    "LedgerEngine",
    "LedgerError",
    "MetricsBundle",
    "PeriodAggregator",
    "PeriodSumCache",
    "Position",
    "RawTrade",
    "Side",
    "calc_metrics",
    "compute_fifo",
    "generate_daily_results",
    "replay_range",
    "run_pipeline",
]
