"""Core computations: FIFO matching, metrics, daily ledger, periods, invariants."""

from .daily_results import generate_daily_results
from .fifo import FifoRun, compute_fifo, run_fifo
from .invariants import InvariantOptions, check_invariants
from .lots import SymbolBook, consume_fifo
from .metrics import calc_metrics, realized_breakdown
from .periods import PeriodAggregator, PeriodSumCache, SumMode, sum_period_naive
from .pipeline import LedgerEngine, PipelineResult, ReplayResult, replay_days, replay_range, run_pipeline
from .pricing import PriceResolver, positions_from_enriched

__all__ = [
    "FifoRun",
    "InvariantOptions",
    "LedgerEngine",
    "PeriodAggregator",
    "PeriodSumCache",
    "PipelineResult",
    "PriceResolver",
    "ReplayResult",
    "SumMode",
    "SymbolBook",
    "calc_metrics",
    "check_invariants",
    "compute_fifo",
    "consume_fifo",
    "generate_daily_results",
    "positions_from_enriched",
    "realized_breakdown",
    "replay_days",
    "replay_range",
    "run_fifo",
    "run_pipeline",
    "sum_period_naive",
]
