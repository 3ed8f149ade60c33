"""Boundary schemas for engine inputs and outputs."""

from .inputs import (
    DailyResultRecord,
    InitialPositionRecord,
    TradeRecord,
    close_prices_from_rows,
    extract_initial_positions,
    merge_close_prices,
    normalize_close_prices,
    parse_daily_results,
    parse_initial_positions,
    parse_trades,
)
from .outputs import MetricsReport

__all__ = [
    "DailyResultRecord",
    "InitialPositionRecord",
    "TradeRecord",
    "MetricsReport",
    "close_prices_from_rows",
    "extract_initial_positions",
    "merge_close_prices",
    "normalize_close_prices",
    "parse_daily_results",
    "parse_initial_positions",
    "parse_trades",
]
