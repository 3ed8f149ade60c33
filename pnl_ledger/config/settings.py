"""Ledger configuration and environment helpers."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_TIMEZONE = "America/New_York"
DEFAULT_MARKET_OPEN = time(9, 30)


class LedgerSettings(BaseSettings):
    """Configuration options for the P&L ledger engine."""

    timezone: str = Field(
        default=DEFAULT_TIMEZONE,
        description="Timezone whose calendar days bucket every trade and daily result.",
    )
    market_open: time = Field(
        default=DEFAULT_MARKET_OPEN,
        description="Local time before which 'now' still belongs to the previous trading day.",
    )
    frozen_evaluation_date: date | None = Field(
        default=None,
        description="Evaluation date used when a caller does not pass one explicitly.",
    )

    quantity_epsilon: Decimal = Field(
        default=Decimal("0.000001"),
        description="Remaining lot quantity at or below this value counts as exhausted.",
    )

    period_cache_max_datasets: int = Field(default=32, ge=1)
    period_cache_evict_batch: int = Field(default=8, ge=1)

    enforce_no_over_close: bool = Field(
        default=True,
        description="Reject SELL trades that overshoot the long side and COVER trades that overshoot the short side.",
    )
    long_only: bool = Field(
        default=False,
        description="Reject any negative running quantity (books seeded without shorts).",
    )

    log_level: str = Field(default="INFO")

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="pnl-ledger")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    class Config:
        env_prefix = "PNL_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"telemetry_otlp_endpoint"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> LedgerSettings:
    """Return cached ledger settings with optional overrides."""

    if overrides:
        return LedgerSettings(**overrides)
    return LedgerSettings()


__all__ = [
    "LedgerSettings",
    "DEFAULT_TIMEZONE",
    "DEFAULT_MARKET_OPEN",
    "get_settings",
]
