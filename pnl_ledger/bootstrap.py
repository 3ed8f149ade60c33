"""Process-level setup for hosts that embed the ledger engine."""

from __future__ import annotations

import logging

from pnl_ledger.config import LedgerSettings, get_settings
from pnl_ledger.core.logging import setup_logging
from pnl_ledger.core.telemetry import setup_telemetry

logger = logging.getLogger(__name__)


def configure(settings: LedgerSettings | None = None) -> LedgerSettings:
    """Configure logging and tracing once at startup and return the active settings."""

    settings = settings or get_settings()
    setup_logging(settings.log_level.upper())
    setup_telemetry(settings)
    logger.info("Ledger settings: %s", settings.dict_for_logging())
    return settings


__all__ = ["configure"]
