"""Configuration package exposing ledger settings."""

from .settings import DEFAULT_MARKET_OPEN, DEFAULT_TIMEZONE, LedgerSettings, get_settings

__all__ = ["DEFAULT_MARKET_OPEN", "DEFAULT_TIMEZONE", "LedgerSettings", "get_settings"]
