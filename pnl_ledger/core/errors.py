"""Exception taxonomy for the ledger engine."""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class LedgerError(Exception):
    """Base class for every error raised by the ledger."""


class InputValidationError(LedgerError, ValueError):
    """Raised when boundary input cannot be turned into domain objects."""


class DailyResultMismatchError(LedgerError, ValueError):
    """Raised when a stored daily result does not add up to its own total."""

    def __init__(self, day: str, components: Decimal, stored_total: Decimal):
        self.day = day
        self.components = components
        self.stored_total = stored_total
        super().__init__(
            f"DailyResult mismatch on {day}: realized + unrealized = {components}, stored pnl = {stored_total}"
        )


class InvariantViolation(LedgerError, AssertionError):
    """A cross-check between two independent derivations failed.

    ``check`` names the failed invariant. The trade context is optional because
    some checks (M6) are aggregate rather than per trade.
    """

    def __init__(
        self,
        check: str,
        message: str,
        *,
        symbol: str | None = None,
        sequence: int | None = None,
        quantity: Decimal | None = None,
        timestamp: Any = None,
    ):
        self.check = check
        self.symbol = symbol
        self.sequence = sequence
        self.quantity = quantity
        self.timestamp = timestamp
        context = []
        if symbol is not None:
            context.append(f"symbol={symbol}")
        if sequence is not None:
            context.append(f"seq={sequence}")
        if quantity is not None:
            context.append(f"qty={quantity}")
        if timestamp is not None:
            context.append(f"time={timestamp}")
        suffix = f" ({', '.join(context)})" if context else ""
        super().__init__(f"[{check}] {message}{suffix}")


__all__ = [
    "LedgerError",
    "InputValidationError",
    "DailyResultMismatchError",
    "InvariantViolation",
]
