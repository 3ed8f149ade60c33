"""Domain models used by the P&L ledger engine."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pnl_ledger.core.errors import InputValidationError
from pnl_ledger.core.money import ZERO, floating_pnl


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    SHORT = "SHORT"
    COVER = "COVER"

    @classmethod
    def parse(cls, value: Any) -> "Side":
        """Return the side named by ``value`` (case-insensitive) or raise."""

        if isinstance(value, Side):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise InputValidationError(f"Unknown trade side: {value!r}")

    @property
    def increases_long(self) -> bool:
        """BUY and COVER add to the long direction; SELL and SHORT subtract."""

        return self in (Side.BUY, Side.COVER)

    def signed(self, quantity: Decimal) -> Decimal:
        return quantity if self.increases_long else -quantity


class LotSide(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class Bucket(str, Enum):
    """Where a closing match lands in today's realized split."""

    HISTORY = "M4"
    INTRADAY = "M5.2"


@dataclass(frozen=True)
class RawTrade:
    """An immutable fill as recorded by the trade log."""

    symbol: str
    side: Side
    quantity: Decimal
    price: Decimal
    timestamp: Any = None

    def signed_quantity(self) -> Decimal:
        return self.side.signed(self.quantity)


@dataclass(frozen=True)
class InitialPosition:
    """Book state before the trade log starts: signed quantity at an average price."""

    symbol: str
    quantity: Decimal
    average_price: Decimal


@dataclass
class Lot:
    """An open quantity at one price, owned by a single FIFO queue."""

    quantity: Decimal
    price: Decimal
    is_today: bool = False


@dataclass(frozen=True)
class LotMatch:
    """One closing event: part of a trade matched against part of a lot."""

    symbol: str
    lot_side: LotSide
    quantity: Decimal
    open_price: Decimal
    close_price: Decimal
    pnl: Decimal
    lot_is_today: bool
    close_is_today: bool
    sequence: int
    timestamp: Any = None

    @property
    def action(self) -> Side:
        return Side.SELL if self.lot_side is LotSide.LONG else Side.COVER

    @property
    def bucket(self) -> Optional[Bucket]:
        if not self.close_is_today:
            return None
        return Bucket.INTRADAY if self.lot_is_today else Bucket.HISTORY


@dataclass(frozen=True)
class EnrichedTrade:
    """A trade plus the state the FIFO engine left behind after applying it."""

    trade: RawTrade
    sequence: int
    instant: Optional[datetime]
    day: Optional[date]
    realized_pnl: Decimal
    quantity_after: Decimal
    average_cost: Decimal
    break_even_price: Decimal
    amount: Decimal
    matches: tuple[LotMatch, ...] = ()

    @property
    def symbol(self) -> str:
        return self.trade.symbol

    @property
    def side(self) -> Side:
        return self.trade.side

    @property
    def quantity(self) -> Decimal:
        return self.trade.quantity

    @property
    def price(self) -> Decimal:
        return self.trade.price

    @property
    def timestamp(self) -> Any:
        return self.trade.timestamp

    @property
    def weekday(self) -> Optional[int]:
        """ISO weekday of the trade's calendar day (Monday is 1)."""

        return self.day.isoweekday() if self.day is not None else None


@dataclass(frozen=True)
class Position:
    """Derived open position with the price used to mark it."""

    symbol: str
    quantity: Decimal
    average_cost: Decimal
    last_price: Optional[Decimal] = None
    price_ok: bool = False

    @property
    def cost_basis(self) -> Decimal:
        return abs(self.average_cost * self.quantity)

    @property
    def market_value(self) -> Optional[Decimal]:
        if self.last_price is None:
            return None
        return abs(self.last_price * self.quantity)

    @property
    def floating_pnl(self) -> Optional[Decimal]:
        if self.last_price is None:
            return None
        return floating_pnl(self.last_price, self.average_cost, self.quantity)


@dataclass(frozen=True)
class DailyResult:
    """One calendar day of the ledger.

    ``stored_total`` is the legacy ``pnl`` field some imported ledgers still
    carry. It is only checked against the components, never used as a source
    of truth.
    """

    date: date
    realized: Decimal
    unrealized: Decimal
    unrealized_delta: Optional[Decimal] = None
    stored_total: Optional[Decimal] = field(default=None, compare=False)

    @property
    def total(self) -> Decimal:
        return self.realized + self.unrealized

    def to_record(self) -> dict[str, Any]:
        """Persisted form: exactly ``date``, ``realized``, ``unrealized`` and the optional delta."""

        record: dict[str, Any] = {
            "date": self.date.isoformat(),
            "realized": self.realized,
            "unrealized": self.unrealized,
        }
        if self.unrealized_delta is not None:
            record["unrealizedDelta"] = self.unrealized_delta
        return record


@dataclass(frozen=True)
class TradeCounts:
    buy: int = 0
    sell: int = 0
    short: int = 0
    cover: int = 0

    @property
    def total(self) -> int:
        return self.buy + self.sell + self.short + self.cover

    def as_dict(self) -> dict[str, int]:
        return {"B": self.buy, "S": self.sell, "P": self.short, "C": self.cover, "total": self.total}


@dataclass(frozen=True)
class IntradayRealized:
    """Today's realized P&L on today's own lots, computed two ways."""

    behavior: Decimal = ZERO
    fifo: Decimal = ZERO

    @property
    def diverged(self) -> bool:
        return self.behavior != self.fifo


@dataclass(frozen=True)
class WinLoss:
    win: int = 0
    loss: int = 0
    flat: int = 0
    rate: Decimal = ZERO


@dataclass(frozen=True)
class PeriodSums:
    wtd: Decimal = ZERO
    mtd: Decimal = ZERO
    ytd: Decimal = ZERO


@dataclass(frozen=True)
class BreakdownRow:
    """Audit row for a closing match that landed in today's realized split."""

    symbol: str
    time: Any
    action: Side
    into: Bucket
    quantity: Decimal
    open_price: Decimal
    close_price: Decimal
    pnl: Decimal


@dataclass(frozen=True)
class Breakdown:
    rows: tuple[BreakdownRow, ...] = ()
    sum_m4: Decimal = ZERO
    sum_m52: Decimal = ZERO


@dataclass(frozen=True)
class MetricsBundle:
    """The named metric set M1 through M13 as of one evaluation date."""

    evaluation_date: date
    cost_basis: Decimal
    market_value: Decimal
    floating_pnl: Decimal
    history_realized: Decimal
    intraday: IntradayRealized
    today_total: Decimal
    today_counts: TradeCounts
    cumulative_counts: TradeCounts
    history_realized_total: Decimal
    win_loss: WinLoss
    periods: PeriodSums

    def as_dict(self) -> dict[str, Any]:
        """Metric-code keyed view (``M1`` ... ``M13``)."""

        return {
            "evaluationDate": self.evaluation_date.isoformat(),
            "M1": self.cost_basis,
            "M2": self.market_value,
            "M3": self.floating_pnl,
            "M4": self.history_realized,
            "M5": {"trade": self.intraday.behavior, "fifo": self.intraday.fifo},
            "M6": self.today_total,
            "M7": self.today_counts.as_dict(),
            "M8": self.cumulative_counts.as_dict(),
            "M9": self.history_realized_total,
            "M10": {
                "W": self.win_loss.win,
                "L": self.win_loss.loss,
                "flat": self.win_loss.flat,
                "rate": self.win_loss.rate,
            },
            "M11": self.periods.wtd,
            "M12": self.periods.mtd,
            "M13": self.periods.ytd,
        }


__all__ = [
    "Side",
    "LotSide",
    "Bucket",
    "RawTrade",
    "InitialPosition",
    "Lot",
    "LotMatch",
    "EnrichedTrade",
    "Position",
    "DailyResult",
    "TradeCounts",
    "IntradayRealized",
    "WinLoss",
    "PeriodSums",
    "BreakdownRow",
    "Breakdown",
    "MetricsBundle",
]
