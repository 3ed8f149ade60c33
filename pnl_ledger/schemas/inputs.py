"""Pydantic schemas for the JSON-shaped engine inputs.

These models are the only place raw caller data is trusted: sides are parsed
into the closed :class:`Side` enum, numbers into ``Decimal``, and each record
is converted into an immutable domain object.
"""

from __future__ import annotations

import logging
import datetime as dt
from decimal import Decimal
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from pnl_ledger.core.calendar import is_day_key, normalize_instant, parse_day
from pnl_ledger.core.errors import InputValidationError
from pnl_ledger.core.money import average_price, to_decimal
from pnl_ledger.models import DailyResult, InitialPosition, RawTrade, Side

logger = logging.getLogger(__name__)


def _exact_decimal(value: Any) -> Any:
    # floats go through str so 0.1 stays 0.1
    if value is None or isinstance(value, Decimal):
        return value
    return to_decimal(value)


class TradeRecord(BaseModel):
    date: Any = Field(default=None, description="ISO datetime or YYYY-MM-DD", examples=["2025-08-01T09:40:00-04:00"])
    symbol: str = Field(..., min_length=1, examples=["NFLX"])
    side: Side = Field(..., examples=["SELL"])
    qty: Decimal = Field(..., description="Trade size; the sign is ignored")
    price: Decimal = Field(..., gt=0)
    is_initial_position: bool = Field(default=False, alias="isInitialPosition")

    class Config:
        populate_by_name = True
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def _time_or_date(cls, data: Any) -> Any:
        # ``time`` wins over ``date`` when both are sent
        if isinstance(data, Mapping) and data.get("time") is not None:
            data = {**data, "date": data["time"]}
        return data

    @field_validator("side", mode="before")
    @classmethod
    def _parse_side(cls, value: Any) -> Side:
        try:
            return Side.parse(value)
        except InputValidationError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("qty", "price", mode="before")
    @classmethod
    def _decimal_fields(cls, value: Any) -> Any:
        return _exact_decimal(value)

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        symbol = value.strip().upper()
        if not symbol:
            raise ValueError("symbol must not be blank")
        return symbol

    @field_validator("qty")
    @classmethod
    def _positive_quantity(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value == 0:
            raise ValueError("qty must be a non-zero finite number")
        return abs(value)

    def to_trade(self) -> RawTrade:
        return RawTrade(symbol=self.symbol, side=self.side, quantity=self.qty, price=self.price, timestamp=self.date)


class InitialPositionRecord(BaseModel):
    symbol: str = Field(..., min_length=1, examples=["NFLX"])
    qty: Decimal = Field(..., description="Positive for long, negative for short", examples=[100])
    avg_price: Decimal = Field(..., alias="avgPrice", ge=0, examples=[1100])

    class Config:
        populate_by_name = True
        extra = "ignore"

    @field_validator("symbol")
    @classmethod
    def _normalize_symbol(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("qty", "avg_price", mode="before")
    @classmethod
    def _decimal_fields(cls, value: Any) -> Any:
        return _exact_decimal(value)

    def to_position(self) -> InitialPosition:
        return InitialPosition(symbol=self.symbol, quantity=self.qty, average_price=self.avg_price)


class DailyResultRecord(BaseModel):
    """A stored ledger row. ``pnl``, ``float``, ``fifo`` and ``M5_1`` are legacy keys."""

    date: dt.date
    realized: Decimal
    unrealized: Decimal | None = None
    unrealized_delta: Decimal | None = Field(default=None, alias="unrealizedDelta")
    pnl: Decimal | None = None
    float_: Decimal | None = Field(default=None, alias="float")
    fifo: Decimal | None = None
    m5_1: Decimal | None = Field(default=None, alias="M5_1")

    class Config:
        populate_by_name = True
        extra = "forbid"

    @model_validator(mode="after")
    def _require_unrealized(self) -> "DailyResultRecord":
        if self.unrealized is None and self.float_ is None:
            raise ValueError("unrealized is required")
        return self

    @field_validator("date", mode="before")
    @classmethod
    def _strict_day(cls, value: Any) -> dt.date:
        try:
            return parse_day(value)
        except InputValidationError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("realized", "unrealized", "unrealized_delta", "pnl", "float_", "fifo", "m5_1", mode="before")
    @classmethod
    def _decimal_fields(cls, value: Any) -> Any:
        return _exact_decimal(value)

    def to_result(self) -> DailyResult:
        return DailyResult(
            date=self.date,
            realized=self.realized,
            unrealized=self.unrealized if self.unrealized is not None else self.float_,
            unrealized_delta=self.unrealized_delta,
            stored_total=self.pnl,
        )


def _validate(model: type[BaseModel], record: Any, index: int, kind: str) -> BaseModel:
    if isinstance(record, model):
        return record
    try:
        return model.model_validate(record)
    except ValidationError as exc:
        raise InputValidationError(f"Invalid {kind} at index {index}: {exc}") from exc


def parse_trade_records(records: Iterable[Mapping[str, Any] | TradeRecord]) -> list[TradeRecord]:
    parsed: list[TradeRecord] = []
    for index, record in enumerate(records):
        trade = _validate(TradeRecord, record, index, "trade")
        if normalize_instant(trade.date) is None:
            logger.warning(
                "Trade %d (%s %s) has a missing or malformed date %r; it will sort last",
                index,
                trade.side.value,
                trade.symbol,
                trade.date,
            )
        parsed.append(trade)
    return parsed


def parse_trades(records: Iterable[Mapping[str, Any] | TradeRecord]) -> list[RawTrade]:
    """Validate trade records and convert them to domain trades, keeping input order."""

    return [record.to_trade() for record in parse_trade_records(records)]


def parse_initial_positions(records: Iterable[Mapping[str, Any] | InitialPositionRecord]) -> list[InitialPosition]:
    return [
        _validate(InitialPositionRecord, record, index, "initial position").to_position()
        for index, record in enumerate(records)
    ]


def parse_daily_results(records: Iterable[Mapping[str, Any] | DailyResultRecord]) -> list[DailyResult]:
    return [
        _validate(DailyResultRecord, record, index, "daily result").to_result()
        for index, record in enumerate(records)
    ]


def extract_initial_positions(
    records: Iterable[Mapping[str, Any] | TradeRecord],
) -> tuple[list[InitialPosition], list[RawTrade]]:
    """Split records flagged ``isInitialPosition`` into seed positions.

    Flagged records of a symbol fold into one signed position at the weighted
    average price; everything else stays in the trade log, in input order.
    """

    quantities: dict[str, Decimal] = {}
    costs: dict[str, Decimal] = {}
    sizes: dict[str, Decimal] = {}
    trades: list[RawTrade] = []
    for record in parse_trade_records(records):
        if not record.is_initial_position:
            trades.append(record.to_trade())
            continue
        symbol = record.symbol
        quantities[symbol] = quantities.get(symbol, Decimal("0")) + record.side.signed(record.qty)
        costs[symbol] = costs.get(symbol, Decimal("0")) + record.price * record.qty
        sizes[symbol] = sizes.get(symbol, Decimal("0")) + record.qty

    seeds = [
        InitialPosition(symbol=symbol, quantity=quantity, average_price=average_price(costs[symbol], sizes[symbol]))
        for symbol, quantity in quantities.items()
        if quantity != 0
    ]
    return seeds, trades


def normalize_close_prices(raw: Mapping[str, Mapping[Any, Any]] | None) -> dict[str, dict[dt.date, Decimal]]:
    """Clean a ``{symbol: {YYYY-MM-DD: price}}`` map.

    Keys that are not calendar days and prices that are not positive finite
    numbers are dropped.
    """

    prices: dict[str, dict[dt.date, Decimal]] = {}
    for symbol, series in (raw or {}).items():
        key = str(symbol).strip().upper()
        if not key or not isinstance(series, Mapping):
            continue
        cleaned: dict[dt.date, Decimal] = {}
        for day, value in series.items():
            if isinstance(day, dt.date):
                day_value = day
            elif is_day_key(day):
                day_value = dt.date.fromisoformat(day)
            else:
                logger.debug("Dropping close price for %s under bad key %r", key, day)
                continue
            try:
                price = to_decimal(value)
            except ValueError:
                logger.debug("Dropping non-numeric close price for %s on %s", key, day)
                continue
            if price > 0:
                cleaned[day_value] = price
        if cleaned:
            prices.setdefault(key, {}).update(cleaned)
    return prices


def close_prices_from_rows(rows: Iterable[Mapping[str, Any]]) -> dict[str, dict[dt.date, Decimal]]:
    """Build a close-price map from ``{symbol, date, close}`` rows; later rows win."""

    raw: dict[str, dict[Any, Any]] = {}
    for row in rows:
        symbol = row.get("symbol")
        if not symbol:
            continue
        raw.setdefault(symbol, {})[row.get("date")] = row.get("close")
    return normalize_close_prices(raw)


def merge_close_prices(*maps: Mapping[str, Mapping[Any, Any]] | None) -> dict[str, dict[dt.date, Decimal]]:
    """Merge several maps; for the same symbol and day the later map wins."""

    merged: dict[str, dict[dt.date, Decimal]] = {}
    for price_map in maps:
        for symbol, series in normalize_close_prices(price_map).items():
            merged.setdefault(symbol, {}).update(series)
    return merged


__all__ = [
    "TradeRecord",
    "InitialPositionRecord",
    "DailyResultRecord",
    "parse_trade_records",
    "parse_trades",
    "parse_initial_positions",
    "parse_daily_results",
    "extract_initial_positions",
    "normalize_close_prices",
    "close_prices_from_rows",
    "merge_close_prices",
]
