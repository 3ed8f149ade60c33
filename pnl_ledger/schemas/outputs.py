"""Pydantic schemas for serialising engine results."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from pnl_ledger.models import Breakdown, MetricsBundle


class TradeCountsSchema(BaseModel):
    B: int
    S: int
    P: int
    C: int
    total: int


class IntradaySchema(BaseModel):
    trade: Decimal = Field(..., description="Pairing view over today's trades only")
    fifo: Decimal = Field(..., description="Today's lots closed today in the FIFO pass")


class WinLossSchema(BaseModel):
    W: int
    L: int
    flat: int
    rate: Decimal


class BreakdownRowSchema(BaseModel):
    symbol: str = Field(..., examples=["NFLX"])
    time: Any = None
    action: str = Field(..., examples=["SELL"])
    into: str = Field(..., examples=["M4"])
    qty: Decimal
    open_price: Decimal = Field(..., alias="openPrice")
    close_price: Decimal = Field(..., alias="closePrice")
    pnl: Decimal

    class Config:
        populate_by_name = True


class MetricsReport(BaseModel):
    evaluation_date: date = Field(..., alias="evaluationDate")
    M1: Decimal
    M2: Decimal
    M3: Decimal
    M4: Decimal
    M5: IntradaySchema
    M6: Decimal
    M7: TradeCountsSchema
    M8: TradeCountsSchema
    M9: Decimal
    M10: WinLossSchema
    M11: Decimal
    M12: Decimal
    M13: Decimal
    breakdown: list[BreakdownRowSchema] | None = None

    class Config:
        populate_by_name = True

    @classmethod
    def from_bundle(cls, bundle: MetricsBundle, breakdown: Breakdown | None = None) -> "MetricsReport":
        payload = bundle.as_dict()
        if breakdown is not None:
            payload["breakdown"] = [
                BreakdownRowSchema(
                    symbol=row.symbol,
                    time=row.time,
                    action=row.action.value,
                    into=row.into.value,
                    qty=row.quantity,
                    open_price=row.open_price,
                    close_price=row.close_price,
                    pnl=row.pnl,
                )
                for row in breakdown.rows
            ]
        return cls.model_validate(payload)


__all__ = [
    "TradeCountsSchema",
    "IntradaySchema",
    "WinLossSchema",
    "BreakdownRowSchema",
    "MetricsReport",
]
