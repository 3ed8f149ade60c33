"""Trade-pairing view of today's intraday realized P&L.

Only trades dated on the evaluation day take part: BUY lots are closed by
SELL, SHORT lots by COVER, oldest first. Closing quantity with nothing left
to pair against is ignored, because it belongs to historical inventory.
"""

from __future__ import annotations

from collections import deque
from datetime import date
from decimal import Decimal
from typing import Sequence
from zoneinfo import ZoneInfo

from pnl_ledger.core.calendar import NEW_YORK, is_same_day, sort_chronologically
from pnl_ledger.core.money import ZERO, long_realized, short_realized
from pnl_ledger.models import Lot, RawTrade, Side
from pnl_ledger.services.lots import DEFAULT_EPSILON, consume_fifo


def intraday_pairing_pnl(
    trades: Sequence[RawTrade],
    evaluation_date: date,
    *,
    tz: ZoneInfo = NEW_YORK,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> Decimal:
    todays = [trade for trade in trades if is_same_day(trade.timestamp, evaluation_date, tz)]
    longs: dict[str, deque[Lot]] = {}
    shorts: dict[str, deque[Lot]] = {}
    total = ZERO

    for trade in sort_chronologically(todays, lambda item: item.timestamp, tz):
        long_stack = longs.setdefault(trade.symbol, deque())
        short_stack = shorts.setdefault(trade.symbol, deque())
        pnl: list[Decimal] = []

        if trade.side is Side.BUY:
            long_stack.append(Lot(quantity=trade.quantity, price=trade.price, is_today=True))
        elif trade.side is Side.SHORT:
            short_stack.append(Lot(quantity=trade.quantity, price=trade.price, is_today=True))
        elif trade.side is Side.SELL:
            consume_fifo(
                long_stack,
                trade.quantity,
                lambda lot, qty: pnl.append(long_realized(trade.price, lot.price, qty)),
                epsilon=epsilon,
            )
        else:
            consume_fifo(
                short_stack,
                trade.quantity,
                lambda lot, qty: pnl.append(short_realized(trade.price, lot.price, qty)),
                epsilon=epsilon,
            )
        total += sum(pnl, ZERO)
    return total


__all__ = ["intraday_pairing_pnl"]
