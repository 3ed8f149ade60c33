"""FIFO lot-matching engine.

Trades are replayed in chronological order against per-symbol long and short
queues. Closing quantity is matched oldest lot first; whatever a trade cannot
match opens a lot on its own side, so a sell that overshoots the long queue
flips the symbol short in a single step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo

from pnl_ledger.core.calendar import NEW_YORK, normalize_instant, sort_chronologically
from pnl_ledger.core.money import (
    ZERO,
    average_price,
    long_realized,
    money_mul,
    round_cost,
    short_realized,
)
from pnl_ledger.models import (
    EnrichedTrade,
    InitialPosition,
    Lot,
    LotMatch,
    LotSide,
    RawTrade,
)
from pnl_ledger.services.lots import DEFAULT_EPSILON, SymbolBook, consume_fifo, merge_initial_positions

logger = logging.getLogger(__name__)


@dataclass
class FifoRun:
    """Output of one engine pass: enriched trades, every match, and the books left open."""

    evaluation_date: date | None
    trades: list[EnrichedTrade] = field(default_factory=list)
    matches: list[LotMatch] = field(default_factory=list)
    books: dict[str, SymbolBook] = field(default_factory=dict)


def _seed_books(
    initial_positions: Iterable[InitialPosition],
    epsilon: Decimal,
) -> dict[str, SymbolBook]:
    books: dict[str, SymbolBook] = {}
    for position in merge_initial_positions(initial_positions):
        if abs(position.quantity) <= epsilon:
            continue
        book = books.setdefault(position.symbol, SymbolBook(position.symbol))
        lot = Lot(quantity=abs(position.quantity), price=position.average_price, is_today=False)
        if position.quantity > 0:
            book.long.append(lot)
        else:
            book.short.append(lot)
    return books


def _position_stats(book: SymbolBook) -> tuple[Decimal, Decimal, Decimal]:
    """Running (signed quantity, average cost, break-even price) for ``book``."""

    quantity = book.net_quantity
    if quantity == 0:
        return ZERO, ZERO, ZERO
    signed_cost = book.signed_cost()
    average_cost = average_price(abs(signed_cost), abs(quantity))
    break_even = round_cost((signed_cost - book.realized_total) / quantity)
    return quantity, average_cost, break_even


def _apply_trade(
    book: SymbolBook,
    trade: RawTrade,
    *,
    is_today: bool,
    epsilon: Decimal,
) -> list[LotMatch]:
    book.trade_count += 1
    sequence = book.trade_count
    if trade.side.increases_long:
        opposing, own, closing = book.short, book.long, LotSide.SHORT
    else:
        opposing, own, closing = book.long, book.short, LotSide.LONG

    matches: list[LotMatch] = []

    def on_match(lot: Lot, quantity: Decimal) -> None:
        if closing is LotSide.LONG:
            pnl = long_realized(trade.price, lot.price, quantity)
        else:
            pnl = short_realized(trade.price, lot.price, quantity)
        matches.append(
            LotMatch(
                symbol=book.symbol,
                lot_side=closing,
                quantity=quantity,
                open_price=lot.price,
                close_price=trade.price,
                pnl=pnl,
                lot_is_today=lot.is_today,
                close_is_today=is_today,
                sequence=sequence,
                timestamp=trade.timestamp,
            )
        )

    remainder = consume_fifo(opposing, trade.quantity, on_match, epsilon=epsilon)
    if remainder > 0:
        own.append(Lot(quantity=remainder, price=trade.price, is_today=is_today))
    return matches


def run_fifo(
    trades: Sequence[RawTrade],
    initial_positions: Iterable[InitialPosition] = (),
    evaluation_date: date | None = None,
    *,
    tz: ZoneInfo = NEW_YORK,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> FifoRun:
    """Replay ``trades`` over the seeded books and return the full engine state.

    Lots opened by trades dated ``evaluation_date`` are tagged as today's lots;
    seed lots never are.
    """

    run = FifoRun(evaluation_date=evaluation_date, books=_seed_books(initial_positions, epsilon))
    for trade in sort_chronologically(trades, lambda item: item.timestamp, tz):
        instant = normalize_instant(trade.timestamp, tz)
        day = instant.date() if instant is not None else None
        is_today = evaluation_date is not None and day == evaluation_date

        book = run.books.setdefault(trade.symbol, SymbolBook(trade.symbol))
        matches = _apply_trade(book, trade, is_today=is_today, epsilon=epsilon)
        realized = sum((match.pnl for match in matches), ZERO)
        book.realized_total += realized
        quantity, average_cost, break_even = _position_stats(book)

        run.matches.extend(matches)
        run.trades.append(
            EnrichedTrade(
                trade=trade,
                sequence=book.trade_count,
                instant=instant,
                day=day,
                realized_pnl=realized,
                quantity_after=quantity,
                average_cost=average_cost,
                break_even_price=break_even,
                amount=money_mul(trade.price, trade.quantity),
                matches=tuple(matches),
            )
        )
    logger.debug("FIFO pass over %d trades produced %d matches", len(run.trades), len(run.matches))
    return run


def compute_fifo(
    trades: Sequence[RawTrade],
    initial_positions: Iterable[InitialPosition] = (),
    evaluation_date: date | None = None,
    *,
    tz: ZoneInfo = NEW_YORK,
    epsilon: Decimal = DEFAULT_EPSILON,
) -> list[EnrichedTrade]:
    """Enriched trades in chronological order, one per input trade."""

    return run_fifo(trades, initial_positions, evaluation_date, tz=tz, epsilon=epsilon).trades


__all__ = ["FifoRun", "run_fifo", "compute_fifo"]
