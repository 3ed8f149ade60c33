"""FIFO lot-matching engine."""

from __future__ import annotations

import random
from collections import deque
from datetime import date
from decimal import Decimal

import pytest

from pnl_ledger.models import InitialPosition, Lot, LotSide, RawTrade, Side
from pnl_ledger.services.fifo import compute_fifo, run_fifo
from pnl_ledger.services.invariants import assert_lot_conservation
from pnl_ledger.services.lots import consume_fifo, merge_initial_positions


def _trade(symbol, side, qty, price, when):
    return RawTrade(symbol=symbol, side=Side(side), quantity=Decimal(str(qty)), price=Decimal(str(price)), timestamp=when)


def test_buy_then_two_sells_realize_per_trade():
    trades = [
        _trade("AAA", "BUY", 100, 10, "2024-01-01"),
        _trade("AAA", "SELL", 50, 15, "2024-01-02"),
        _trade("AAA", "SELL", 50, 8, "2024-01-03"),
    ]
    enriched = compute_fifo(trades)
    assert [t.realized_pnl for t in enriched] == [Decimal("0"), Decimal("250.00"), Decimal("-100.00")]
    assert [t.quantity_after for t in enriched] == [Decimal("100"), Decimal("50"), Decimal("0")]
    assert [t.sequence for t in enriched] == [1, 2, 3]
    assert enriched[1].average_cost == Decimal("10.0000")
    # (500 open cost - 250 realized) / 50 shares
    assert enriched[1].break_even_price == Decimal("5.0000")
    assert enriched[2].average_cost == Decimal("0")
    assert enriched[0].amount == Decimal("1000.00")


def test_partial_lots_are_consumed_oldest_first():
    trades = [
        _trade("X", "BUY", 80, 200, "2025-07-10"),
        _trade("X", "BUY", 40, 190, "2025-07-11"),
        _trade("X", "BUY", 30, 185, "2025-07-14"),
        _trade("X", "SELL", 100, 180, "2025-07-15T10:00:00-04:00"),
    ]
    run = run_fifo(trades, evaluation_date=date(2025, 7, 15))
    sell = run.trades[-1]
    assert [(m.quantity, m.open_price, m.pnl) for m in sell.matches] == [
        (Decimal("80"), Decimal("200"), Decimal("-1600.00")),
        (Decimal("20"), Decimal("190"), Decimal("-200.00")),
    ]
    assert sell.realized_pnl == Decimal("-1800.00")
    assert sell.quantity_after == Decimal("50")
    # 20 @ 190 + 30 @ 185
    assert sell.average_cost == Decimal("187.0000")
    remaining = run.books["X"].long
    assert [(lot.quantity, lot.price) for lot in remaining] == [
        (Decimal("20"), Decimal("190")),
        (Decimal("30"), Decimal("185")),
    ]


def test_sell_through_zero_flips_to_short():
    trades = [
        _trade("AAA", "BUY", 100, 10, "2024-01-01"),
        _trade("AAA", "SELL", 150, 12, "2024-01-02"),
        _trade("AAA", "COVER", 50, 11, "2024-01-03"),
    ]
    run = run_fifo(trades, evaluation_date=date(2024, 1, 2))
    flip = run.trades[1]
    assert flip.realized_pnl == Decimal("200.00")
    assert flip.quantity_after == Decimal("-50")
    assert flip.average_cost == Decimal("12.0000")
    # short 50 @ 12 carrying 200 of realized gains breaks even at 16
    assert flip.break_even_price == Decimal("16.0000")
    assert run.trades[2].realized_pnl == Decimal("50.00")
    assert run.trades[2].quantity_after == Decimal("0")
    cover_match = run.trades[2].matches[0]
    assert cover_match.lot_side is LotSide.SHORT
    assert cover_match.lot_is_today is True
    assert cover_match.action is Side.COVER


def test_buy_against_shorts_flips_to_long():
    trades = [
        _trade("BBB", "SHORT", 30, 50, "2024-01-01"),
        _trade("BBB", "BUY", 50, 45, "2024-01-02"),
    ]
    enriched = compute_fifo(trades)
    assert enriched[1].realized_pnl == Decimal("150.00")
    assert enriched[1].quantity_after == Decimal("20")
    assert enriched[1].average_cost == Decimal("45.0000")


def test_initial_positions_seed_one_lot_each():
    seeds = [
        InitialPosition("AAA", Decimal("-100"), Decimal("50")),
        InitialPosition("BBB", Decimal("0"), Decimal("10")),
    ]
    run = run_fifo([_trade("AAA", "BUY", 40, 45, "2024-01-02")], seeds, date(2024, 1, 2))
    assert "BBB" not in run.books
    trade = run.trades[0]
    assert trade.realized_pnl == Decimal("200.00")
    assert trade.quantity_after == Decimal("-60")
    assert trade.matches[0].lot_is_today is False
    assert trade.matches[0].close_is_today is True


def test_duplicate_seeds_merge_into_one_lot():
    seeds = [
        InitialPosition("AAA", Decimal("50"), Decimal("10")),
        InitialPosition("BBB", Decimal("-5"), Decimal("40")),
        InitialPosition("AAA", Decimal("50"), Decimal("12")),
    ]
    merged = merge_initial_positions(seeds)
    assert [(s.symbol, s.quantity, s.average_price) for s in merged] == [
        ("AAA", Decimal("100"), Decimal("11.0000")),
        ("BBB", Decimal("-5"), Decimal("40")),
    ]

    run = run_fifo([], seeds)
    assert [(lot.quantity, lot.price) for lot in run.books["AAA"].long] == [(Decimal("100"), Decimal("11.0000"))]


def test_opposite_seeds_net_to_one_side():
    seeds = [
        InitialPosition("AAA", Decimal("50"), Decimal("10")),
        InitialPosition("AAA", Decimal("-20"), Decimal("30")),
        InitialPosition("CCC", Decimal("5"), Decimal("1")),
        InitialPosition("CCC", Decimal("-5"), Decimal("2")),
    ]
    merged = {s.symbol: s for s in merge_initial_positions(seeds)}
    assert (merged["AAA"].quantity, merged["AAA"].average_price) == (Decimal("30"), Decimal("10.0000"))
    assert merged["CCC"].quantity == Decimal("0")
    assert "CCC" not in run_fifo([], seeds).books

def test_today_tag_follows_the_opening_trade_day():
    trades = [
        _trade("AAA", "BUY", 10, 10, "2024-01-01T15:00:00-05:00"),
        _trade("AAA", "BUY", 10, 11, "2024-01-02T09:45:00-05:00"),
    ]
    run = run_fifo(trades, evaluation_date=date(2024, 1, 2))
    assert [lot.is_today for lot in run.books["AAA"].long] == [False, True]


def test_invalid_dates_process_after_valid_ones():
    trades = [
        _trade("U", "BUY", 1, 1, None),
        _trade("E", "BUY", 1, 1, ""),
        _trade("M", "BUY", 1, 1, "bad-date"),
        _trade("V1", "BUY", 1, 1, "2024-01-01"),
        _trade("V2", "BUY", 1, 1, "2024-01-02"),
    ]
    enriched = compute_fifo(trades, evaluation_date=date(2024, 1, 2))
    assert [t.symbol for t in enriched] == ["V1", "V2", "U", "E", "M"]
    assert enriched[2].day is None
    assert enriched[2].weekday is None
    assert enriched[1].weekday == 2


def test_dust_below_epsilon_closes_the_lot():
    trades = [
        _trade("AAA", "BUY", 1, 10, "2024-01-01"),
        _trade("AAA", "SELL", "0.9999995", 12, "2024-01-02"),
    ]
    run = run_fifo(trades)
    assert not run.books["AAA"].long
    assert run.trades[-1].quantity_after == Decimal("0")


def test_consume_fifo_reports_remainder():
    queue = deque([Lot(Decimal("5"), Decimal("10")), Lot(Decimal("5"), Decimal("11"))])
    seen = []
    remainder = consume_fifo(queue, Decimal("7"), lambda lot, qty: seen.append((lot.price, qty)))
    assert seen == [(Decimal("10"), Decimal("5")), (Decimal("11"), Decimal("2"))]
    assert remainder == Decimal("0")
    assert [lot.quantity for lot in queue] == [Decimal("3")]

    assert consume_fifo(queue, Decimal("10"), lambda lot, qty: None) == Decimal("7")
    assert not queue


def _random_trades(seed: int, count: int = 60) -> list[RawTrade]:
    rng = random.Random(seed)
    trades = []
    for _ in range(count):
        day = rng.randint(1, 5)
        hour = rng.randint(9, 15)
        trades.append(
            _trade(
                rng.choice(["AAA", "BBB", "CCC"]),
                rng.choice(list(Side)).value,
                rng.randint(1, 50),
                Decimal(rng.randint(500, 1500)) / 100,
                f"2024-01-0{day}T{hour:02d}:{rng.randint(0, 59):02d}:00-05:00",
            )
        )
    return trades


@pytest.mark.parametrize("seed", range(12))
def test_running_quantity_matches_signed_replay(seed):
    seeds = [InitialPosition("AAA", Decimal("25"), Decimal("9.5")), InitialPosition("CCC", Decimal("-10"), Decimal("12"))]
    enriched = compute_fifo(_random_trades(seed), seeds, date(2024, 1, 5))
    assert_lot_conservation(enriched, seeds)


@pytest.mark.parametrize("seed", range(12))
def test_trade_realized_equals_sum_of_matches(seed):
    run = run_fifo(_random_trades(seed), evaluation_date=date(2024, 1, 3))
    assert sum(t.realized_pnl for t in run.trades) == sum(m.pnl for m in run.matches)
    for book in run.books.values():
        # only one direction can be open at a time
        assert not (book.long and book.short)
