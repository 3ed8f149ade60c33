"""Daily result generator and price fallback chain."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pnl_ledger.models import InitialPosition, Position, RawTrade, Side
from pnl_ledger.services.daily_results import generate_daily_results
from pnl_ledger.services.fifo import compute_fifo
from pnl_ledger.services.pricing import PriceOrigin, PriceResolver, positions_from_enriched


def _trade(symbol, side, qty, price, when):
    return RawTrade(symbol=symbol, side=Side(side), quantity=Decimal(str(qty)), price=Decimal(str(price)), timestamp=when)


def build_prices():
    return {
        "AAA": {
            date(2024, 1, 2): Decimal("101"),
            date(2024, 1, 3): Decimal("103"),
            date(2024, 1, 4): Decimal("110"),
        }
    }


def build_trades():
    return [
        _trade("AAA", "BUY", 10, 100, "2024-01-02T10:00:00-05:00"),
        _trade("AAA", "SELL", 5, 110, "2024-01-04T14:00:00-05:00"),
    ]


def test_one_row_per_day_with_live_price_on_evaluation_date():
    rows = generate_daily_results(build_trades(), build_prices(), "2024-01-05", live_prices={"AAA": Decimal("112")})
    summary = [(r.date.isoformat(), r.realized, r.unrealized, r.unrealized_delta) for r in rows]
    assert summary == [
        ("2024-01-02", Decimal("0.00"), Decimal("10.00"), Decimal("10.00")),
        ("2024-01-03", Decimal("0.00"), Decimal("30.00"), Decimal("20.00")),
        ("2024-01-04", Decimal("50.00"), Decimal("50.00"), Decimal("20.00")),
        ("2024-01-05", Decimal("0.00"), Decimal("60.00"), Decimal("10.00")),
    ]


def test_evaluation_date_falls_back_to_previous_close():
    rows = generate_daily_results(build_trades(), build_prices(), "2024-01-05")
    assert rows[-1].unrealized == Decimal("50.00")
    assert rows[-1].unrealized_delta == Decimal("0.00")


def test_trusted_position_prices_act_as_live_quotes():
    positions = [Position("AAA", Decimal("5"), Decimal("100"), Decimal("108"), True)]
    rows = generate_daily_results(build_trades(), build_prices(), "2024-01-05", positions=positions)
    assert rows[-1].unrealized == Decimal("40.00")

    untrusted = [Position("AAA", Decimal("5"), Decimal("100"), Decimal("108"), False)]
    rows = generate_daily_results(build_trades(), build_prices(), "2024-01-05", positions=untrusted)
    assert rows[-1].unrealized == Decimal("50.00")


def test_days_with_nothing_open_are_skipped_except_the_evaluation_date():
    trades = [
        _trade("AAA", "BUY", 1, 10, "2024-01-01"),
        _trade("AAA", "SELL", 1, 11, "2024-01-02"),
    ]
    rows = generate_daily_results(trades, {}, "2024-01-05")
    assert [r.date for r in rows] == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 5)]
    # no close price at all: marked at average cost
    assert rows[0].unrealized == Decimal("0.00")
    assert rows[1].realized == Decimal("1.00")
    assert (rows[2].realized, rows[2].unrealized) == (Decimal("0.00"), Decimal("0.00"))


def test_initial_positions_are_marked_without_trades():
    seeds = [InitialPosition("AAA", Decimal("1"), Decimal("10"))]
    rows = generate_daily_results([], {"AAA": {date(2024, 1, 1): Decimal("11")}}, "2024-01-01", initial_positions=seeds)
    assert [r.to_record() for r in rows] == [
        {"date": "2024-01-01", "realized": Decimal("0.00"), "unrealized": Decimal("1.00"), "unrealizedDelta": Decimal("1.00")}
    ]


def test_shorts_gain_when_price_falls():
    trades = [_trade("BBB", "SHORT", 10, 50, "2024-01-02T10:00:00-05:00")]
    rows = generate_daily_results(trades, {"BBB": {date(2024, 1, 2): Decimal("45")}}, "2024-01-02")
    assert rows[-1].unrealized == Decimal("50.00")


def test_undated_and_future_trades_are_left_out():
    trades = build_trades() + [
        _trade("AAA", "SELL", 5, 200, None),
        _trade("AAA", "SELL", 5, 200, "2024-02-01"),
    ]
    rows = generate_daily_results(trades, build_prices(), "2024-01-04")
    assert sum(r.realized for r in rows) == Decimal("50.00")
    assert rows[-1].date == date(2024, 1, 4)


def test_empty_history_still_anchors_the_evaluation_date():
    rows = generate_daily_results([], None, date(2024, 6, 3))
    assert [(r.date, r.realized, r.unrealized) for r in rows] == [(date(2024, 6, 3), Decimal("0.00"), Decimal("0.00"))]


def test_price_resolver_order():
    resolver = PriceResolver(
        {"AAA": {date(2024, 1, 2): Decimal("10"), date(2024, 1, 4): Decimal("12")}},
        {"AAA": Decimal("13")},
        evaluation_date=date(2024, 1, 5),
    )
    assert resolver.resolve("AAA", date(2024, 1, 4)).origin is PriceOrigin.CLOSE
    assert resolver.resolve("AAA", date(2024, 1, 5)).price == Decimal("13")
    previous = resolver.resolve("AAA", date(2024, 1, 3))
    assert (previous.price, previous.origin, previous.trusted) == (Decimal("10"), PriceOrigin.PREVIOUS_CLOSE, False)
    fallback = resolver.resolve("AAA", date(2024, 1, 1), Decimal("9.5"))
    assert (fallback.price, fallback.origin) == (Decimal("9.5"), PriceOrigin.AVERAGE_COST)
    assert resolver.resolve("ZZZ", date(2024, 1, 1)) is None


def test_positions_follow_the_last_trade_or_the_seed():
    seeds = [InitialPosition("CCC", Decimal("-4"), Decimal("20")), InitialPosition("AAA", Decimal("3"), Decimal("90"))]
    enriched = compute_fifo(build_trades())
    resolver = PriceResolver(build_prices(), evaluation_date=date(2024, 1, 4))
    positions = positions_from_enriched(enriched, seeds, date(2024, 1, 4), resolver)

    assert [(p.symbol, p.quantity, p.last_price, p.price_ok) for p in positions] == [
        ("AAA", Decimal("5"), Decimal("110"), True),
        ("CCC", Decimal("-4"), Decimal("20"), False),
    ]
    assert positions[1].floating_pnl == Decimal("0.00")


def test_duplicate_seeds_are_marked_together():
    seeds = [InitialPosition("AAA", Decimal("50"), Decimal("10")), InitialPosition("AAA", Decimal("50"), Decimal("12"))]
    trades = [_trade("AAA", "SELL", 30, 13, "2024-01-02")]
    rows = generate_daily_results(trades, {"AAA": {date(2024, 1, 2): Decimal("12")}}, "2024-01-02", initial_positions=seeds)
    # 30 sold at 13 against the merged 11.00 lot, 70 left marked at 12
    assert (rows[-1].realized, rows[-1].unrealized) == (Decimal("60.00"), Decimal("70.00"))
