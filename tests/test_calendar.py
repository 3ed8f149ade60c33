"""New York calendar bucketing and chronological ordering."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from pnl_ledger.config import LedgerSettings
from pnl_ledger.core.calendar import (
    NEW_YORK,
    calendar_day,
    is_same_day,
    iter_days,
    latest_trading_day,
    month_start,
    normalize_instant,
    parse_day,
    resolve_evaluation_date,
    sort_chronologically,
    week_start,
    year_start,
)
from pnl_ledger.core.errors import InputValidationError


def test_utc_midnight_belongs_to_the_new_york_day():
    assert calendar_day("2024-01-03T00:30:00Z") == date(2024, 1, 2)
    assert calendar_day("2024-01-02T01:00:00+00:00") == date(2024, 1, 1)
    assert is_same_day("2024-01-03T04:59:59Z", date(2024, 1, 2))
    assert is_same_day("2024-01-03T05:00:00Z", date(2024, 1, 3))


def test_date_only_and_naive_values_are_new_york_wall_time():
    assert calendar_day("2024-01-02") == date(2024, 1, 2)
    naive = normalize_instant("2025-08-01T09:40:00")
    assert naive.tzinfo == NEW_YORK
    assert (naive.hour, naive.minute) == (9, 40)
    assert calendar_day(date(2024, 5, 6)) == date(2024, 5, 6)
    assert calendar_day(datetime(2024, 5, 6, 23, 0, tzinfo=timezone.utc)) == date(2024, 5, 6)


@pytest.mark.parametrize("value", [None, "", "   ", "bad-date", "2024-13-45", object(), True])
def test_malformed_values_normalise_to_none(value):
    assert normalize_instant(value) is None
    assert not is_same_day(value, date(2024, 1, 1))


def test_posix_seconds_are_accepted():
    # 2024-01-02T15:00:00Z
    assert calendar_day(1704207600) == date(2024, 1, 2)


def test_invalid_dates_sort_last_in_input_order():
    rows = [
        {"symbol": "U", "date": None},
        {"symbol": "E", "date": ""},
        {"symbol": "M", "date": "bad-date"},
        {"symbol": "V1", "date": "2024-01-01"},
        {"symbol": "V2", "date": "2024-01-02"},
    ]
    ordered = sort_chronologically(rows, lambda row: row["date"])
    assert [row["symbol"] for row in ordered] == ["V1", "V2", "U", "E", "M"]


def test_equal_timestamps_keep_input_order():
    rows = [("b", "2024-01-02T10:00:00-05:00"), ("a", "2024-01-02T15:00:00Z"), ("c", "2024-01-01")]
    ordered = sort_chronologically(rows, lambda row: row[1])
    assert [name for name, _ in ordered] == ["c", "b", "a"]


def test_period_starts():
    # 2025-07-15 is a Tuesday
    assert week_start(date(2025, 7, 15)) == date(2025, 7, 14)
    assert week_start(date(2025, 7, 20)) == date(2025, 7, 14)
    assert week_start(date(2025, 1, 1)) == date(2024, 12, 30)
    assert month_start(date(2025, 7, 15)) == date(2025, 7, 1)
    assert year_start(date(2025, 7, 15)) == date(2025, 1, 1)


def test_iter_days_is_inclusive():
    assert list(iter_days(date(2024, 1, 30), date(2024, 2, 1))) == [
        date(2024, 1, 30),
        date(2024, 1, 31),
        date(2024, 2, 1),
    ]


def test_latest_trading_day_rolls_back_before_open_and_over_weekends():
    tuesday_morning = datetime(2025, 7, 15, 10, 0, tzinfo=NEW_YORK)
    assert latest_trading_day(tuesday_morning) == date(2025, 7, 15)

    tuesday_premarket = datetime(2025, 7, 15, 9, 29, tzinfo=NEW_YORK)
    assert latest_trading_day(tuesday_premarket) == date(2025, 7, 14)

    monday_premarket = datetime(2025, 7, 14, 8, 0, tzinfo=NEW_YORK)
    assert latest_trading_day(monday_premarket) == date(2025, 7, 11)

    saturday = datetime(2025, 7, 19, 12, 0, tzinfo=NEW_YORK)
    assert latest_trading_day(saturday) == date(2025, 7, 18)


def test_resolve_evaluation_date_prefers_explicit_then_configured_then_clock():
    frozen = LedgerSettings(frozen_evaluation_date=date(2024, 1, 2))
    assert resolve_evaluation_date("2025-08-01", settings=frozen) == date(2025, 8, 1)
    assert resolve_evaluation_date(settings=frozen) == date(2024, 1, 2)

    live = LedgerSettings()
    now = datetime(2025, 8, 1, 14, 0, tzinfo=timezone.utc)
    assert resolve_evaluation_date(now=now, settings=live) == date(2025, 8, 1)


def test_frozen_evaluation_date_from_environment(monkeypatch):
    monkeypatch.setenv("PNL_FROZEN_EVALUATION_DATE", "2024-03-08")
    assert resolve_evaluation_date() == date(2024, 3, 8)


@pytest.mark.parametrize("value", ["2024-1-2", "2024-02-30", "yesterday", None, datetime(2024, 1, 2)])
def test_parse_day_is_strict(value):
    with pytest.raises(InputValidationError):
        parse_day(value)
