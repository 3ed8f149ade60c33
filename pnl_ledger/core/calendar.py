"""Timezone-aware calendar helpers and the chronological trade order.

All day bucketing happens on the New York calendar: a fill at 00:30 UTC on
January 3rd is a January 2nd trade. Malformed or missing timestamps never
raise here; they normalise to ``None`` and sort after every valid instant.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Iterator, Sequence, TypeVar
from zoneinfo import ZoneInfo

from pnl_ledger.config import DEFAULT_MARKET_OPEN, DEFAULT_TIMEZONE, LedgerSettings, get_settings
from pnl_ledger.core.errors import InputValidationError

NEW_YORK = ZoneInfo(DEFAULT_TIMEZONE)

_DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

T = TypeVar("T")


def normalize_instant(value: Any, tz: ZoneInfo = NEW_YORK) -> datetime | None:
    """Return an aware datetime in ``tz`` or ``None`` when ``value`` is unusable.

    Date-only values map to local midnight, naive datetimes are read as local
    wall time, numbers are POSIX seconds.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=tz)
        return value.astimezone(tz)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if _DAY_PATTERN.match(text):
        try:
            return datetime.combine(date.fromisoformat(text), time.min, tzinfo=tz)
        except ValueError:
            return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return normalize_instant(parsed, tz)


def calendar_day(value: Any, tz: ZoneInfo = NEW_YORK) -> date | None:
    """Calendar day of ``value`` in ``tz``, or ``None`` when it cannot be parsed."""

    instant = normalize_instant(value, tz)
    return instant.date() if instant is not None else None


def is_same_day(value: Any, day: date, tz: ZoneInfo = NEW_YORK) -> bool:
    """True when ``value`` falls on ``day`` in ``tz``. Invalid values never match."""

    return calendar_day(value, tz) == day


def parse_day(value: Any) -> date:
    """Parse a strict calendar day (``date`` or ``YYYY-MM-DD``)."""

    if isinstance(value, datetime):
        raise InputValidationError(f"Expected a calendar day, got datetime {value!r}")
    if isinstance(value, date):
        return value
    if isinstance(value, str) and _DAY_PATTERN.match(value.strip()):
        try:
            return date.fromisoformat(value.strip())
        except ValueError as exc:
            raise InputValidationError(f"Invalid calendar day: {value!r}") from exc
    raise InputValidationError(f"Invalid calendar day: {value!r}")


def is_day_key(value: Any) -> bool:
    """True when ``value`` is a well-formed ``YYYY-MM-DD`` string for a real date."""

    if not isinstance(value, str) or not _DAY_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def chronological_key(value: Any, index: int, tz: ZoneInfo = NEW_YORK) -> tuple[float, int]:
    instant = normalize_instant(value, tz)
    return (instant.timestamp() if instant is not None else math.inf, index)


def sort_chronologically(items: Sequence[T], timestamp_of, tz: ZoneInfo = NEW_YORK) -> list[T]:
    """Stable sort by ``(instant or +inf, original position)``."""

    keyed = [
        (chronological_key(timestamp_of(item), index, tz), item)
        for index, item in enumerate(items)
    ]
    keyed.sort(key=lambda pair: pair[0])
    return [item for _, item in keyed]


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""

    return day - timedelta(days=day.weekday())


def month_start(day: date) -> date:
    return day.replace(day=1)


def year_start(day: date) -> date:
    return day.replace(month=1, day=1)


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every calendar day from ``start`` to ``end`` inclusive."""

    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def latest_trading_day(
    now: datetime,
    tz: ZoneInfo = NEW_YORK,
    market_open: time = DEFAULT_MARKET_OPEN,
) -> date:
    """Most recent trading day as of ``now``.

    Before the opening bell the session still belongs to the previous day, and
    weekends roll back to Friday. Exchange holidays are not modelled.
    """

    local = normalize_instant(now, tz)
    if local is None:
        raise InputValidationError(f"Cannot derive a trading day from {now!r}")
    day = local.date()
    if local.time() < market_open:
        day -= timedelta(days=1)
    while day.weekday() >= 5:
        day -= timedelta(days=1)
    return day


def resolve_evaluation_date(
    evaluation_date: date | str | None = None,
    *,
    now: datetime | None = None,
    settings: LedgerSettings | None = None,
) -> date:
    """Pick the evaluation date: explicit argument, then configured override, then the clock."""

    if evaluation_date is not None:
        return parse_day(evaluation_date)
    if settings is None:
        settings = get_settings()
    if settings.frozen_evaluation_date is not None:
        return settings.frozen_evaluation_date
    tz = ZoneInfo(settings.timezone)
    current = now if now is not None else datetime.now(tz)
    return latest_trading_day(current, tz, settings.market_open)


__all__ = [
    "NEW_YORK",
    "normalize_instant",
    "calendar_day",
    "is_same_day",
    "parse_day",
    "is_day_key",
    "chronological_key",
    "sort_chronologically",
    "week_start",
    "month_start",
    "year_start",
    "iter_days",
    "latest_trading_day",
    "resolve_evaluation_date",
]
