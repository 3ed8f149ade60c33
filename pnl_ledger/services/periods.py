"""Period sums over the daily-result ledger with a content-addressed cache.

The cache is keyed by a fingerprint of the ledger's contents, never by object
identity, so appending to or editing a list in place is always picked up on
the next query. Each aggregator owns its cache; share one across threads only
behind external locking.
"""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence

from pnl_ledger.core.calendar import month_start, week_start, year_start
from pnl_ledger.core.errors import DailyResultMismatchError
from pnl_ledger.core.money import ZERO, round2
from pnl_ledger.models import DailyResult, PeriodSums

logger = logging.getLogger(__name__)


class SumMode(str, Enum):
    # realized + unrealized for every day in range
    MARKED = "marked"
    # realized + change in unrealized versus the previous ledger day
    DELTA = "delta"


def dataset_fingerprint(daily: Sequence[DailyResult]) -> str:
    """Stable digest over every (date, realized, unrealized, delta) tuple plus the length."""

    digest = hashlib.sha256()
    digest.update(str(len(daily)).encode())
    for row in daily:
        delta = "" if row.unrealized_delta is None else str(row.unrealized_delta)
        digest.update(f"|{row.date.isoformat()}:{row.realized}:{row.unrealized}:{delta}".encode())
    return digest.hexdigest()


def sum_period_naive(
    daily: Sequence[DailyResult],
    start: date,
    end: date,
    mode: SumMode = SumMode.DELTA,
) -> Decimal:
    """Linear scan; the previous unrealized value carries across the range start."""

    total = ZERO
    previous_unrealized = ZERO
    for row in sorted(daily, key=lambda item: item.date):
        if mode is SumMode.MARKED:
            contribution = row.realized + row.unrealized
        else:
            delta = row.unrealized_delta
            if delta is None:
                delta = row.unrealized - previous_unrealized
            contribution = row.realized + delta
        previous_unrealized = row.unrealized
        if start <= row.date <= end:
            total += contribution
    return round2(total)


class PeriodSumCache:
    """Fingerprint -> {(mode, start, end): sum}, evicting the oldest datasets in batches."""

    def __init__(self, max_datasets: int = 32, evict_batch: int = 8):
        if max_datasets < 1 or evict_batch < 1:
            raise ValueError("Cache ceiling and eviction batch must be positive")
        self.max_datasets = max_datasets
        self.evict_batch = evict_batch
        self._entries: OrderedDict[str, dict[tuple[SumMode, date, date], Decimal]] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    def get(self, fingerprint: str, key: tuple[SumMode, date, date]) -> Decimal | None:
        ranges = self._entries.get(fingerprint)
        if ranges is None or key not in ranges:
            self.misses += 1
            return None
        self.hits += 1
        return ranges[key]

    def put(self, fingerprint: str, key: tuple[SumMode, date, date], value: Decimal) -> None:
        ranges = self._entries.get(fingerprint)
        if ranges is None:
            ranges = {}
            self._entries[fingerprint] = ranges
            self._evict()
        ranges[key] = value

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def _evict(self) -> None:
        if len(self._entries) <= self.max_datasets:
            return
        for _ in range(min(self.evict_batch, len(self._entries) - 1)):
            evicted, _ranges = self._entries.popitem(last=False)
            logger.debug("Evicted period cache dataset %s", evicted[:12])


class PeriodAggregator:
    """Week/month/year-to-date sums backed by a :class:`PeriodSumCache`."""

    def __init__(self, cache: PeriodSumCache | None = None):
        self.cache = cache if cache is not None else PeriodSumCache()

    def sum_period(
        self,
        daily: Sequence[DailyResult],
        start: date,
        end: date,
        mode: SumMode = SumMode.DELTA,
    ) -> Decimal:
        fingerprint = dataset_fingerprint(daily)
        key = (mode, start, end)
        cached = self.cache.get(fingerprint, key)
        if cached is not None:
            return cached
        value = sum_period_naive(daily, start, end, mode)
        self.cache.put(fingerprint, key, value)
        return value

    def period_sums(
        self,
        daily: Sequence[DailyResult],
        evaluation_date: date,
        mode: SumMode = SumMode.MARKED,
    ) -> PeriodSums:
        """WTD, MTD and YTD as of ``evaluation_date``; later rows never count."""

        return PeriodSums(
            wtd=self.sum_period(daily, week_start(evaluation_date), evaluation_date, mode),
            mtd=self.sum_period(daily, month_start(evaluation_date), evaluation_date, mode),
            ytd=self.sum_period(daily, year_start(evaluation_date), evaluation_date, mode),
        )


def history_realized_total(daily: Iterable[DailyResult], evaluation_date: date) -> Decimal:
    """Sum of ``realized`` over the ledger up to and including ``evaluation_date``.

    Legacy ``pnl``/``fifo`` fields are deliberately not consulted.
    """

    return round2(sum((row.realized for row in daily if row.date <= evaluation_date), ZERO))


def validate_daily_results(daily: Iterable[DailyResult]) -> None:
    """Reject rows whose stored total disagrees with realized + unrealized."""

    for row in daily:
        if row.stored_total is None:
            continue
        components = round2(row.realized + row.unrealized)
        if components != round2(row.stored_total):
            raise DailyResultMismatchError(row.date.isoformat(), components, row.stored_total)


__all__ = [
    "SumMode",
    "dataset_fingerprint",
    "sum_period_naive",
    "PeriodSumCache",
    "PeriodAggregator",
    "history_realized_total",
    "validate_daily_results",
]
