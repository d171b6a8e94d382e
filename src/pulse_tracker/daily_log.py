"""Daily log reconciler: per-day counts plus the running totals derived from them.

Works directly on a PersistedState's dailyLogs and stats dicts so there is
only ever one copy of the data.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterator, Mapping

from .errors import InvalidDelta
from .schema import DATE_KEY_RE, PersistedState

logger = logging.getLogger(__name__)


def today_key(now_ms: int | None = None) -> str:
    """Local calendar date as YYYY-MM-DD."""
    moment = datetime.now() if now_ms is None else datetime.fromtimestamp(now_ms / 1000)
    return moment.date().isoformat()


def _check_count(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidDelta(name, value)
    return value


class DailyLog:
    def __init__(self, state: PersistedState):
        self.state = state

    @property
    def logs(self) -> dict[str, dict[str, int]]:
        return self.state.daily_logs

    @property
    def stats(self) -> dict[str, int]:
        return self.state.stats

    def entry(self, date: str) -> dict[str, int]:
        return dict(self.logs.get(date, {}))

    def record(self, name: str, delta: int, now_ms: int | None = None) -> int:
        """Add delta to today's count for name. Returns today's new value.

        The day is taken at record time, so a session that crosses midnight
        lands on the day it was stopped.
        """
        _check_count(name, delta)
        key = today_key(now_ms)
        day = self.logs.setdefault(key, {})
        day[name] = day.get(name, 0) + delta
        self.stats[name] = self.stats.get(name, 0) + delta
        return day[name]

    def merge_external(self, name: str, source: Mapping[str, int]) -> int:
        """Overwrite name's per-day counts with source's; return how many changed.

        The source is authoritative for name and carries no timestamps, so the
        last merge wins per date.
        """
        for date, count in source.items():
            if not DATE_KEY_RE.match(date):
                raise ValueError(f"Merge source date is not YYYY-MM-DD: {date!r}")
            _check_count(name, count)

        merged = 0
        for date, count in source.items():
            day = self.logs.setdefault(date, {})
            if day.get(name) != count:
                day[name] = count
                merged += 1

        self.recompute_total(name)
        logger.info(f"Merged {merged} of {len(source)} external '{name}' entries")
        return merged

    def recompute_total(self, name: str) -> int:
        total = sum(day.get(name, 0) for day in self.logs.values())
        self.stats[name] = total
        return total

    def recompute_all(self) -> dict[str, int]:
        names = set(self.stats)
        for day in self.logs.values():
            names.update(day)
        for name in names:
            self.recompute_total(name)
        return dict(self.stats)

    def history(self, limit: int) -> Iterator[tuple[str, str, int]]:
        """Yield (date, name, value) for the latest `limit` active days, newest first.

        Zero values are skipped. Each call reads the current log.
        """
        if limit <= 0:
            return
        days = 0
        for date in sorted(self.logs, reverse=True):
            values = [(name, value) for name, value in sorted(self.logs[date].items()) if value]
            if not values:
                continue
            for name, value in values:
                yield date, name, value
            days += 1
            if days >= limit:
                return
