"""Elapsed-duration tracker: pure logic, no I/O.

Timestamps are integer epoch milliseconds, passed in as now_ms parameters
so tests can move the clock freely (including backwards).
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from .errors import AlreadyRunning, NotRunning

TICK_INTERVAL_MS = 1000
DEFAULT_REMINDER_SECONDS = 25 * 60


def wall_clock_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def format_clock(seconds: int) -> str:
    """Format seconds as 'HH:MM:SS'."""
    seconds = max(0, seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours:02d}:{minutes:02d}:{seconds % 60:02d}"


def format_countdown(seconds: int) -> str:
    """Format seconds as 'MM:SS'."""
    seconds = max(0, seconds)
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def format_hours(seconds: int) -> str:
    """Format a seconds total as hours with one decimal, e.g. '1.5h'."""
    return f"{seconds / 3600:.1f}h"


def _whole_seconds(now_ms: int, since_ms: int) -> int:
    # floor division, so a clock that moved backwards yields a negative value
    return (now_ms - since_ms) // 1000


@dataclass
class ActivityTimer:
    """One activity's session timer.

    A session runs from start() to stop(); stop() hands back the session
    length and clears the timer, so only finished sessions reach the log.
    """

    name: str
    accumulated_seconds: int = 0
    started_at_ms: int | None = None
    last_elapsed: int = 0

    @property
    def running(self) -> bool:
        return self.started_at_ms is not None

    def start(self, now_ms: int) -> None:
        if self.running:
            raise AlreadyRunning(self.name)
        self.started_at_ms = now_ms
        self.last_elapsed = self.accumulated_seconds

    def current_elapsed(self, now_ms: int) -> int:
        """Seconds in the current session. Never below the last shown value."""
        if not self.running:
            return self.accumulated_seconds
        elapsed = self.accumulated_seconds + _whole_seconds(now_ms, self.started_at_ms)
        return max(elapsed, self.last_elapsed, 0)

    def refresh(self, now_ms: int) -> int:
        """Tick body: compute the display value and remember it."""
        value = self.current_elapsed(now_ms)
        if self.running:
            self.last_elapsed = value
        return value

    def stop(self, now_ms: int) -> int:
        if not self.running:
            raise NotRunning(self.name)
        final_seconds = self.current_elapsed(now_ms)
        self.accumulated_seconds = 0
        self.started_at_ms = None
        self.last_elapsed = 0
        return final_seconds

    def resume_from_persisted(self, accumulated_seconds: int, started_at_ms: int | None) -> None:
        """Restore after a restart, keeping the original start timestamp."""
        self.accumulated_seconds = max(0, int(accumulated_seconds))
        self.started_at_ms = started_at_ms
        self.last_elapsed = self.accumulated_seconds

    # ---- Serialization ----

    def to_dict(self) -> dict:
        return {
            "accumulatedSeconds": self.accumulated_seconds,
            "startedAtEpochMillis": self.started_at_ms,
            "running": self.running,
        }

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "ActivityTimer":
        timer = cls(name=name)
        timer.resume_from_persisted(
            int(data.get("accumulatedSeconds", 0)),
            data.get("startedAtEpochMillis"),
        )
        return timer


@dataclass
class CountdownTimer:
    """Repeating reminder countdown.

    When the remaining time reaches zero, tick() reports a fire and the
    countdown restarts from that moment with the same period.
    """

    period_seconds: int = DEFAULT_REMINDER_SECONDS
    started_at_ms: int | None = None
    active: bool = False
    last_remaining: int | None = None

    def __post_init__(self):
        if self.period_seconds <= 0:
            raise ValueError(f"Reminder period must be positive, got {self.period_seconds}")

    def remaining(self, now_ms: int) -> int:
        if self.started_at_ms is None:
            return self.period_seconds
        value = self.period_seconds - _whole_seconds(now_ms, self.started_at_ms)
        ceiling = self.period_seconds if self.last_remaining is None else self.last_remaining
        return min(value, ceiling)

    def tick(self, now_ms: int) -> bool:
        """Advance one tick. Returns True when the reminder fires."""
        if not self.active:
            return False
        if self.started_at_ms is None:
            self.activate(now_ms)
            return False
        remaining = self.remaining(now_ms)
        if remaining <= 0:
            self.started_at_ms = now_ms
            self.last_remaining = self.period_seconds
            return True
        self.last_remaining = remaining
        return False

    def activate(self, now_ms: int, started_at_ms: int | None = None) -> None:
        self.active = True
        self.started_at_ms = now_ms if started_at_ms is None else started_at_ms
        self.last_remaining = None

    def deactivate(self) -> None:
        self.active = False
        self.started_at_ms = None
        self.last_remaining = None

    def set_period(self, period_seconds: int, now_ms: int) -> None:
        if period_seconds <= 0:
            raise ValueError(f"Reminder period must be positive, got {period_seconds}")
        self.period_seconds = period_seconds
        if self.active:
            self.activate(now_ms)

    def to_dict(self) -> dict:
        return {
            "periodSeconds": self.period_seconds,
            "active": self.active,
            "startedAtEpochMillis": self.started_at_ms,
        }
