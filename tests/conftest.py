"""Shared fixtures: a controllable clock, an in-memory store, a mock scheduler."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from pulse_tracker.scheduler import TickScheduler
from pulse_tracker.session import TrackerSession


def local_ms(year: int, month: int, day: int, hour: int = 12, minute: int = 0, second: int = 0) -> int:
    """Epoch ms for a local wall-clock time."""
    return int(datetime(year, month, day, hour, minute, second).timestamp() * 1000)


class FakeClock:
    def __init__(self, now_ms: int):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> int:
        self.now_ms += int(seconds * 1000)
        return self.now_ms


class MemoryStore:
    """Store double: keeps the last saved state, can be told to fail."""

    name = "memory"

    def __init__(self, state=None):
        self.state = state
        self.saves = []
        self.load_error = None
        self.save_error = None

    def load(self):
        if self.load_error:
            raise self.load_error
        return self.state.model_copy(deep=True) if self.state is not None else None

    def save(self, state):
        if self.save_error:
            raise self.save_error
        self.state = state
        self.saves.append(state)


@pytest.fixture
def clock():
    return FakeClock(local_ms(2025, 1, 1, 12))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def scheduler():
    return TickScheduler(MagicMock())


@pytest.fixture
def session(store, scheduler, clock):
    return TrackerSession(store=store, scheduler=scheduler, clock=clock)
