"""Activity timers, rep counts and a daily log, served over HTTP."""

__version__ = "0.1.0"

from .daily_log import DailyLog, today_key
from .errors import (
    AlreadyRunning,
    InvalidDelta,
    NotRunning,
    PersistenceConflict,
    PersistenceError,
    PersistenceUnavailable,
    PulseError,
    RemoteFetchFailed,
    UnknownActivity,
)
from .schema import PersistedState, parse_state
from .tracker import ActivityTimer, CountdownTimer

__all__ = [
    "ActivityTimer",
    "AlreadyRunning",
    "CountdownTimer",
    "DailyLog",
    "InvalidDelta",
    "NotRunning",
    "PersistedState",
    "PersistenceConflict",
    "PersistenceError",
    "PersistenceUnavailable",
    "PulseError",
    "RemoteFetchFailed",
    "UnknownActivity",
    "parse_state",
    "today_key",
]
