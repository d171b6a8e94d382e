"""Error types raised by the tracker, the daily log and the storage clients."""

from __future__ import annotations


class PulseError(Exception):
    """Base class for every error this package raises on purpose."""


class AlreadyRunning(PulseError):
    def __init__(self, name: str):
        super().__init__(f"Timer '{name}' is already running")
        self.name = name


class NotRunning(PulseError):
    def __init__(self, name: str):
        super().__init__(f"Timer '{name}' is not running")
        self.name = name


class InvalidDelta(PulseError, ValueError):
    def __init__(self, name: str, delta):
        super().__init__(f"Invalid delta for '{name}': {delta!r} (must be an integer >= 0)")
        self.name = name
        self.delta = delta


class UnknownActivity(PulseError, KeyError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown activity: {self.name}"


class SchemaError(PulseError, ValueError):
    """Persisted data has a shape no upgrade step knows about."""


class PersistenceError(PulseError):
    """A load or save against the backing store failed."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PersistenceUnavailable(PersistenceError):
    """Credentials or configuration for the store are missing or rejected."""


class PersistenceConflict(PersistenceError):
    """The remote revision token no longer matches; the save was refused."""


class RemoteFetchFailed(PulseError):
    """The merge source could not be reached or returned unusable data."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
