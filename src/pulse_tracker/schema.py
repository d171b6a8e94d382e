"""Persisted state model and the upgrade path from older file layouts.

Files written by earlier versions carry no "version" key:

    v0  {"stats": {...}, "settings": {...}}                  no dailyLogs yet
    v1  {"stats": {...}, "dailyLogs": {...}, "settings": {"pushupReminderMinutes": 25, "gitAutoPush": true}}
    v2  current layout, see PersistedState

upgrade() runs each step once, in order. Steps never mutate their input.
"""

from __future__ import annotations

import copy
import re
from typing import Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, field_validator, model_validator

from .activities import ActivityKind, default_activities, guess_kind
from .errors import SchemaError
from .tracker import DEFAULT_REMINDER_SECONDS

SCHEMA_VERSION = 2

DATE_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ActivityConfig(BaseModel):
    label: str
    kind: ActivityKind = ActivityKind.COUNT


class TimerRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    accumulated_seconds: NonNegativeInt = Field(default=0, alias="accumulatedSeconds")
    started_at_ms: Optional[int] = Field(default=None, alias="startedAtEpochMillis")
    running: bool = False

    @model_validator(mode="after")
    def _running_follows_start(self):
        # running is true exactly when a start timestamp is present
        self.running = self.started_at_ms is not None
        return self


class ReminderConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    period_seconds: PositiveInt = Field(default=DEFAULT_REMINDER_SECONDS, alias="periodSeconds")
    active: bool = True
    started_at_ms: Optional[int] = Field(default=None, alias="startedAtEpochMillis")


class SyncConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    auto_push: bool = Field(default=True, alias="autoPush")


def _default_stats() -> Dict[str, int]:
    return {name: 0 for name in default_activities()}


class PersistedState(BaseModel):
    """Everything exchanged with the store: totals, daily log, config."""

    model_config = ConfigDict(populate_by_name=True)

    version: int = SCHEMA_VERSION
    stats: Dict[str, NonNegativeInt] = Field(default_factory=_default_stats)
    daily_logs: Dict[str, Dict[str, NonNegativeInt]] = Field(default_factory=dict, alias="dailyLogs")
    activities: Dict[str, ActivityConfig] = Field(
        default_factory=lambda: {k: ActivityConfig(**v) for k, v in default_activities().items()}
    )
    timers: Dict[str, TimerRecord] = Field(default_factory=dict)
    reminder: ReminderConfig = Field(default_factory=ReminderConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    @field_validator("daily_logs")
    @classmethod
    def _date_keys(cls, value: Dict[str, Dict[str, int]]):
        for key in value:
            if not DATE_KEY_RE.match(key):
                raise ValueError(f"Daily log key is not a YYYY-MM-DD date: {key!r}")
        return value

    def timed_activities(self) -> list[str]:
        return [name for name, cfg in self.activities.items() if cfg.kind == ActivityKind.TIMED]

    def label(self, name: str) -> str:
        cfg = self.activities.get(name)
        return cfg.label if cfg else name


# ---- Upgrade steps ----


def _as_int(value, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise SchemaError(f"{what} must be an integer, got {value!r}")
    try:
        return int(value)
    except ValueError:
        raise SchemaError(f"{what} must be an integer, got {value!r}") from None


def detect_version(raw: dict) -> int:
    if "version" in raw:
        return _as_int(raw["version"], "version")
    if "dailyLogs" in raw:
        return 1
    return 0


def upgrade_v0_to_v1(raw: dict) -> dict:
    data = copy.deepcopy(raw)
    data["dailyLogs"] = {}
    return data


def upgrade_v1_to_v2(raw: dict) -> dict:
    data = copy.deepcopy(raw)
    settings = data.pop("settings", None) or {}
    if not isinstance(settings, dict):
        raise SchemaError(f"settings must be an object, got {type(settings).__name__}")

    minutes = settings.get("pushupReminderMinutes")
    reminder = {"active": True}
    if minutes:
        reminder["periodSeconds"] = _as_int(minutes, "settings.pushupReminderMinutes") * 60
    data["reminder"] = reminder
    data["sync"] = {"autoPush": bool(settings.get("gitAutoPush", True))}

    activities = default_activities()
    stats = data.get("stats") or {}
    if not isinstance(stats, dict):
        raise SchemaError(f"stats must be an object, got {type(stats).__name__}")
    for name in stats:
        if name not in activities:
            activities[name] = {"label": name.capitalize(), "kind": guess_kind(name).value}
    data["activities"] = activities
    data.setdefault("timers", {})
    data["version"] = 2
    return data


UPGRADES: dict[int, Callable[[dict], dict]] = {
    0: upgrade_v0_to_v1,
    1: upgrade_v1_to_v2,
}


def upgrade(raw: dict) -> dict:
    """Bring a raw persisted dict up to SCHEMA_VERSION."""
    if not isinstance(raw, dict):
        raise SchemaError(f"Persisted state must be a JSON object, got {type(raw).__name__}")
    version = detect_version(raw)
    if version > SCHEMA_VERSION:
        raise SchemaError(f"Persisted state version {version} is newer than supported ({SCHEMA_VERSION})")
    data = raw
    while version < SCHEMA_VERSION:
        step = UPGRADES.get(version)
        if step is None:
            raise SchemaError(f"No upgrade path from version {version}")
        data = step(data)
        version = detect_version(data)
    return data


def parse_state(raw: dict) -> PersistedState:
    """Upgrade then validate. Raises SchemaError or pydantic.ValidationError."""
    return PersistedState.model_validate(upgrade(raw))


def dump_state(state: PersistedState) -> dict:
    return state.model_dump(mode="json", by_alias=True)
