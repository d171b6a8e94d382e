"""Known activities and how their counts are weighed."""

from __future__ import annotations

from enum import Enum


class ActivityKind(str, Enum):
    TIMED = "timed"  # counts are seconds
    COUNT = "count"  # counts are repetitions


# Heatmap weights: how many raw units make one "activity unit"
UNIT_DIVISORS: dict[ActivityKind, int] = {
    ActivityKind.TIMED: 3600,  # one hour
    ActivityKind.COUNT: 50,    # fifty reps
}

DEFAULT_ACTIVITIES: dict[str, dict] = {
    "math": {"label": "Math", "kind": ActivityKind.TIMED.value},
    "reading": {"label": "Reading", "kind": ActivityKind.TIMED.value},
    "coding": {"label": "Coding", "kind": ActivityKind.TIMED.value},
    "pushups": {"label": "Pushups", "kind": ActivityKind.COUNT.value},
    "squats": {"label": "Squats", "kind": ActivityKind.COUNT.value},
}

DEFAULT_REPS = 10
TREND_ACTIVITIES = ("math", "reading")


def default_activities() -> dict[str, dict]:
    return {name: dict(info) for name, info in DEFAULT_ACTIVITIES.items()}


def guess_kind(name: str) -> ActivityKind:
    """Kind for a name found in old data with no activity table."""
    known = DEFAULT_ACTIVITIES.get(name)
    if known:
        return ActivityKind(known["kind"])
    return ActivityKind.COUNT
