"""Tests for the persisted state model and the version upgrade steps."""

import copy

import pytest
from pydantic import ValidationError

from pulse_tracker.activities import ActivityKind
from pulse_tracker.errors import SchemaError
from pulse_tracker.schema import (
    SCHEMA_VERSION,
    PersistedState,
    detect_version,
    dump_state,
    parse_state,
    upgrade,
    upgrade_v0_to_v1,
    upgrade_v1_to_v2,
)

V0 = {
    "stats": {"math": 0, "reading": 0, "pushups": 10535, "squats": 0},
    "settings": {"pushupReminderMinutes": 25, "gitAutoPush": True},
}

V1 = {
    "stats": {"math": 7200, "reading": 1800, "pushups": 10535, "squats": 0},
    "dailyLogs": {"2026-01-03": {"math": 7200, "reading": 1800, "pushups": 40}},
    "settings": {"pushupReminderMinutes": 30, "gitAutoPush": False},
}


class TestDetectVersion:
    def test_v0(self):
        assert detect_version(V0) == 0

    def test_v1(self):
        assert detect_version(V1) == 1

    def test_explicit(self):
        assert detect_version({"version": 2}) == 2

    @pytest.mark.parametrize("version", ["abc", None, 2.5, [2], True])
    def test_non_integer_version(self, version):
        with pytest.raises(SchemaError):
            detect_version({"version": version})


class TestUpgradeSteps:
    def test_v0_adds_daily_logs(self):
        assert upgrade_v0_to_v1(V0)["dailyLogs"] == {}

    def test_steps_do_not_mutate_input(self):
        before = copy.deepcopy(V1)
        upgrade_v1_to_v2(V1)
        upgrade_v0_to_v1(V0)
        assert V1 == before
        assert "dailyLogs" not in V0

    def test_v1_reminder_minutes_become_seconds(self):
        data = upgrade_v1_to_v2(V1)
        assert data["reminder"] == {"active": True, "periodSeconds": 1800}
        assert "settings" not in data

    def test_v1_git_auto_push_becomes_sync(self):
        assert upgrade_v1_to_v2(V1)["sync"] == {"autoPush": False}

    def test_v1_unknown_stat_gets_activity(self):
        raw = dict(V1, stats={"jumps": 3})
        data = upgrade_v1_to_v2(raw)
        assert data["activities"]["jumps"]["kind"] == "count"
        assert "math" in data["activities"]

    def test_v1_sets_version(self):
        assert upgrade_v1_to_v2(V1)["version"] == 2

    def test_v1_non_numeric_reminder_minutes(self):
        raw = dict(V1, settings={"pushupReminderMinutes": "x"})
        with pytest.raises(SchemaError):
            upgrade_v1_to_v2(raw)

    def test_v1_settings_not_an_object(self):
        with pytest.raises(SchemaError):
            upgrade_v1_to_v2(dict(V1, settings=[25]))


class TestUpgrade:
    def test_v0_reaches_current(self):
        assert detect_version(upgrade(V0)) == SCHEMA_VERSION

    def test_current_is_untouched(self):
        raw = dump_state(PersistedState())
        assert upgrade(raw) == raw

    def test_future_version_rejected(self):
        with pytest.raises(SchemaError):
            upgrade({"version": SCHEMA_VERSION + 1})

    def test_non_object_rejected(self):
        with pytest.raises(SchemaError):
            upgrade(["not", "a", "dict"])


class TestParseState:
    def test_v1_file_loads(self):
        state = parse_state(V1)
        assert state.daily_logs["2026-01-03"]["pushups"] == 40
        assert state.stats["pushups"] == 10535
        assert state.reminder.period_seconds == 1800
        assert state.activities["math"].kind == ActivityKind.TIMED

    def test_negative_count_rejected(self):
        raw = dict(V1, dailyLogs={"2026-01-03": {"math": -1}})
        with pytest.raises(ValidationError):
            parse_state(raw)

    def test_bad_date_key_rejected(self):
        raw = dict(V1, dailyLogs={"03/01/2026": {"math": 1}})
        with pytest.raises(ValidationError):
            parse_state(raw)

    def test_running_follows_start_timestamp(self):
        raw = dump_state(PersistedState())
        raw["timers"] = {
            "math": {"accumulatedSeconds": 0, "startedAtEpochMillis": 1_700_000_000_000, "running": False},
            "reading": {"accumulatedSeconds": 5, "startedAtEpochMillis": None, "running": True},
        }
        state = parse_state(raw)
        assert state.timers["math"].running is True
        assert state.timers["reading"].running is False

    def test_dump_uses_camel_case(self):
        raw = dump_state(PersistedState())
        assert {"stats", "dailyLogs", "activities", "timers", "reminder", "sync", "version"} <= set(raw)
        assert raw["reminder"]["periodSeconds"] == 25 * 60
        assert raw["activities"]["math"] == {"label": "Math", "kind": "timed"}

    def test_timed_activities(self):
        assert set(PersistedState().timed_activities()) == {"math", "reading", "coding"}
