"""API tests through FastAPI's TestClient with an in-memory store."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from pulse_tracker.errors import PersistenceUnavailable, RemoteFetchFailed
from pulse_tracker.scheduler import TickScheduler
from pulse_tracker.server import create_app
from pulse_tracker.session import TrackerSession

from conftest import FakeClock, MemoryStore, local_ms


class StaticMergeSource:
    def __init__(self, counts=None, error=None):
        self.counts = counts or {}
        self.error = error

    def fetch(self):
        if self.error:
            raise self.error
        return dict(self.counts)


@pytest.fixture
def memory():
    return MemoryStore()


@pytest.fixture
def fake_clock():
    return FakeClock(local_ms(2025, 1, 1, 12))


def _client(store, clock, merge_source=None):
    session = TrackerSession(
        store=store,
        scheduler=TickScheduler(MagicMock()),
        merge_source=merge_source,
        clock=clock,
    )
    return TestClient(create_app(session=session))


@pytest.fixture
def client(memory, fake_clock):
    with _client(memory, fake_clock) as c:
        yield c


class TestInfo:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        assert client.get("/").json()["name"] == "Pulse-Tracker"

    def test_status(self, client):
        data = client.get("/api/status").json()
        assert data["storage"] == "memory"
        assert data["storageError"] is None
        assert data["mergeConfigured"] is False

    def test_recent_logs(self, client):
        data = client.get("/api/logs/recent?limit=5").json()
        assert data["count"] == len(data["logs"])
        assert data["count"] <= 5


class TestData:
    def test_get_defaults(self, client):
        data = client.get("/api/data").json()
        assert data["version"] == 2
        assert data["dailyLogs"] == {}
        assert "math" in data["timers"]

    def test_post_overwrites_and_saves(self, client, memory):
        payload = client.get("/api/data").json()
        payload["dailyLogs"] = {"2024-12-31": {"reading": 1800}}
        payload["stats"]["reading"] = 1800
        response = client.post("/api/data", json=payload)
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert memory.state.daily_logs == {"2024-12-31": {"reading": 1800}}

    def test_post_invalid(self, client):
        response = client.post("/api/data", json={"version": 2, "dailyLogs": {"not-a-date": {}}})
        assert response.status_code == 422

    def test_post_future_version(self, client):
        assert client.post("/api/data", json={"version": 99}).status_code == 422

    @pytest.mark.parametrize("payload", [
        {"version": "abc"},
        {"dailyLogs": {}, "settings": {"pushupReminderMinutes": "x"}},
    ])
    def test_post_malformed_fields(self, client, payload):
        assert client.post("/api/data", json=payload).status_code == 422


class TestTimers:
    def test_list(self, client):
        names = [t["name"] for t in client.get("/api/timers").json()]
        assert names == ["math", "reading", "coding"]

    def test_toggle_round_trip(self, client, fake_clock):
        assert client.post("/api/timers/math/toggle").json()["action"] == "started"
        fake_clock.advance(90)
        assert client.get("/api/timers/math").json()["elapsed"] == 90
        stopped = client.post("/api/timers/math/toggle").json()
        assert stopped["seconds"] == 90
        assert client.get("/api/stats").json()["today"]["entry"] == {"math": 90}

    def test_double_start_conflict(self, client):
        client.post("/api/timers/coding/start")
        assert client.post("/api/timers/coding/start").status_code == 409

    def test_stop_idle_conflict(self, client):
        assert client.post("/api/timers/coding/stop").status_code == 409

    def test_unknown(self, client):
        assert client.get("/api/timers/juggling").status_code == 404
        assert client.post("/api/timers/juggling/toggle").status_code == 404


class TestCounters:
    def test_default_reps(self, client):
        data = client.post("/api/counters/pushups").json()
        assert data["added"] == 10
        assert data["today"] == 10

    def test_custom_reps(self, client):
        data = client.post("/api/counters/squats", json={"reps": 25}).json()
        assert data["today"] == 25

    def test_negative_reps(self, client):
        assert client.post("/api/counters/squats", json={"reps": -5}).status_code == 400

    def test_unknown_counter(self, client):
        assert client.post("/api/counters/burpees").status_code == 404

    def test_timed_activity_is_not_a_counter(self, client):
        assert client.post("/api/counters/math").status_code == 404
        assert client.get("/api/stats").json()["today"]["entry"] == {}


class TestReminder:
    def test_defaults(self, client):
        data = client.get("/api/reminder").json()
        assert data["active"] is True
        assert data["periodSeconds"] == 1500
        assert data["display"] == "25:00"

    def test_update_period(self, client, memory):
        data = client.patch("/api/reminder", json={"periodMinutes": 10}).json()
        assert data["reminder"]["periodSeconds"] == 600
        assert memory.state.reminder.period_seconds == 600

    def test_invalid_period(self, client):
        assert client.patch("/api/reminder", json={"periodMinutes": 0}).status_code == 422

    def test_toggle(self, client):
        assert client.post("/api/reminder/toggle").json()["reminder"]["active"] is False
        assert client.post("/api/reminder/toggle").json()["reminder"]["active"] is True


class TestHistory:
    def test_newest_first(self, client):
        payload = client.get("/api/data").json()
        payload["dailyLogs"] = {
            "2024-12-30": {"math": 600},
            "2024-12-31": {"pushups": 20, "squats": 0},
        }
        client.post("/api/data", json=payload)
        items = client.get("/api/history?limit=5").json()
        assert items == [
            {"date": "2024-12-31", "name": "pushups", "value": 20},
            {"date": "2024-12-30", "name": "math", "value": 600},
        ]

    def test_views_use_session_clock(self, client):
        grid = client.get("/api/heatmap").json()
        today = [c["date"] for c in grid["cells"] if c["isToday"]]
        assert today == ["2025-01-01"]
        assert client.get("/api/trends").json()["dates"][-1] == "2025-01-01"

    def test_heatmap_and_trends(self, client):
        grid = client.get("/api/heatmap?year=2024").json()
        assert len(grid["cells"]) == 53 * 7
        data = client.get("/api/trends?days=3").json()
        assert len(data["dates"]) == 3
        assert set(data["series"]) == {"math", "reading"}


class TestSyncExternal:
    def test_not_configured(self, client):
        assert client.post("/api/sync-justpush").status_code == 503

    def test_merge(self, memory, fake_clock):
        source = StaticMergeSource({"2025-01-01": 40})
        with _client(memory, fake_clock, source) as c:
            data = c.post("/api/sync-justpush").json()
        assert data["success"] is True
        assert data["merged"] == 1
        assert memory.state.daily_logs["2025-01-01"]["pushups"] == 40

    def test_upstream_failure(self, memory, fake_clock):
        source = StaticMergeSource(error=RemoteFetchFailed("connection_refused"))
        with _client(memory, fake_clock, source) as c:
            assert c.post("/api/sync-justpush").status_code == 502


class TestStorageFailure:
    def test_starts_with_defaults_and_reports(self, memory, fake_clock):
        memory.load_error = PersistenceUnavailable("GitHub token not configured")
        with _client(memory, fake_clock) as c:
            status = c.get("/api/status").json()
            assert status["needsConfiguration"] is True
            assert c.get("/api/data").json()["dailyLogs"] == {}
