"""
Pulse Tracker: FastAPI server for activity timers, rep counts and daily logs

This server provides:
- Persisted data read/overwrite (local JSON file or GitHub repository file)
- Activity timers that survive restarts
- Rep counters and the recurring pushup reminder
- Merge of an external rep counter into the daily log
- Heatmap / trend data for the dashboard
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, PositiveInt, ValidationError

from . import __version__
from .activities import DEFAULT_REPS, TREND_ACTIVITIES
from .config import Settings, get_settings
from .daily_log import today_key
from .errors import (
    AlreadyRunning,
    InvalidDelta,
    NotRunning,
    PersistenceConflict,
    PersistenceUnavailable,
    PulseError,
    RemoteFetchFailed,
    SchemaError,
    UnknownActivity,
)
from .logs import install_buffer_handler, recent_logs
from .remote import MergeSourceClient, ReminderNotifier
from .scheduler import TickScheduler
from .session import TrackerSession
from .storage import build_store
from .summary import heatmap, trend

logger = logging.getLogger(__name__)

MAX_HISTORY_DAYS = 366


# Pydantic Models
class RepsRequest(BaseModel):
    reps: int = Field(default=DEFAULT_REPS, description="Repetitions to add (>= 0)")


class ReminderUpdateRequest(BaseModel):
    active: Optional[bool] = None
    period_minutes: Optional[PositiveInt] = Field(default=None, alias="periodMinutes")


class HistoryItem(BaseModel):
    date: str
    name: str
    value: int


class LogsResponse(BaseModel):
    logs: List[dict]
    count: int


# Status codes for errors raised by the session
ERROR_STATUS = {
    UnknownActivity: 404,
    AlreadyRunning: 409,
    NotRunning: 409,
    PersistenceConflict: 409,
    InvalidDelta: 400,
    RemoteFetchFailed: 502,
    PersistenceUnavailable: 503,
}


def http_error(exc: PulseError) -> HTTPException:
    for cls, status in ERROR_STATUS.items():
        if isinstance(exc, cls):
            return HTTPException(status_code=status, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def build_session(settings: Settings) -> TrackerSession:
    merge_source = None
    if settings.merge_url:
        merge_source = MergeSourceClient(settings.merge_url, settings.merge_token, timeout=settings.http_timeout)
    notifier = ReminderNotifier(settings.reminder_webhook) if settings.reminder_webhook else None
    return TrackerSession(
        store=build_store(settings),
        scheduler=TickScheduler(),
        merge_source=merge_source,
        notifier=notifier,
        merge_activity=settings.merge_activity,
    )


def create_app(settings: Optional[Settings] = None, session: Optional[TrackerSession] = None) -> FastAPI:
    install_buffer_handler()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal session
        if session is None:
            session = build_session(settings or get_settings())
        app.state.session = session

        # Startup
        session.scheduler.start()
        result = await session.load()
        if "error" in result:
            logger.warning(f"Starting with default data: {result['error']}")
        yield

        # Shutdown
        session.shutdown()
        session.scheduler.shutdown()

    app = FastAPI(
        title="Pulse-Tracker",
        description="Local FastAPI server for activity timers and daily logs",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_session(request: Request) -> TrackerSession:
        return request.app.state.session

    # ---- Data ----

    @app.get("/api/data")
    async def get_data(request: Request):
        """Full persisted state as the dashboard consumes it."""
        return get_session(request).snapshot()

    @app.post("/api/data")
    async def post_data(request: Request, payload: dict = Body(...)):
        """Overwrite the state with the posted document."""
        try:
            result = await get_session(request).replace_state(payload)
        except (SchemaError, ValidationError) as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {"success": True, **result}

    @app.post("/api/sync-justpush")
    async def sync_external(request: Request):
        """Merge the external rep counter into the daily log."""
        try:
            return await get_session(request).sync_external()
        except PulseError as e:
            logger.error(f"External merge failed: {e}")
            raise http_error(e)

    # ---- Timers ----

    @app.get("/api/timers")
    async def list_timers(request: Request):
        session = get_session(request)
        return [session.timer_view(name) for name in session.timers]

    @app.get("/api/timers/{name}")
    async def get_timer(request: Request, name: str):
        try:
            return get_session(request).timer_view(name)
        except PulseError as e:
            raise http_error(e)

    @app.post("/api/timers/{name}/toggle")
    async def toggle_timer(request: Request, name: str):
        try:
            return await get_session(request).toggle(name)
        except PulseError as e:
            raise http_error(e)

    @app.post("/api/timers/{name}/start")
    async def start_timer(request: Request, name: str):
        try:
            return await get_session(request).start(name)
        except PulseError as e:
            raise http_error(e)

    @app.post("/api/timers/{name}/stop")
    async def stop_timer(request: Request, name: str):
        try:
            return await get_session(request).stop(name)
        except PulseError as e:
            raise http_error(e)

    # ---- Counters ----

    @app.post("/api/counters/{name}")
    async def add_reps(request: Request, name: str, body: Optional[RepsRequest] = None):
        reps = body.reps if body else DEFAULT_REPS
        try:
            return await get_session(request).add_reps(name, reps)
        except PulseError as e:
            raise http_error(e)

    # ---- Reminder ----

    @app.get("/api/reminder")
    async def get_reminder(request: Request):
        return get_session(request).reminder_view()

    @app.patch("/api/reminder")
    async def update_reminder(request: Request, body: ReminderUpdateRequest):
        period_seconds = body.period_minutes * 60 if body.period_minutes else None
        return await get_session(request).set_reminder(active=body.active, period_seconds=period_seconds)

    @app.post("/api/reminder/toggle")
    async def toggle_reminder(request: Request):
        return await get_session(request).toggle_reminder()

    # ---- Views ----

    @app.get("/api/stats")
    async def get_stats(request: Request):
        session = get_session(request)
        return {"stats": session.stats_view(), "today": session.today_view()}

    @app.get("/api/history", response_model=List[HistoryItem])
    async def get_history(request: Request, limit: int = 10):
        """Latest days with activity, newest first."""
        limit = max(0, min(limit, MAX_HISTORY_DAYS))
        history = get_session(request).log.history(limit)
        return [{"date": d, "name": n, "value": v} for d, n, v in history]

    @app.get("/api/heatmap")
    async def get_heatmap(request: Request, year: Optional[int] = None):
        session = get_session(request)
        today = date.fromisoformat(today_key(session.clock()))
        return heatmap(session.state.daily_logs, session.state.activities, year or today.year, today)

    @app.get("/api/trends")
    async def get_trends(request: Request, days: int = 7):
        session = get_session(request)
        days = max(1, min(days, 90))
        names = [name for name in TREND_ACTIVITIES if name in session.state.activities]
        today = date.fromisoformat(today_key(session.clock()))
        return trend(session.state.daily_logs, today, names, days=days)

    @app.get("/api/status")
    async def get_status(request: Request):
        return get_session(request).status_view()

    @app.get("/api/logs/recent", response_model=LogsResponse)
    async def get_recent_logs(limit: int = 50):
        """Recent server logs from the circular buffer (max 100)."""
        logs = recent_logs(limit)
        return {"logs": logs, "count": len(logs)}

    # Health check
    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "timestamp": datetime.now().isoformat()}

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "Pulse-Tracker",
            "version": __version__,
            "description": "Local FastAPI server for activity timers and daily logs",
            "docs": "/docs",
        }

    return app
