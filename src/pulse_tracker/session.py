"""TrackerSession: the one object that owns the in-memory state for a process.

Everything that mutates state runs on the event loop. Store and HTTP calls
are blocking and go through the default executor, working on a snapshot
taken before the first await.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Optional

from .activities import DEFAULT_REPS, ActivityKind, guess_kind
from .daily_log import DailyLog, today_key
from .errors import PersistenceError, PersistenceUnavailable, UnknownActivity
from .schema import ActivityConfig, PersistedState, ReminderConfig, TimerRecord, dump_state, parse_state
from .scheduler import TickScheduler
from .tracker import (
    TICK_INTERVAL_MS,
    ActivityTimer,
    CountdownTimer,
    format_clock,
    format_countdown,
    format_hours,
    wall_clock_ms,
)

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Pulse Check"
REMINDER_MESSAGE = "Time for a set of pushups!"
MAX_RECENT_REMINDERS = 20


def _iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).isoformat(timespec="seconds")


def _log_notify_result(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error(f"Reminder webhook failed: {exc!r}")
    elif not future.result().get("success"):
        logger.warning(f"Reminder webhook not delivered: {future.result()}")


class TrackerSession:
    def __init__(
        self,
        store,
        scheduler: TickScheduler,
        merge_source=None,
        notifier=None,
        clock: Callable[[], int] = wall_clock_ms,
        merge_activity: str = "pushups",
        tick_interval_ms: int = TICK_INTERVAL_MS,
    ):
        self.store = store
        self.scheduler = scheduler
        self.merge_source = merge_source
        self.notifier = notifier
        self.clock = clock
        self.merge_activity = merge_activity
        self.tick_interval_ms = tick_interval_ms

        self.state = PersistedState()
        self.log = DailyLog(self.state)
        self.timers: dict[str, ActivityTimer] = {}
        self.countdown = CountdownTimer()
        self.reminders: Deque[dict] = deque(maxlen=MAX_RECENT_REMINDERS)
        self.storage_error: Optional[PersistenceError] = None
        self.last_saved_at: Optional[str] = None

        self._timer_ticks: dict[str, str] = {}
        self._reminder_tick: Optional[str] = None
        self._save_lock = asyncio.Lock()

    # ---- Load / save ----

    async def load(self) -> dict:
        """Read the store and restore timers; a missing file means defaults."""
        loop = asyncio.get_running_loop()
        found = False
        try:
            state = await loop.run_in_executor(None, self.store.load)
            found = state is not None
            self.storage_error = None
        except PersistenceError as e:
            logger.error(f"Load failed ({type(e).__name__}): {e.reason}")
            self.storage_error = e
            state = None

        self._adopt(state or PersistedState())
        running = [name for name, timer in self.timers.items() if timer.running]
        logger.info(f"Loaded state from {self.store.name} (found={found}, running={running})")
        result = {"loaded": found}
        if self.storage_error:
            result["error"] = self.storage_error.reason
        return result

    async def save(self) -> dict:
        """Write a snapshot. Failure is reported, the in-memory state stays."""
        self._sync_to_state()
        snapshot = self.state.model_copy(deep=True)
        loop = asyncio.get_running_loop()
        async with self._save_lock:
            try:
                await loop.run_in_executor(None, self.store.save, snapshot)
            except PersistenceError as e:
                self.storage_error = e
                logger.error(f"Save failed ({type(e).__name__}): {e.reason}")
                return {"saved": False, "error": e.reason, "errorType": type(e).__name__}
        self.storage_error = None
        self.last_saved_at = datetime.now().isoformat(timespec="seconds")
        return {"saved": True}

    async def replace_state(self, raw: dict) -> dict:
        """Overwrite everything with a posted state (upgraded first)."""
        state = parse_state(raw)
        self._adopt(state)
        logger.info("State replaced from client payload")
        return await self.save()

    def snapshot(self) -> dict:
        self._sync_to_state()
        return dump_state(self.state)

    def _adopt(self, state: PersistedState) -> None:
        self._cancel_all_ticks()
        self.state = state
        self.log = DailyLog(state)

        self.timers = {}
        names = list(state.timed_activities())
        names += [name for name in state.timers if name not in names]
        for name in names:
            timer = ActivityTimer(name=name)
            record = state.timers.get(name)
            if record is not None:
                timer.resume_from_persisted(record.accumulated_seconds, record.started_at_ms)
            self.timers[name] = timer
            if timer.running:
                self._schedule_timer_tick(name)

        reminder = state.reminder
        self.countdown = CountdownTimer(period_seconds=reminder.period_seconds)
        if reminder.active:
            self.countdown.activate(self.clock(), started_at_ms=reminder.started_at_ms)
            self._schedule_reminder_tick()

    def _sync_to_state(self) -> None:
        self.state.timers = {
            name: TimerRecord(
                accumulated_seconds=timer.accumulated_seconds,
                started_at_ms=timer.started_at_ms,
            )
            for name, timer in self.timers.items()
        }
        self.state.reminder = ReminderConfig(
            period_seconds=self.countdown.period_seconds,
            active=self.countdown.active,
            started_at_ms=self.countdown.started_at_ms,
        )

    # ---- Timers ----

    def _timer(self, name: str) -> ActivityTimer:
        timer = self.timers.get(name)
        if timer is None:
            raise UnknownActivity(name)
        return timer

    async def toggle(self, name: str) -> dict:
        if self._timer(name).running:
            return await self.stop(name)
        return await self.start(name)

    async def start(self, name: str) -> dict:
        timer = self._timer(name)
        timer.start(self.clock())
        self._schedule_timer_tick(name)
        logger.info(f"Timer '{name}' started")
        result = {"action": "started", "timer": self.timer_view(name)}
        result.update(await self.save())
        return result

    async def stop(self, name: str) -> dict:
        """Finish the session and log it under today before anything awaits."""
        now = self.clock()
        timer = self._timer(name)
        seconds = timer.stop(now)
        self._cancel_timer_tick(name)
        today_value = self.log.record(name, seconds, now)
        logger.info(f"Timer '{name}' stopped after {format_clock(seconds)}")
        result = {
            "action": "stopped",
            "seconds": seconds,
            "today": today_value,
            "total": self.state.stats.get(name, 0),
            "timer": self.timer_view(name),
        }
        result.update(await self.save())
        return result

    def _refresh_timer(self, name: str) -> None:
        timer = self.timers.get(name)
        if timer is not None:
            timer.refresh(self.clock())

    def _schedule_timer_tick(self, name: str) -> None:
        self._cancel_timer_tick(name)
        self._timer_ticks[name] = self.scheduler.schedule(
            self.tick_interval_ms, lambda: self._refresh_timer(name), name=f"timer_{name}"
        )

    def _cancel_timer_tick(self, name: str) -> None:
        self.scheduler.cancel(self._timer_ticks.pop(name, None))

    # ---- Counters ----

    async def add_reps(self, name: str, reps: int = DEFAULT_REPS) -> dict:
        cfg = self.state.activities.get(name)
        if cfg is None or cfg.kind != ActivityKind.COUNT:
            # reps only go to count activities; timed ones log seconds
            raise UnknownActivity(name)
        now = self.clock()
        today_value = self.log.record(name, reps, now)
        logger.info(f"Logged {reps} {name}")
        result = {
            "name": name,
            "added": reps,
            "today": today_value,
            "total": self.state.stats.get(name, 0),
        }
        result.update(await self.save())
        return result

    # ---- Reminder ----

    async def set_reminder(self, active: Optional[bool] = None, period_seconds: Optional[int] = None) -> dict:
        now = self.clock()
        if period_seconds is not None:
            self.countdown.set_period(period_seconds, now)
        if active is True and not self.countdown.active:
            self.countdown.activate(now)
            self._schedule_reminder_tick()
        elif active is False and self.countdown.active:
            # stop the tick first so nothing fires after the user turned it off
            self._cancel_reminder_tick()
            self.countdown.deactivate()
        result = {"reminder": self.reminder_view()}
        result.update(await self.save())
        return result

    async def toggle_reminder(self) -> dict:
        return await self.set_reminder(active=not self.countdown.active)

    async def _tick_reminder(self) -> None:
        now = self.clock()
        if self.countdown.tick(now):
            self._fire_reminder(now)

    def _fire_reminder(self, now_ms: int) -> None:
        event = {"title": REMINDER_TITLE, "message": REMINDER_MESSAGE, "firedAt": _iso(now_ms)}
        self.reminders.append(event)
        logger.info(f"{REMINDER_TITLE}: {REMINDER_MESSAGE}")
        if self.notifier is not None:
            loop = asyncio.get_running_loop()
            future = loop.run_in_executor(None, self.notifier.send, REMINDER_MESSAGE, {"title": REMINDER_TITLE})
            future.add_done_callback(_log_notify_result)

    def _schedule_reminder_tick(self) -> None:
        self._cancel_reminder_tick()
        self._reminder_tick = self.scheduler.schedule(
            self.tick_interval_ms, self._tick_reminder, name="reminder"
        )

    def _cancel_reminder_tick(self) -> None:
        self.scheduler.cancel(self._reminder_tick)
        self._reminder_tick = None

    # ---- External merge ----

    async def sync_external(self) -> dict:
        """Pull the merge source and reconcile it into the daily log.

        A failed fetch raises RemoteFetchFailed before any state is touched.
        """
        if self.merge_source is None:
            raise PersistenceUnavailable("Merge source not configured (set PULSE_MERGE_URL)")
        loop = asyncio.get_running_loop()
        counts = await loop.run_in_executor(None, self.merge_source.fetch)

        name = self.merge_activity
        merged = self.log.merge_external(name, counts)
        if name not in self.state.activities:
            self.state.activities[name] = ActivityConfig(label=name.capitalize(), kind=guess_kind(name))
        result = {
            "success": True,
            "merged": merged,
            "activity": name,
            "total": self.state.stats.get(name, 0),
        }
        result.update(await self.save())
        return result

    # ---- Views ----

    def timer_view(self, name: str) -> dict:
        timer = self._timer(name)
        elapsed = timer.current_elapsed(self.clock())
        return {
            "name": name,
            "label": self.state.label(name),
            "running": timer.running,
            "elapsed": elapsed,
            "display": format_clock(elapsed),
            "startedAtEpochMillis": timer.started_at_ms,
        }

    def reminder_view(self) -> dict:
        remaining = self.countdown.remaining(self.clock()) if self.countdown.active else self.countdown.period_seconds
        remaining = max(0, remaining)
        return {
            "active": self.countdown.active,
            "periodSeconds": self.countdown.period_seconds,
            "remaining": remaining,
            "display": format_countdown(remaining),
            "recent": list(self.reminders),
        }

    def stats_view(self) -> dict:
        view = {}
        for name, total in self.state.stats.items():
            cfg = self.state.activities.get(name)
            timed = cfg is not None and cfg.kind == ActivityKind.TIMED
            view[name] = {
                "label": self.state.label(name),
                "total": total,
                "display": format_hours(total) if timed else f"{total:,}",
            }
        return view

    def today_view(self) -> dict:
        key = today_key(self.clock())
        return {"date": key, "entry": self.log.entry(key)}

    def status_view(self) -> dict:
        error = self.storage_error
        return {
            "storage": self.store.name,
            "storageError": error.reason if error else None,
            "needsConfiguration": isinstance(error, PersistenceUnavailable),
            "mergeConfigured": self.merge_source is not None,
            "lastSavedAt": self.last_saved_at,
            "runningTimers": [name for name, timer in self.timers.items() if timer.running],
        }

    # ---- Lifecycle ----

    def _cancel_all_ticks(self) -> None:
        for name in list(self._timer_ticks):
            self._cancel_timer_tick(name)
        self._cancel_reminder_tick()

    def shutdown(self) -> None:
        self._cancel_all_ticks()
