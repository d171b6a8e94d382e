"""Cancellable periodic ticks on top of APScheduler's AsyncIOScheduler."""

from __future__ import annotations

import inspect
import logging
import uuid
from typing import Awaitable, Callable, Union

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Union[None, Awaitable[None]]]


def as_coroutine(callback: TickCallback) -> Callable[[], Awaitable[None]]:
    """Wrap a plain callable so APScheduler runs it on the event loop.

    AsyncIOScheduler hands plain functions to a thread pool; coroutine
    functions run on the loop, which keeps all state mutation on one thread.
    """
    if inspect.iscoroutinefunction(callback):
        return callback

    async def _job():
        callback()

    return _job


class TickScheduler:
    """schedule(interval_ms, callback) -> handle; cancel(handle) is idempotent."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None):
        self.scheduler = scheduler or AsyncIOScheduler()
        self._handles: set[str] = set()

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("Tick scheduler started")

    def shutdown(self) -> None:
        self.cancel_all()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Tick scheduler stopped")

    def schedule(self, interval_ms: int, callback: TickCallback, name: str | None = None) -> str:
        if interval_ms <= 0:
            raise ValueError(f"Tick interval must be positive, got {interval_ms}")
        handle = f"tick_{name or 'job'}_{uuid.uuid4().hex[:8]}"
        self.scheduler.add_job(
            as_coroutine(callback),
            trigger=IntervalTrigger(seconds=interval_ms / 1000),
            id=handle,
            name=name or handle,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self._handles.add(handle)
        return handle

    def cancel(self, handle: str | None) -> None:
        if handle is None:
            return
        self._handles.discard(handle)
        try:
            self.scheduler.remove_job(handle)
        except JobLookupError:
            pass

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            self.cancel(handle)

    @property
    def active_handles(self) -> set[str]:
        return set(self._handles)
