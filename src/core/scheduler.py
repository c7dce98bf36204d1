"""Deferred job scheduler for weekly template reapplication."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Hashable

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[None]]


@dataclass
class ScheduledJob:
    """One deferred run. The key identifies it; scheduling the same key again replaces it."""

    key: Hashable
    run_at: datetime
    func: JobFunc

    def is_due(self, now: datetime) -> bool:
        return self.run_at <= now


class TemplateScheduler:
    """Holds keyed deferred jobs and runs them once their time has come.

    A background task wakes every ``poll_seconds`` and runs due jobs in
    ``run_at`` order. A job that wants to repeat schedules its successor.
    """

    def __init__(self, poll_seconds: int = 60) -> None:
        self.poll_seconds = poll_seconds
        self._jobs: dict[Hashable, ScheduledJob] = {}
        self._lock = Lock()
        self._task: asyncio.Task | None = None

    def schedule(self, key: Hashable, run_at: datetime, func: JobFunc) -> ScheduledJob:
        job = ScheduledJob(key=key, run_at=run_at, func=func)
        with self._lock:
            self._jobs[key] = job
        logger.debug("Scheduled job %s at %s", key, run_at.isoformat())
        return job

    def cancel(self, key: Hashable) -> bool:
        with self._lock:
            return self._jobs.pop(key, None) is not None

    def cancel_where(self, predicate: Callable[[Hashable], bool]) -> int:
        with self._lock:
            keys = [key for key in self._jobs if predicate(key)]
            for key in keys:
                del self._jobs[key]
        return len(keys)

    def get(self, key: Hashable) -> ScheduledJob | None:
        with self._lock:
            return self._jobs.get(key)

    def jobs(self) -> list[ScheduledJob]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: job.run_at)

    async def run_due(self, now: datetime | None = None) -> int:
        """Run every job whose time has come. Returns how many ran."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            due = sorted((job for job in self._jobs.values() if job.is_due(now)), key=lambda job: job.run_at)
            for job in due:
                del self._jobs[job.key]

        for job in due:
            try:
                await job.func()
            except Exception:
                logger.exception("Scheduled job %s failed", job.key)
        return len(due)

    async def start(self) -> None:
        """Start the polling task."""
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info("Template scheduler started")

    async def stop(self) -> None:
        """Stop the polling task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Template scheduler stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_seconds)
            ran = await self.run_due()
            if ran:
                logger.info("Template scheduler ran %d jobs", ran)


# Global singleton instance
_scheduler: TemplateScheduler | None = None


def get_template_scheduler() -> TemplateScheduler:
    """Get or create the global template scheduler."""
    global _scheduler
    if _scheduler is None:
        from src.core.config import get_settings

        _scheduler = TemplateScheduler(get_settings().template_scheduler_poll_seconds)
    return _scheduler


async def init_template_scheduler() -> TemplateScheduler:
    """Start the scheduler. Call at app startup."""
    scheduler = get_template_scheduler()
    await scheduler.start()
    return scheduler


async def shutdown_template_scheduler() -> None:
    """Stop the scheduler. Call at app shutdown."""
    if _scheduler:
        await _scheduler.stop()
