"""Periodic in-process worker for aiohttp services.

Usage::

    from webhook_common.worker import BackgroundWorker, WorkerTask

    async def purge_old_rows(now: datetime) -> str | None:
        deleted = await repo.delete_older_than(now - timedelta(days=30))
        return f"deleted={deleted}" if deleted else None

    worker = BackgroundWorker(
        name="maintenance",
        interval_seconds=60.0,
        tasks=[WorkerTask(name="purge_old_rows", fn=purge_old_rows)],
    )

    app.on_startup.append(worker.start)
    app.on_cleanup.append(worker.stop)
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

import structlog
from aiohttp import web

logger = structlog.get_logger(__name__)

# A task receives the sweep time (UTC) and may return a short summary that
# gets logged when non-empty.
TaskFn = Callable[[datetime], Awaitable[str | None]]


@dataclass
class WorkerTask:
    """A named periodic task executed by :class:`BackgroundWorker`."""

    name: str
    fn: TaskFn


@dataclass
class BackgroundWorker:
    """Runs its tasks one after another on every sweep.

    A failing task is logged and does not prevent the remaining tasks from
    running. Several workers can share one application: each stores its
    asyncio task under an app key derived from ``name``.
    """

    name: str = "background_worker"
    interval_seconds: float = 60.0
    tasks: Sequence[WorkerTask] = field(default_factory=list)
    run_on_start: bool = False

    @property
    def app_key(self) -> str:
        return f"__worker_{self.name}__"

    async def start(self, app: web.Application) -> None:
        """Register with ``app.on_startup``."""
        app[self.app_key] = asyncio.create_task(self._loop())

    async def stop(self, app: web.Application) -> None:
        """Register with ``app.on_cleanup``."""
        task = app.get(self.app_key)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run_once(self, now: datetime | None = None) -> dict[str, str | None]:
        """Execute every task once and return their summaries keyed by task name."""
        now = now or datetime.now(timezone.utc)
        summaries: dict[str, str | None] = {}
        for task in self.tasks:
            try:
                summary = await task.fn(now)
            except Exception:
                logger.exception("background_task failed", worker=self.name, task=task.name)
                summaries[task.name] = None
                continue
            summaries[task.name] = summary
            if summary:
                logger.info(
                    "background_task completed",
                    worker=self.name,
                    task=task.name,
                    summary=summary,
                )
        return summaries

    async def _loop(self) -> None:
        logger.info(
            "background_worker started",
            worker=self.name,
            interval_seconds=self.interval_seconds,
            tasks=[t.name for t in self.tasks],
        )
        first = True
        while True:
            try:
                if not (first and self.run_on_start):
                    await asyncio.sleep(self.interval_seconds)
                first = False
                await self.run_once()
            except asyncio.CancelledError:
                logger.info("background_worker stopped", worker=self.name)
                raise
            except Exception:
                logger.exception("background_worker sweep failed", worker=self.name)
