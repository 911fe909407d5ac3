"""PeriodicScheduler — APScheduler lifecycle for one recurring task."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler

if TYPE_CHECKING:
    from datetime import datetime

    from apscheduler.triggers.base import BaseTrigger

    from taskkit.task.base import Task
    from taskkit.task.context import Context

_JOB_ID = "periodic"


class SchedulerState(enum.Enum):
    UNSTARTED = "unstarted"
    RUNNING = "running"
    STOPPED = "stopped"


class PeriodicScheduler:
    """Invokes a task on every trigger fire until stopped.

    Ticks are fire-and-forget: each run gets its own asyncio task and a tick
    never waits for, skips or queues behind a previous run that is still in
    flight, so runs may overlap. Failures of individual runs are logged and
    otherwise dropped.

    The scheduler stops itself when the context given to ``start`` is
    cancelled. ``stop`` is idempotent and STOPPED is terminal.

    Args:
        task: The fully composed task to run on each tick.
        trigger: APScheduler trigger deciding when ticks happen.
        timezone: IANA timezone for the underlying scheduler.
        logger: Optional logger; defaults to this module's logger.
        name: Label used in log messages.
    """

    def __init__(
        self,
        task: Task,
        trigger: BaseTrigger,
        *,
        timezone: str = "UTC",
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        name: str | None = None,
    ) -> None:
        self._task = task
        self._trigger = trigger
        self._timezone = timezone
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._name = name or repr(task)
        self._scheduler: AsyncIOScheduler | None = None
        self._state = SchedulerState.UNSTARTED
        self._watcher: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def in_flight(self) -> int:
        """Number of runs started by ticks that have not finished yet."""
        return len(self._in_flight)

    @property
    def next_run_time(self) -> datetime | None:
        """When the next tick is due, or None if not running."""
        if not self.running:
            return None
        job = self._scheduler.get_job(_JOB_ID) if self._scheduler else None
        return job.next_run_time if job else None

    # -- Lifecycle -------------------------------------------------------------

    async def start(self, ctx: Context) -> None:
        """Register the job, start ticking and watch *ctx* for cancellation."""
        if self._state is not SchedulerState.UNSTARTED:
            msg = f"Scheduler for {self._name} cannot start from state {self._state.value}"
            raise RuntimeError(msg)
        if ctx.done():
            raise ctx.err()

        # Built here so APScheduler binds to the running loop.
        self._scheduler = AsyncIOScheduler(timezone=self._timezone)
        self._scheduler.add_job(
            self._tick,
            trigger=self._trigger,
            id=_JOB_ID,
            name=self._name,
            args=[ctx],
            coalesce=False,
            misfire_grace_time=None,
        )
        self._scheduler.start()
        self._state = SchedulerState.RUNNING
        self._watcher = asyncio.create_task(self._watch(ctx))
        self._logger.info("Periodic scheduler started for %s (tz=%s)", self._name, self._timezone)

    async def stop(self) -> None:
        """Shut down the trigger loop. In-flight runs are left to finish."""
        if self._state is SchedulerState.STOPPED:
            return
        was_running = self._state is SchedulerState.RUNNING
        self._state = SchedulerState.STOPPED

        watcher, self._watcher = self._watcher, None
        if watcher is not None and watcher is not asyncio.current_task():
            watcher.cancel()

        if was_running and self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._logger.info("Periodic scheduler stopped for %s", self._name)

    # -- Internal --------------------------------------------------------------

    async def _tick(self, ctx: Context) -> None:
        """Callback invoked by APScheduler on each trigger fire.

        The run gets its own asyncio task so that shutting APScheduler down
        never cancels it.
        """
        run = asyncio.create_task(self._task.run(ctx))
        self._in_flight.add(run)
        run.add_done_callback(self._finished)

    def _finished(self, run: asyncio.Task) -> None:
        self._in_flight.discard(run)
        if run.cancelled():
            return
        exc = run.exception()
        if exc is not None:
            self._logger.error(
                "Periodic run of %s failed: %s", self._name, exc, exc_info=exc
            )

    async def _watch(self, ctx: Context) -> None:
        await ctx.wait()
        self._logger.info("Context ended (%s), stopping scheduler for %s", ctx.err(), self._name)
        await self.stop()
