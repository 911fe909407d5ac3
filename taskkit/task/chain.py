"""TaskChain — immutable builder composing decorators around a task."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from taskkit.config import Settings
from taskkit.scheduler.engine import PeriodicScheduler
from taskkit.scheduler.triggers import interval_trigger, parse_schedule
from taskkit.task.base import as_task
from taskkit.task.context import Context
from taskkit.task.decorators import (
    CompletionHooks,
    CompletionTask,
    RetryPolicy,
    RetryTask,
    TimeoutTask,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import timedelta

    from apscheduler.triggers.base import BaseTrigger

    from taskkit.task.base import Task


class TaskChain:
    """A composed task plus an optional periodic scheduler handle.

    Every decorating method returns a new chain around the current task; the
    chain it was called on is left untouched and keeps working. The last
    decorator applied is the outermost: ``chain.timeout(1).retry(3)`` bounds
    each attempt separately, ``chain.retry(3).timeout(1)`` bounds all of them
    together.

    Args:
        task: The base unit, either a Task or an ``async def fn(ctx)``.
        settings: Source of the scheduler timezone; defaults to ``Settings()``.
        logger: Logger handed to every decorator and scheduler in the chain.
    """

    def __init__(
        self,
        task: Task | Callable[[Context], Awaitable[None]],
        *,
        settings: Settings | None = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._task = as_task(task)
        self._settings = settings if settings is not None else Settings()
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._scheduler: PeriodicScheduler | None = None
        self._scheduler_lock = asyncio.Lock()

    @property
    def task(self) -> Task:
        """The fully composed task."""
        return self._task

    @property
    def scheduler(self) -> PeriodicScheduler | None:
        """The active or last started periodic scheduler, if any."""
        return self._scheduler

    # -- Decorators ------------------------------------------------------------

    def timeout(self, timeout: float | timedelta) -> TaskChain:
        """Stop waiting for the current task after *timeout*."""
        return self._derive(TimeoutTask(self._task, timeout, logger=self._logger))

    def retry(
        self,
        max_attempts: int,
        backoff: Callable[[int], float | timedelta] | None = None,
        condition: Callable[[BaseException], bool] | None = None,
    ) -> TaskChain:
        """Retry the current task on failures accepted by *condition*."""
        kwargs: dict[str, Any] = {}
        if backoff is not None:
            kwargs["backoff"] = backoff
        if condition is not None:
            kwargs["should_retry"] = condition
        policy = RetryPolicy(max_attempts, **kwargs)
        return self._derive(RetryTask(self._task, policy, logger=self._logger))

    def with_completion(
        self,
        on_success: Callable[[], Any] | None = None,
        on_failure: Callable[[Exception], Any] | None = None,
    ) -> TaskChain:
        """Notify *on_success* / *on_failure* after each run of the current task."""
        hooks = CompletionHooks(on_success=on_success, on_failure=on_failure)
        return self._derive(CompletionTask(self._task, hooks, logger=self._logger))

    # -- Execution -------------------------------------------------------------

    async def run(self, ctx: Context | None = None) -> None:
        """Run the composed task once. Raises whatever it raises."""
        await self._task.run(ctx if ctx is not None else Context.background())

    async def run_with_cron(self, ctx: Context, expression: str) -> PeriodicScheduler:
        """Run the composed task on a cron *expression* until stopped.

        The expression is validated before anything starts; a bad one raises
        ScheduleParseError. Failures of individual runs are only logged, so
        attach ``with_completion`` hooks to observe them.
        """
        trigger = parse_schedule(expression, self._settings.scheduler_timezone)
        return await self._start_periodic(ctx, trigger, expression)

    async def run_every(self, ctx: Context, interval: float | timedelta) -> PeriodicScheduler:
        """Run the composed task every *interval* until stopped."""
        trigger = interval_trigger(interval, self._settings.scheduler_timezone)
        return await self._start_periodic(ctx, trigger, f"every {interval}")

    async def stop_cron(self) -> None:
        """Stop periodic execution. Safe to call repeatedly or before any start."""
        async with self._scheduler_lock:
            if self._scheduler is not None:
                await self._scheduler.stop()

    # -- Internal --------------------------------------------------------------

    def _derive(self, task: Task) -> TaskChain:
        return TaskChain(task, settings=self._settings, logger=self._logger)

    async def _start_periodic(self, ctx: Context, trigger: BaseTrigger, label: str) -> PeriodicScheduler:
        async with self._scheduler_lock:
            scheduler = PeriodicScheduler(
                self._task,
                trigger,
                timezone=self._settings.scheduler_timezone,
                logger=self._logger,
                name=f"{self._task!r} [{label}]",
            )
            # A replacement that fails to start leaves the running one alone.
            await scheduler.start(ctx)

            previous = self._scheduler
            if previous is not None and previous.running:
                self._logger.info("Replaced running schedule of %r with %s", self._task, label)
                await previous.stop()
            self._scheduler = scheduler
            return scheduler

    def __repr__(self) -> str:
        return f"TaskChain({self._task!r})"


def new_chain(
    task: Task | Callable[[Context], Awaitable[None]],
    *,
    settings: Settings | None = None,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> TaskChain:
    """Start a chain from a base task."""
    return TaskChain(task, settings=settings, logger=logger)
