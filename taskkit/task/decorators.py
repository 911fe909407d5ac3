"""Task decorators — timeout, retry and completion notification.

Each decorator wraps an inner Task and is itself a Task. They are immutable
once built and never run the inner task until their own ``run`` is called.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from taskkit.task.backoff import no_backoff, retry_always
from taskkit.task.context import to_seconds

if TYPE_CHECKING:
    from collections.abc import Callable

    from taskkit.task.base import Task
    from taskkit.task.context import Context

# Inner runs that lost a timeout race; referenced until they finish.
_detached: set[asyncio.Future] = set()


class TimeoutTask:
    """Bounds how long the caller waits for *inner*.

    The inner task runs in the background against a child context with the
    given deadline. When the deadline (or the caller's cancellation) wins the
    race, ``run`` raises straight away but the inner task is NOT cancelled: it
    keeps running until it returns on its own and its outcome is discarded.
    Cancellation is cooperative; this decorator only stops waiting.
    """

    def __init__(
        self,
        inner: Task,
        timeout: float | timedelta,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        seconds = to_seconds(timeout)
        if seconds <= 0:
            msg = f"timeout must be positive, got {seconds}"
            raise ValueError(msg)
        self._inner = inner
        self._timeout = seconds
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    @property
    def inner(self) -> Task:
        return self._inner

    @property
    def timeout(self) -> float:
        return self._timeout

    async def run(self, ctx: Context) -> None:
        child = ctx.with_timeout(self._timeout)
        if child.done():
            raise child.err()

        inner_run = asyncio.ensure_future(self._inner.run(child))
        expired = asyncio.ensure_future(child.wait())
        try:
            await asyncio.wait({inner_run, expired}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            child.cancel()
            self._detach(inner_run)
            raise
        finally:
            expired.cancel()

        if inner_run.done():
            child.cancel()
            inner_run.result()
            return

        self._detach(inner_run)
        error = child.err()
        self._logger.debug("Stopped waiting for %r after %.3fs: %s", self._inner, self._timeout, error)
        raise error

    def _detach(self, future: asyncio.Future) -> None:
        _detached.add(future)
        future.add_done_callback(self._discard)

    def _discard(self, future: asyncio.Future) -> None:
        _detached.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self._logger.debug("Discarded late failure from %r: %r", self._inner, exc)
        else:
            self._logger.debug("Discarded late success from %r", self._inner)

    def __repr__(self) -> str:
        return f"TimeoutTask({self._inner!r}, {self._timeout}s)"


@dataclass(frozen=True)
class RetryPolicy:
    """How often and when a failed task is tried again.

    Attributes:
        max_attempts: Total number of attempts, at least 1.
        backoff: Maps the 0-based index of the failed attempt to the delay
            (seconds or ``timedelta``) before the next one.
        should_retry: Returns True when a failure is worth another attempt.
    """

    max_attempts: int
    backoff: Callable[[int], float | timedelta] = field(default=no_backoff)
    should_retry: Callable[[BaseException], bool] = field(default=retry_always)

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            msg = f"max_attempts must be an int, got {type(self.max_attempts).__name__}"
            raise TypeError(msg)
        if self.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(msg)

    def delay(self, attempt: int) -> float:
        return max(0.0, to_seconds(self.backoff(attempt)))


class RetryTask:
    """Runs *inner* up to ``policy.max_attempts`` times, strictly sequentially.

    A cancelled context is checked before every attempt and stops the loop
    without invoking the task. The backoff sleep wakes early on cancellation.
    Once attempts are exhausted the last failure is re-raised unchanged.
    """

    def __init__(
        self,
        inner: Task,
        policy: RetryPolicy,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._inner = inner
        self._policy = policy
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    @property
    def inner(self) -> Task:
        return self._inner

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(self, ctx: Context) -> None:
        last_error: Exception | None = None
        max_attempts = self._policy.max_attempts

        for attempt in range(max_attempts):
            if ctx.done():
                raise ctx.err()

            try:
                await self._inner.run(ctx)
                return
            except Exception as exc:
                if not self._policy.should_retry(exc):
                    raise
                last_error = exc

            if attempt + 1 < max_attempts:
                delay = self._policy.delay(attempt)
                self._logger.info(
                    "Attempt %d/%d of %r failed (%s), retrying in %.3fs",
                    attempt + 1,
                    max_attempts,
                    self._inner,
                    last_error,
                    delay,
                )
                await ctx.sleep(delay)

        self._logger.warning("All %d attempt(s) of %r failed", max_attempts, self._inner)
        raise last_error

    def __repr__(self) -> str:
        return f"RetryTask({self._inner!r}, max_attempts={self._policy.max_attempts})"


@dataclass(frozen=True)
class CompletionHooks:
    """Callbacks invoked after each run. Missing hooks are no-ops.

    A hook may return an awaitable, which is awaited before ``run`` returns.
    """

    on_success: Callable[[], Any] | None = None
    on_failure: Callable[[Exception], Any] | None = None


class CompletionTask:
    """Notifies *hooks* of every outcome of *inner* without altering it.

    Exactly one hook fires per run, on the caller's path. An exception raised
    by a hook is logged and suppressed so the task's own outcome still
    propagates.
    """

    def __init__(
        self,
        inner: Task,
        hooks: CompletionHooks,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._inner = inner
        self._hooks = hooks
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    @property
    def inner(self) -> Task:
        return self._inner

    @property
    def hooks(self) -> CompletionHooks:
        return self._hooks

    async def run(self, ctx: Context) -> None:
        try:
            await self._inner.run(ctx)
        except Exception as exc:
            await self._notify(self._hooks.on_failure, exc)
            raise
        await self._notify(self._hooks.on_success)

    async def _notify(self, hook: Callable[..., Any] | None, *args: Any) -> None:
        if hook is None:
            return
        try:
            result = hook(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._logger.exception("Completion hook %r failed for %r", hook, self._inner)

    def __repr__(self) -> str:
        return f"CompletionTask({self._inner!r})"
