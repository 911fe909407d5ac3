"""Context — cooperative cancellation and deadlines for tasks.

A context is passed to every task run. It can be cancelled explicitly or by a
deadline; cancellation flows from parent to children, never upwards. Tasks
observe it with ``done()``, ``wait()`` or ``sleep()``; nothing is ever
interrupted forcibly.
"""

from __future__ import annotations

import asyncio
import weakref
from datetime import timedelta

from taskkit.task.errors import CancellationError, TaskKitError, TaskTimeoutError

_Cause = tuple[type[TaskKitError], str]

_CANCELLED: _Cause = (CancellationError, "context cancelled")
_DEADLINE_EXCEEDED: _Cause = (TaskTimeoutError, "context deadline exceeded")


def to_seconds(value: float | timedelta) -> float:
    """Normalise a duration given as seconds or ``timedelta`` to float seconds."""
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


class Context:
    """Cancellation signal shared by a task run and everything it spawns.

    Use ``Context.background()`` for a root context and derive children with
    ``with_cancel()`` / ``with_timeout()``. Deadlines are expressed on the
    running event loop's clock.
    """

    def __init__(self, parent: Context | None = None, deadline: float | None = None) -> None:
        self._parent = parent
        self._event = asyncio.Event()
        self._cause: _Cause | None = None
        self._children: weakref.WeakSet[Context] = weakref.WeakSet()
        self._timer: asyncio.TimerHandle | None = None

        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline

        if parent is not None:
            if parent._cause is not None:
                self._set_cause(parent._cause)
            else:
                parent._children.add(self)

    @classmethod
    def background(cls) -> Context:
        """Return a fresh root context that is never cancelled on its own."""
        return cls()

    # -- Derivation ------------------------------------------------------------

    def with_cancel(self) -> Context:
        """Return a child context cancelled with this one or via ``cancel()``."""
        return Context(self)

    def with_timeout(self, timeout: float | timedelta) -> Context:
        """Return a child context that expires after *timeout*.

        Must be called from a running event loop.
        """
        seconds = to_seconds(timeout)
        loop = asyncio.get_running_loop()
        own_deadline = loop.time() + seconds
        child = Context(self, own_deadline)
        if child.done():
            return child
        if seconds <= 0:
            child._expire()
        elif child._deadline == own_deadline:
            # A parent deadline that is earlier reaches the child by propagation.
            child._timer = loop.call_later(seconds, child._expire)
        return child

    # -- State -----------------------------------------------------------------

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - asyncio.get_running_loop().time())

    def done(self) -> bool:
        return self._cause is not None

    def err(self) -> TaskKitError | None:
        """Return a new exception describing why the context ended, or None."""
        if self._cause is None:
            return None
        error_cls, message = self._cause
        return error_cls(message)

    def cancel(self) -> None:
        """Cancel this context and its descendants. Idempotent."""
        self._set_cause(_CANCELLED)

    # -- Waiting ---------------------------------------------------------------

    async def wait(self) -> None:
        """Suspend until the context is cancelled or expires."""
        await self._event.wait()

    async def sleep(self, delay: float | timedelta) -> bool:
        """Sleep for *delay*, waking early on cancellation.

        Returns True if the context ended before the delay elapsed.
        """
        seconds = to_seconds(delay)
        if self.done():
            return True
        if seconds <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    # -- Internal --------------------------------------------------------------

    def _expire(self) -> None:
        self._timer = None
        self._set_cause(_DEADLINE_EXCEEDED)

    def _set_cause(self, cause: _Cause) -> None:
        if self._cause is not None:
            return
        self._cause = cause
        self._event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for child in list(self._children):
            child._set_cause(cause)
        self._children.clear()
        if self._parent is not None:
            self._parent._children.discard(self)

    def __repr__(self) -> str:
        state = "active" if self._cause is None else self._cause[1]
        return f"<Context {state} deadline={self._deadline}>"
