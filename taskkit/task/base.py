"""Task protocol — the unit of work every decorator wraps."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from taskkit.task.context import Context


@runtime_checkable
class Task(Protocol):
    """A cancellable, fallible unit of work.

    ``run`` returns None on success and raises on failure. Implementations
    should honour *ctx* cooperatively; nothing stops them forcibly.
    """

    async def run(self, ctx: Context) -> None: ...


class FuncTask:
    """Adapts an ``async def func(ctx)`` callable to the Task protocol."""

    def __init__(self, func: Callable[[Context], Awaitable[None]]) -> None:
        if not callable(func):
            msg = f"Task function must be callable, got {type(func).__name__}"
            raise TypeError(msg)
        self._func = func

    @property
    def func(self) -> Callable[[Context], Awaitable[None]]:
        return self._func

    async def run(self, ctx: Context) -> None:
        await self._func(ctx)

    def __repr__(self) -> str:
        name = getattr(self._func, "__qualname__", repr(self._func))
        return f"FuncTask({name})"


def as_task(unit: Task | Callable[[Context], Awaitable[None]]) -> Task:
    """Return *unit* unchanged if it is a Task, otherwise wrap it in FuncTask."""
    if isinstance(unit, Task):
        return unit
    return FuncTask(unit)
