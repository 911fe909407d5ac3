"""taskkit — timeout, retry, completion hooks and cron scheduling for async tasks."""

from taskkit.task import (
    CancellationError,
    Context,
    ScheduleParseError,
    TaskChain,
    TaskError,
    TaskTimeoutError,
    new_chain,
)

__all__ = [
    "CancellationError",
    "Context",
    "ScheduleParseError",
    "TaskChain",
    "TaskError",
    "TaskTimeoutError",
    "new_chain",
]
