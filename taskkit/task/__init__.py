"""Task composition — context, decorators and the chain builder."""

from taskkit.task.backoff import (
    constant_backoff,
    exponential_backoff,
    linear_backoff,
    retry_always,
    retry_if_message,
    retry_never,
    retry_on,
)
from taskkit.task.base import FuncTask, Task, as_task
from taskkit.task.chain import TaskChain, new_chain
from taskkit.task.context import Context
from taskkit.task.decorators import (
    CompletionHooks,
    CompletionTask,
    RetryPolicy,
    RetryTask,
    TimeoutTask,
)
from taskkit.task.errors import (
    CancellationError,
    ScheduleParseError,
    TaskError,
    TaskKitError,
    TaskTimeoutError,
)

__all__ = [
    "CancellationError",
    "CompletionHooks",
    "CompletionTask",
    "Context",
    "FuncTask",
    "RetryPolicy",
    "RetryTask",
    "ScheduleParseError",
    "Task",
    "TaskChain",
    "TaskError",
    "TaskKitError",
    "TaskTimeoutError",
    "TimeoutTask",
    "as_task",
    "constant_backoff",
    "exponential_backoff",
    "linear_backoff",
    "new_chain",
    "retry_always",
    "retry_if_message",
    "retry_never",
    "retry_on",
]
