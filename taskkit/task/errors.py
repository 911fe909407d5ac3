"""Exception hierarchy for task execution and scheduling."""

from __future__ import annotations


class TaskKitError(Exception):
    """Base class for errors raised by taskkit itself."""


class CancellationError(TaskKitError):
    """The caller's context was cancelled."""


class TaskTimeoutError(TaskKitError, TimeoutError):
    """A deadline elapsed before the task completed."""


class TaskError(TaskKitError):
    """Convenience base for failures raised by task implementations.

    Decorators never require it: any ``Exception`` raised by a task is
    propagated unchanged.
    """


class ScheduleParseError(TaskKitError, ValueError):
    """A periodic schedule expression could not be parsed.

    Attributes:
        expression: The rejected expression, verbatim.
        reason: Human-readable explanation.
    """

    def __init__(self, expression: str, reason: str) -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid schedule expression {expression!r}: {reason}")
