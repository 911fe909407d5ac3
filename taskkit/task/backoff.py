"""Ready-made backoff functions and retry conditions for RetryPolicy."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from taskkit.task.context import to_seconds

if TYPE_CHECKING:
    from collections.abc import Callable


def no_backoff(attempt: int) -> float:
    return 0.0


def constant_backoff(delay: float | timedelta) -> Callable[[int], float]:
    """Wait the same *delay* before every retry."""
    seconds = to_seconds(delay)

    def backoff(attempt: int) -> float:
        return seconds

    return backoff


def linear_backoff(step: float | timedelta, start: float | timedelta = 0.0) -> Callable[[int], float]:
    """Wait ``start + step * attempt`` seconds."""
    step_s = to_seconds(step)
    start_s = to_seconds(start)

    def backoff(attempt: int) -> float:
        return start_s + step_s * attempt

    return backoff


def exponential_backoff(
    base: float | timedelta,
    factor: float = 2.0,
    maximum: float | timedelta | None = None,
) -> Callable[[int], float]:
    """Wait ``base * factor ** attempt`` seconds, capped at *maximum*."""
    base_s = to_seconds(base)
    cap = to_seconds(maximum) if maximum is not None else None

    def backoff(attempt: int) -> float:
        delay = base_s * factor**attempt
        return min(delay, cap) if cap is not None else delay

    return backoff


# -- Retry conditions ----------------------------------------------------------


def retry_always(exc: BaseException) -> bool:
    return True


def retry_never(exc: BaseException) -> bool:
    return False


def retry_on(*exception_types: type[BaseException]) -> Callable[[BaseException], bool]:
    """Retry only failures that are instances of *exception_types*."""
    if not exception_types:
        msg = "retry_on() needs at least one exception type"
        raise ValueError(msg)

    def condition(exc: BaseException) -> bool:
        return isinstance(exc, exception_types)

    return condition


def retry_if_message(text: str) -> Callable[[BaseException], bool]:
    """Retry only failures whose message equals *text*."""

    def condition(exc: BaseException) -> bool:
        return str(exc) == text

    return condition
