"""Tests for TimeoutTask, RetryTask and CompletionTask."""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskkit.task.backoff import constant_backoff, retry_on
from taskkit.task.base import FuncTask
from taskkit.task.context import Context
from taskkit.task.decorators import (
    CompletionHooks,
    CompletionTask,
    RetryPolicy,
    RetryTask,
    TimeoutTask,
)
from taskkit.task.errors import CancellationError, TaskTimeoutError


def _elapsed_since(start: float) -> float:
    return asyncio.get_running_loop().time() - start


# -- TimeoutTask ---------------------------------------------------------------


async def test_timeout_returns_result_of_fast_task(make_task, ctx: Context) -> None:
    inner = make_task(delay=0.01)
    await TimeoutTask(inner, 0.5).run(ctx)
    assert inner.finished == 1


async def test_timeout_raises_when_deadline_wins(make_task, ctx: Context) -> None:
    inner = make_task(delay=0.3)
    start = asyncio.get_running_loop().time()

    with pytest.raises(TaskTimeoutError):
        await TimeoutTask(inner, 0.05).run(ctx)

    assert _elapsed_since(start) < 0.2


async def test_timeout_error_is_builtin_timeout_error(make_task, ctx: Context) -> None:
    with pytest.raises(TimeoutError):
        await TimeoutTask(make_task(delay=0.3), 0.02).run(ctx)


async def test_timeout_does_not_stop_inner_task(make_task, ctx: Context) -> None:
    inner = make_task(delay=0.1, errors=[RuntimeError("late")])

    with pytest.raises(TaskTimeoutError):
        await TimeoutTask(inner, 0.02).run(ctx)
    assert inner.finished == 0

    await asyncio.sleep(0.2)
    assert inner.finished == 1


async def test_timeout_inner_sees_expired_context(ctx: Context) -> None:
    seen: list[BaseException | None] = []

    async def waits_for_deadline(inner_ctx: Context) -> None:
        await inner_ctx.wait()
        seen.append(inner_ctx.err())

    with pytest.raises(TaskTimeoutError):
        await TimeoutTask(FuncTask(waits_for_deadline), 0.02).run(ctx)
    await asyncio.sleep(0.01)

    assert len(seen) == 1
    assert isinstance(seen[0], TaskTimeoutError)
    assert ctx.done() is False


async def test_timeout_propagates_inner_error_unchanged(make_task, ctx: Context) -> None:
    error = ValueError("boom")
    with pytest.raises(ValueError) as excinfo:
        await TimeoutTask(make_task(errors=[error]), 1).run(ctx)
    assert excinfo.value is error


async def test_timeout_reports_outer_cancellation(make_task) -> None:
    ctx = Context.background()
    asyncio.get_running_loop().call_later(0.02, ctx.cancel)

    with pytest.raises(CancellationError):
        await TimeoutTask(make_task(delay=0.3), 1).run(ctx)


async def test_timeout_on_cancelled_context_fails_fast(make_task) -> None:
    ctx = Context.background()
    ctx.cancel()
    inner = make_task()

    with pytest.raises(CancellationError):
        await TimeoutTask(inner, 1).run(ctx)

    assert inner.calls == 0


@pytest.mark.parametrize("value", [0, -1])
def test_timeout_must_be_positive(make_task, value: float) -> None:
    with pytest.raises(ValueError, match="positive"):
        TimeoutTask(make_task(), value)


# -- RetryPolicy ---------------------------------------------------------------


def test_policy_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError, match="at least 1"):
        RetryPolicy(0)


def test_policy_rejects_non_int() -> None:
    with pytest.raises(TypeError):
        RetryPolicy(True)


def test_policy_delay_clamps_negative() -> None:
    policy = RetryPolicy(3, backoff=lambda attempt: -1)
    assert policy.delay(0) == 0.0


# -- RetryTask -----------------------------------------------------------------


async def test_retry_runs_max_attempts_and_raises_last_error(make_task, ctx: Context) -> None:
    errors = [RuntimeError(f"fail {n}") for n in range(1, 4)]
    inner = make_task(errors=list(errors))

    with pytest.raises(RuntimeError) as excinfo:
        await RetryTask(inner, RetryPolicy(3)).run(ctx)

    assert inner.calls == 3
    assert excinfo.value is errors[-1]


async def test_retry_stops_when_condition_rejects(make_task, ctx: Context) -> None:
    inner = make_task(errors=[KeyError("a"), ValueError("b"), KeyError("c")])
    policy = RetryPolicy(5, should_retry=retry_on(KeyError))

    with pytest.raises(ValueError, match="b"):
        await RetryTask(inner, policy).run(ctx)

    assert inner.calls == 2


async def test_retry_returns_after_success(make_task, ctx: Context) -> None:
    inner = make_task(errors=[RuntimeError("once")])
    await RetryTask(inner, RetryPolicy(5)).run(ctx)
    assert inner.calls == 2


async def test_retry_never_invokes_task_on_cancelled_context(make_task) -> None:
    ctx = Context.background()
    ctx.cancel()
    inner = make_task()

    with pytest.raises(CancellationError):
        await RetryTask(inner, RetryPolicy(3)).run(ctx)

    assert inner.calls == 0


async def test_retry_backoff_is_interrupted_by_cancel(make_task) -> None:
    ctx = Context.background()
    loop = asyncio.get_running_loop()
    loop.call_later(0.05, ctx.cancel)
    inner = make_task(errors=[RuntimeError("x")] * 3)
    start = loop.time()

    with pytest.raises(CancellationError):
        await RetryTask(inner, RetryPolicy(3, backoff=constant_backoff(10))).run(ctx)

    assert inner.calls == 1
    assert _elapsed_since(start) < 1


async def test_retry_backoff_receives_attempt_index(make_task, ctx: Context) -> None:
    backoff = MagicMock(return_value=0)
    inner = make_task(errors=[RuntimeError("x")] * 3)

    with pytest.raises(RuntimeError):
        await RetryTask(inner, RetryPolicy(3, backoff=backoff)).run(ctx)

    # No sleep after the final attempt.
    assert [c.args[0] for c in backoff.call_args_list] == [0, 1]


async def test_retry_around_timeout_bounds_each_attempt(make_task, ctx: Context) -> None:
    inner = make_task(delay=0.3)
    task = RetryTask(TimeoutTask(inner, 0.03), RetryPolicy(3))
    start = asyncio.get_running_loop().time()

    with pytest.raises(TaskTimeoutError):
        await task.run(ctx)

    assert inner.calls == 3
    assert _elapsed_since(start) < 0.3


async def test_retry_logs_attempts(make_task, ctx: Context, caplog: pytest.LogCaptureFixture) -> None:
    inner = make_task(errors=[RuntimeError("x")] * 2)
    with caplog.at_level(logging.INFO, logger="taskkit.task.decorators"):
        with pytest.raises(RuntimeError):
            await RetryTask(inner, RetryPolicy(2)).run(ctx)
    assert "Attempt 1/2" in caplog.text
    assert "All 2 attempt(s)" in caplog.text


# -- CompletionTask ------------------------------------------------------------


async def test_completion_success_calls_only_success_hook(make_task, ctx: Context) -> None:
    on_success = MagicMock()
    on_failure = MagicMock()
    task = CompletionTask(make_task(), CompletionHooks(on_success, on_failure))

    await task.run(ctx)

    on_success.assert_called_once_with()
    on_failure.assert_not_called()


async def test_completion_failure_calls_failure_hook(make_task, ctx: Context) -> None:
    error = RuntimeError("bad")
    on_success = MagicMock()
    on_failure = MagicMock()
    task = CompletionTask(make_task(errors=[error]), CompletionHooks(on_success, on_failure))

    with pytest.raises(RuntimeError) as excinfo:
        await task.run(ctx)

    assert excinfo.value is error
    on_failure.assert_called_once_with(error)
    on_success.assert_not_called()


async def test_completion_without_hooks(make_task, ctx: Context) -> None:
    await CompletionTask(make_task(), CompletionHooks()).run(ctx)
    with pytest.raises(RuntimeError):
        await CompletionTask(make_task(errors=[RuntimeError()]), CompletionHooks()).run(ctx)


async def test_completion_awaits_async_hooks(make_task, ctx: Context) -> None:
    on_success = AsyncMock()
    await CompletionTask(make_task(), CompletionHooks(on_success=on_success)).run(ctx)
    on_success.assert_awaited_once()


async def test_completion_hook_failure_is_isolated(
    make_task, ctx: Context, caplog: pytest.LogCaptureFixture
) -> None:
    on_success = MagicMock(side_effect=RuntimeError("hook broke"))

    with caplog.at_level(logging.ERROR, logger="taskkit.task.decorators"):
        await CompletionTask(make_task(), CompletionHooks(on_success=on_success)).run(ctx)

    on_success.assert_called_once()
    assert "Completion hook" in caplog.text


async def test_completion_failure_hook_error_keeps_task_error(make_task, ctx: Context) -> None:
    on_failure = MagicMock(side_effect=RuntimeError("hook broke"))
    task = CompletionTask(
        make_task(errors=[ValueError("task broke")]),
        CompletionHooks(on_failure=on_failure),
    )
    with pytest.raises(ValueError, match="task broke"):
        await task.run(ctx)


async def test_decorators_do_not_run_inner_on_construction(make_task) -> None:
    inner = make_task()
    CompletionTask(RetryTask(TimeoutTask(inner, 1), RetryPolicy(2)), CompletionHooks())
    assert inner.calls == 0
