#!/usr/bin/env python3
"""Run a demo task chain once, then on a schedule for a while.

Usage examples:
    # Run once, then every 5 seconds for 10 seconds
    python scripts/demo.py

    # Custom schedule and duration
    python scripts/demo.py --cron "@every 2s" --seconds 7

    # Make every other run fail with a retryable error
    python scripts/demo.py --flaky
"""

import argparse
import asyncio
import itertools
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from taskkit.config import Settings
from taskkit.log import get_logger, setup_logging
from taskkit.task import Context, TaskChain, TaskError, linear_backoff, retry_on


class FlakyError(TaskError):
    """Retryable failure raised by the demo task."""


def make_task(work_seconds: float, flaky: bool):
    counter = itertools.count(1)
    log = get_logger("taskkit.demo", component="task")

    async def task(ctx: Context) -> None:
        run = next(counter)
        log.info("Executing the task...", extra={"fields": {"run": run}})
        if await ctx.sleep(work_seconds):
            log.warning("Run %d noticed cancellation", run)
            return
        if flaky and run % 2:
            msg = f"run {run} hit a transient error"
            raise FlakyError(msg)

    return task


async def main_async(args: argparse.Namespace) -> int:
    settings = Settings()
    setup_logging(settings)
    log = get_logger("taskkit.demo", app="demo")

    chain = (
        TaskChain(make_task(args.work, args.flaky), settings=settings, logger=log)
        .timeout(args.timeout)
        .retry(3, linear_backoff(0.5), retry_on(FlakyError))
        .with_completion(
            lambda: log.info("Task completed successfully!"),
            lambda exc: log.error_with_details("Task failed", exc),
        )
    )

    try:
        await chain.run(Context.background())
    except Exception as exc:
        log.error("Task chain execution failed: %s", exc)

    ctx = Context.background().with_cancel()
    await chain.run_with_cron(ctx, args.cron)
    try:
        await asyncio.sleep(args.seconds)
    finally:
        await chain.stop_cron()
        ctx.cancel()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Demonstrate a timeout/retry/cron task chain")
    parser.add_argument("--cron", default="*/5 * * * * *", help="Schedule expression (default: every 5s)")
    parser.add_argument("--seconds", type=float, default=10, help="How long to keep the schedule running")
    parser.add_argument("--work", type=float, default=2, help="Seconds each run takes")
    parser.add_argument("--timeout", type=float, default=5, help="Per-attempt timeout in seconds")
    parser.add_argument("--flaky", action="store_true", help="Fail every other run with a retryable error")
    args = parser.parse_args()
    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
