"""Shared test fixtures."""

from __future__ import annotations

import asyncio

import pytest

from taskkit.config import Settings
from taskkit.task.context import Context


class CountingTask:
    """Task double that records calls and fails or sleeps as configured."""

    def __init__(self, *, delay: float = 0.0, errors: list[Exception] | None = None) -> None:
        self.delay = delay
        self.errors = list(errors or [])
        self.calls = 0
        self.finished = 0
        self.contexts: list[Context] = []

    async def run(self, ctx: Context) -> None:
        self.calls += 1
        self.contexts.append(ctx)
        if self.delay:
            await asyncio.sleep(self.delay)
        self.finished += 1
        if self.errors:
            raise self.errors.pop(0)

    def __repr__(self) -> str:
        return "CountingTask()"


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def ctx() -> Context:
    return Context.background()


@pytest.fixture
def make_task():
    """Factory for CountingTask doubles."""
    return CountingTask
