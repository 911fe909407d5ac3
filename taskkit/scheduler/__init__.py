"""Periodic execution — schedule expressions and the APScheduler adapter."""

from taskkit.scheduler.engine import PeriodicScheduler, SchedulerState
from taskkit.scheduler.triggers import interval_trigger, parse_duration, parse_schedule

__all__ = [
    "PeriodicScheduler",
    "SchedulerState",
    "interval_trigger",
    "parse_duration",
    "parse_schedule",
]
