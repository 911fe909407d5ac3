"""Schedule expressions — turn cron strings into APScheduler triggers.

Accepted forms:

* six fields ``second minute hour day month day_of_week``
  (e.g. ``"*/5 * * * * *"``). Day of week counts from Sunday = 0, as in
  standard cron, and ``?`` means ``*`` for day and day of week. Everything
  else follows APScheduler's field syntax;
* descriptors ``@yearly``, ``@annually``, ``@monthly``, ``@weekly``,
  ``@daily``, ``@midnight``, ``@hourly``;
* ``@every <duration>`` with Go-style durations such as ``90s`` or ``1h30m``.
"""

from __future__ import annotations

import re
from datetime import timedelta

from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from taskkit.task.context import to_seconds
from taskkit.task.errors import ScheduleParseError

CRON_FIELDS = ("second", "minute", "hour", "day", "month", "day_of_week")

# Cron day-of-week order: 0 is Sunday.
WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

DESCRIPTORS = {
    "@yearly": "0 0 0 1 1 *",
    "@annually": "0 0 0 1 1 *",
    "@monthly": "0 0 0 1 * *",
    "@weekly": "0 0 0 * * sun",
    "@daily": "0 0 0 * * *",
    "@midnight": "0 0 0 * * *",
    "@hourly": "0 0 * * * *",
}

_EVERY_PREFIX = "@every "

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(text: str) -> timedelta:
    """Parse a Go-style duration (``"1h30m"``, ``"250ms"``) into a timedelta.

    Raises ValueError for empty, malformed or unit-less input.
    """
    value = text.strip()
    if not value:
        msg = "empty duration"
        raise ValueError(msg)

    pos = 0
    total = 0.0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if match is None:
            msg = f"invalid duration {text!r}"
            raise ValueError(msg)
        number, unit = match.groups()
        total += float(number) * _UNIT_SECONDS[unit]
        pos = match.end()
    return timedelta(seconds=total)


def interval_trigger(interval: float | timedelta, timezone: str) -> IntervalTrigger:
    """Build a trigger firing every *interval* (seconds or timedelta)."""
    seconds = to_seconds(interval)
    if seconds <= 0:
        msg = f"interval must be positive, got {seconds}"
        raise ValueError(msg)
    return IntervalTrigger(seconds=seconds, timezone=timezone)


def parse_schedule(expression: str, timezone: str) -> CronTrigger | IntervalTrigger:
    """Validate *expression* and return the matching trigger.

    Raises ScheduleParseError for anything that cannot be scheduled.
    """
    if not isinstance(expression, str):
        raise ScheduleParseError(repr(expression), "expression must be a string")

    text = expression.strip()
    if not text:
        raise ScheduleParseError(expression, "expression is empty")

    if text.startswith("@"):
        return _parse_descriptor(expression, text, timezone)
    return _parse_fields(expression, text, timezone)


def _parse_descriptor(expression: str, text: str, timezone: str) -> CronTrigger | IntervalTrigger:
    if text.startswith(_EVERY_PREFIX):
        try:
            duration = parse_duration(text[len(_EVERY_PREFIX):])
            return interval_trigger(duration, timezone)
        except ValueError as exc:
            raise ScheduleParseError(expression, str(exc)) from exc

    fields = DESCRIPTORS.get(text.lower())
    if fields is None:
        raise ScheduleParseError(expression, f"unknown descriptor {text!r}")
    return _parse_fields(expression, fields, timezone)


def _parse_fields(expression: str, text: str, timezone: str) -> CronTrigger:
    values = text.split()
    if len(values) != len(CRON_FIELDS):
        raise ScheduleParseError(
            expression,
            f"expected {len(CRON_FIELDS)} fields "
            f"({' '.join(CRON_FIELDS)}), got {len(values)}",
        )
    fields = dict(zip(CRON_FIELDS, values))
    try:
        if fields["day"] == "?":
            fields["day"] = "*"
        fields["day_of_week"] = _day_of_week(fields["day_of_week"])
        return CronTrigger(timezone=timezone, **fields)
    except (ValueError, TypeError) as exc:
        raise ScheduleParseError(expression, str(exc)) from exc


def _day_of_week(value: str) -> str:
    """Translate a cron day-of-week field (0 = Sunday) to APScheduler names.

    APScheduler counts from Monday, so numbers, ranges and steps are expanded
    to an explicit list of day names.
    """
    if value in ("*", "?"):
        return "*"
    days: set[int] = set()
    for element in value.split(","):
        days.update(_weekday_range(element))
    return ",".join(WEEKDAYS[day] for day in sorted(days))


def _weekday_range(element: str) -> range:
    base, slash, step_text = element.partition("/")
    step = 1
    if slash:
        if not step_text.isdigit() or int(step_text) == 0:
            msg = f"invalid step in day of week {element!r}"
            raise ValueError(msg)
        step = int(step_text)

    if base in ("*", "?"):
        start, end = 0, len(WEEKDAYS) - 1
    else:
        first, dash, last = base.partition("-")
        start = _weekday_index(first)
        if dash:
            end = _weekday_index(last)
        else:
            # "3/2" runs from 3 to the end of the week
            end = len(WEEKDAYS) - 1 if slash else start
    if start > end:
        msg = f"day of week range {element!r} runs backwards"
        raise ValueError(msg)
    return range(start, end + 1, step)


def _weekday_index(token: str) -> int:
    lowered = token.lower()
    if lowered in WEEKDAYS:
        return WEEKDAYS.index(lowered)
    if lowered.isdigit() and int(lowered) < len(WEEKDAYS):
        return int(lowered)
    msg = f"invalid day of week {token!r}"
    raise ValueError(msg)
