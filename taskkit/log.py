"""Logging setup and structured-field logger.

``setup_logging`` configures the root logger once at process start-up: a
console handler in the usual text format and, when ``log_path`` is set, a
size-rotated file with one JSON object per line.

``FieldLogger`` attaches key/value fields to every record it emits. Both
formatters render them; plain ``logging.Logger`` records simply have none.
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import MutableMapping

    from taskkit.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class FieldsFormatter(logging.Formatter):
    """Text formatter that appends ``key=value`` pairs from FieldLogger."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        fields = getattr(record, "fields", None)
        if not fields:
            return text
        pairs = " ".join(f"{key}={value}" for key, value in fields.items() if key != "trace")
        text = f"{text} {pairs}" if pairs else text
        if "trace" in fields:
            text = f"{text}\n{fields['trace']}"
        return text


class JsonFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, message and fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if fields:
            payload.update(fields)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure the root logger from *settings* and return it."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        msg = f"Unknown log level: {settings.log_level}"
        raise ValueError(msg)

    console = logging.StreamHandler()
    console.setFormatter(FieldsFormatter(LOG_FORMAT))
    handlers: list[logging.Handler] = [console]

    if settings.log_path is not None:
        settings.log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_path,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(JsonFormatter())
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    return logging.getLogger()


class FieldLogger(logging.LoggerAdapter):
    """Logger adapter carrying structured fields.

    Fields given per call via ``extra={"fields": {...}}`` are merged over the
    adapter's own.
    """

    def __init__(self, logger: logging.Logger, fields: dict[str, Any] | None = None) -> None:
        super().__init__(logger, {"fields": dict(fields or {})})

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self.extra["fields"])

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        merged = {**self.extra["fields"], **extra.pop("fields", {})}
        kwargs["extra"] = {**extra, "fields": merged}
        return msg, kwargs

    def with_fields(self, **fields: Any) -> FieldLogger:
        """Return a new adapter with *fields* added. This one is unchanged."""
        return FieldLogger(self.logger, {**self.extra["fields"], **fields})

    def error_with_details(self, message: str, exc: BaseException) -> None:
        """Log *message* at ERROR with ``error`` and ``trace`` fields for *exc*."""
        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        self.error(message, extra={"fields": {"error": str(exc), "trace": trace.rstrip()}})


def get_logger(name: str, **fields: Any) -> FieldLogger:
    """Return a FieldLogger for the named logger with default *fields*."""
    return FieldLogger(logging.getLogger(name), fields)
