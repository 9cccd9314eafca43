"""Structured logging for the dispatcher.

Every log line carries the service name, the correlation id of the request
that received the alert (escalation tasks inherit it) and the keyword fields
passed to ``StructuredLogger``, e.g. ``alert_id`` and ``channel``.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

DEFAULT_SERVICE_NAME = "who-you-gonna-call"

# Libraries whose INFO output would drown the escalation log
_NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "apscheduler")


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "extra_fields", None) or {}


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=UTC)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id
        entry.update(_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable lines for local runs.

    Format: timestamp - service - level - [correlation_id] - message key=value...
    """

    def __init__(self, service_name: str = DEFAULT_SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        line = " - ".join(
            (
                _timestamp(record).strftime("%Y-%m-%d %H:%M:%S"),
                self.service_name,
                record.levelname,
                f"[{correlation_id_ctx.get() or '-'}]",
                record.getMessage(),
            )
        )
        fields = _fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    log_format: str = "json",
    log_level: str = "INFO",
    service_name: str = DEFAULT_SERVICE_NAME,
) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        log_format: 'json' or 'text'
        log_level: Level name, unknown names fall back to INFO
        service_name: Value of the ``service`` field
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    formatter_class = JsonFormatter if log_format.lower() == "json" else TextFormatter
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter_class(service_name=service_name))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class StructuredLogger:
    """Logger taking keyword fields, e.g. ``logger.info("Retrying", channel="slack")``."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, fields: dict[str, Any], exc_info: bool = False):
        extra = {"extra_fields": fields} if fields else None
        self._logger.log(level, msg, extra=extra, exc_info=exc_info, stacklevel=3)

    def debug(self, msg: str, **fields: Any) -> None:
        self._log(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields: Any) -> None:
        self._log(logging.INFO, msg, fields)

    def warning(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.WARNING, msg, fields, exc_info=exc_info)

    def error(self, msg: str, exc_info: bool = False, **fields: Any) -> None:
        self._log(logging.ERROR, msg, fields, exc_info=exc_info)

    def exception(self, msg: str, **fields: Any) -> None:
        """Log at error level with the current exception's traceback."""
        self._log(logging.ERROR, msg, fields, exc_info=True)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger, typically ``get_logger(__name__)``."""
    return StructuredLogger(name)
