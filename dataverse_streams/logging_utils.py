"""
Structured JSON logging utilities.

Engine components log through standard module loggers. Deployments that
ship logs to a collector can switch the output to single-line JSON with
`configure_structured_logging()`.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "created", "filename", "funcName",
        "levelname", "levelno", "lineno", "module", "msecs",
        "pathname", "process", "processName", "relativeCreated",
        "stack_info", "exc_info", "exc_text", "thread", "threadName",
        "taskName", "message",
    }
)


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as single-line JSON objects with consistent fields:
    - timestamp: ISO 8601 format in UTC
    - level: Log level (INFO, WARNING, ERROR, etc.)
    - logger: Logger name
    - message: Log message
    - Additional context fields (stream_id, event_cid, ...) from extra
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_obj: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_obj[key] = value
            except (TypeError, ValueError):
                log_obj[key] = str(value)

        return json.dumps(log_obj, default=str)


def configure_structured_logging(
    level: int | str = logging.INFO,
    logger_name: str | None = "dataverse_streams",
) -> logging.Logger:
    """
    Send engine logs to stdout as JSON lines.

    Args:
        level: Logging level (default: INFO)
        logger_name: Logger to configure (default: the package logger;
            pass None for the root logger)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)

    # Replace handlers so repeated calls don't duplicate output
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())

    logger.addHandler(handler)
    logger.setLevel(level)

    return logger


def get_engine_logger(name: str) -> logging.Logger:
    """
    Get a logger for an engine component with consistent naming.

    Args:
        name: Component name (e.g., 'resolver', 'sqlite')

    Returns:
        Logger instance named 'dataverse_streams.{name}'
    """
    return logging.getLogger(f"dataverse_streams.{name}")


class StreamLoggerAdapter(logging.LoggerAdapter):
    """
    Logger adapter that attaches stream context to every record.

    Typical context is `stream_id` and `event_cid`, which the JSON
    formatter emits as top-level fields.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Merge adapter context into the record's extra dict."""
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra or {})
        kwargs["extra"] = extra
        return msg, kwargs
