"""Central logging configuration for the backup service.

`setup_logging` is invoked from `collector_backup.main` during startup;
`log_event` emits the `event | k=v ...` lines used by the backup pipeline.
"""

from __future__ import annotations

import logging
import os
from typing import Optional


# Avoid reserved LogRecord attribute collisions in `extra`
_RESERVED_KEYS = {
    "name",
    "msg",
    "message",
    "asctime",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "args",
}


class HealthCheckFilter(logging.Filter):
    """Filter out health probe requests from uvicorn access logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not any(endpoint in message for endpoint in ("/health", "/ready"))


def setup_logging(level: Optional[str] = None) -> None:
    """Initialize application logging.

    - Level is taken from the `LOG_LEVEL` environment variable if not provided.
    - Uses a concise, structured-ish format with timestamps.
    """

    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    root_logger = logging.getLogger()

    # Configure handlers once to avoid duplicates in reloads
    if not root_logger.handlers:
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    # Always align root level (uvicorn may install handlers before we run)
    root_logger.setLevel(log_level)

    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)
    access_logger = logging.getLogger("uvicorn.access")
    if not any(isinstance(f, HealthCheckFilter) for f in access_logger.filters):
        access_logger.addFilter(HealthCheckFilter())

    # SQLAlchemy: detailed SQL is controlled via engine echo
    sqlalchemy_engine_level = logging.DEBUG if root_logger.level == logging.DEBUG else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(sqlalchemy_engine_level)

    # boto3/botocore are chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING if log_level != "DEBUG" else logging.DEBUG)


def log_event(logger: logging.Logger, event_name: str, *, level: int = logging.INFO, **fields: object) -> None:
    """Emit a log line with text message and structured context via `extra`.

    The message is a concise 'event | k=v ...' line, and the `extra` dict
    carries the same fields for structured handlers.
    """
    if not fields:
        logger.log(level, "%s", event_name, extra={"event": event_name})
        return

    keys = sorted(fields.keys())
    msg = "%s | " + " ".join(f"{k}=%s" for k in keys)
    args = (event_name, *(fields[k] for k in keys))

    safe_extra: dict[str, object] = {"event": event_name}
    for key, value in fields.items():
        safe_key = key if key not in _RESERVED_KEYS else f"field_{key}"
        safe_extra[safe_key] = value

    logger.log(level, msg, *args, extra=safe_extra)
