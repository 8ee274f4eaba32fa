"""Structured Logging — JSON formatter, setup, and a handler that forwards records to the DB log sink.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (request_id, user_id, path, status_code, ...) surfaced when present
    - JSON format in production, human-readable in development
    - DatabaseLogHandler never blocks: it only enqueues onto the sink

Design Decisions:
    - JSONFormatter over third-party libs: zero dependencies, full control
    - setup_logging called once on startup via lifespan
    - Python level names mapped onto the logs table vocabulary (info/warn/error/fatal)
"""

import logging
import json
from datetime import datetime, timezone

EXTRA_FIELDS = (
    "request_id", "user_id", "user_role", "path", "method", "status_code",
    "duration_ms", "error_code", "webhook_id", "event_type", "attempt",
    "client_ip",
)

_LEVEL_NAMES = {
    logging.DEBUG: "info",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}


def db_level(levelno: int) -> str:
    """Map a Python log level onto the logs.level vocabulary."""
    if levelno >= logging.CRITICAL:
        return "fatal"
    return _LEVEL_NAMES.get(levelno, "info")


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


class DatabaseLogHandler(logging.Handler):
    """Forward WARNING+ records to the database log sink."""

    def __init__(self, sink, level: int = logging.WARNING):
        super().__init__(level)
        self.sink = sink

    def emit(self, record: logging.LogRecord) -> None:
        # Records raised by the sink itself would loop back into it
        if record.name.startswith("app.infrastructure.log_sink"):
            return
        try:
            entry = {
                "level": db_level(record.levelno),
                "message": record.getMessage(),
                "category": record.name,
                "data": {
                    k: record.__dict__[k] for k in EXTRA_FIELDS
                    if record.__dict__.get(k) is not None
                } or None,
            }
            if record.exc_info and record.exc_info[0] is not None:
                entry["error_name"] = record.exc_info[0].__name__
                entry["error_stack"] = logging.Formatter().formatException(
                    record.exc_info,
                )
            for key in ("path", "method", "status_code", "user_id", "request_id"):
                if record.__dict__.get(key) is not None:
                    entry[key] = record.__dict__[key]
            self.sink.enqueue(entry)
        except Exception:
            self.handleError(record)


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure logging for the application."""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s — %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
