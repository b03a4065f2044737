"""
Structured logging setup

Configures the standard library logging tree once per process.
LOG_FORMAT=json emits one JSON object per record (including any fields
passed through ``extra={...}``); LOG_FORMAT=text emits readable lines.

Usage:
    from app.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("BOM created", extra={"bom_id": bom.id})
"""
import json
import logging
import sys
from datetime import datetime
from typing import Optional

from app.core.settings import get_settings

# Attributes present on every LogRecord; anything else came from `extra`
_RESERVED_ATTRS = {
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "message", "module",
    "msecs", "msg", "name", "pathname", "process", "processName",
    "relativeCreated", "stack_info", "thread", "threadName", "taskName",
}

_configured = False


class JSONFormatter(logging.Formatter):
    """Render log records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.utcfromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class TextFormatter(logging.Formatter):
    """Readable format that still shows `extra` fields."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-8s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            k: v for k, v in record.__dict__.items()
            if k not in _RESERVED_ATTRS and not k.startswith("_")
        }
        if extras:
            base += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return base


def setup_logging(level: Optional[str] = None) -> None:
    """Configure root logging handlers (idempotent)."""
    global _configured
    if _configured:
        return

    settings = get_settings()
    formatter = JSONFormatter() if settings.LOG_FORMAT == "json" else TextFormatter()

    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    if settings.LOG_FILE:
        file_handler = logging.FileHandler(settings.LOG_FILE, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # SQLAlchemy is noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)
