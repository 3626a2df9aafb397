"""
Logging setup for the roster application.

Handlers are driven by the monitoring config classes: ``LOG_LEVEL``,
``LOG_FORMAT`` (``json`` or ``text``), ``ENABLE_CONSOLE_LOGGING``,
``ENABLE_FILE_LOGGING`` and ``LOG_DIR``. Structured context passed through
``extra={...}`` is emitted as top-level keys by the JSON formatter.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any

_HANDLER_MARKER = "_roster_handler"
_RESERVED_LOG_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
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
    "taskName",
    "message",
    "asctime",
}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, including any ``extra`` fields."""

    def __init__(self, app_name: str | None = None):
        super().__init__()
        self.app_name = app_name

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.app_name:
            payload["app"] = self.app_name
        for key, value in record.__dict__.items():
            if key in _RESERVED_LOG_RECORD_FIELDS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=True)


def _build_formatter(app) -> logging.Formatter:
    if str(app.config.get("LOG_FORMAT", "text")).lower() == "json":
        return JSONFormatter(app_name=app.config.get("APP_NAME"))
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(app) -> None:
    """Attach console/file handlers to the app logger and the ``roster_app`` package logger."""

    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(app)

    handlers: list[logging.Handler] = []
    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console = logging.StreamHandler(stream=sys.stdout)
        handlers.append(console)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, app.config.get("LOG_FILE_NAME", "roster.log")),
            maxBytes=app.config.get("LOG_FILE_MAX_BYTES", 10485760),
            backupCount=app.config.get("LOG_FILE_BACKUP_COUNT", 10),
            encoding="utf-8",
        )
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARKER, True)

    for logger in (app.logger, logging.getLogger("roster_app")):
        # Re-running setup (tests, reloader) must not stack handlers
        for existing in list(logger.handlers):
            if getattr(existing, _HANDLER_MARKER, False):
                logger.removeHandler(existing)
                existing.close()
        for handler in handlers:
            logger.addHandler(handler)
        logger.setLevel(level)

    app.logger.debug(
        "Logging configured",
        extra={"log_level": level_name, "log_format": app.config.get("LOG_FORMAT"), "handlers": len(handlers)},
    )


__all__ = ["JSONFormatter", "setup_logging"]
