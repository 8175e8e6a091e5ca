"""Logging setup for the chat analytics service.

Configures the ``chat_analytics`` logger hierarchy once at startup:

- a human-readable formatter, or a minimal JSON formatter when ``log_json``
  is enabled;
- a stderr stream handler, plus a midnight-rotated ``app.log`` when a
  ``log_dir`` is configured.

Handlers are installed under fixed names, so repeated calls only add the
ones that are missing and leave foreign handlers alone.

Modules obtain their logger with ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import TimedRotatingFileHandler

from chat_analytics.config import Settings

LOGGER_NAME = "chat_analytics"
STREAM_HANDLER_NAME = "chat_analytics.stream"
FILE_HANDLER_NAME = "chat_analytics.file"


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def init_logging(settings: Settings, retention_days: int = 7) -> logging.Logger:
    """Initialise the application logger from settings."""

    formatter = _get_formatter(settings.log_json)
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    app_logger = logging.getLogger(LOGGER_NAME)
    installed = {h.get_name() for h in app_logger.handlers}
    if STREAM_HANDLER_NAME not in installed:
        stream_handler = logging.StreamHandler()
        stream_handler.set_name(STREAM_HANDLER_NAME)
        stream_handler.setFormatter(formatter)
        app_logger.addHandler(stream_handler)

    if settings.log_dir and FILE_HANDLER_NAME not in installed:
        os.makedirs(settings.log_dir, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            os.path.join(settings.log_dir, "app.log"),
            when="midnight",
            backupCount=retention_days,
        )
        file_handler.set_name(FILE_HANDLER_NAME)
        file_handler.setFormatter(formatter)
        app_logger.addHandler(file_handler)

    app_logger.setLevel(log_level)
    app_logger.propagate = False
    return app_logger
