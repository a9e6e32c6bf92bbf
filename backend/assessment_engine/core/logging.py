"""
Structured JSON logging.

Engine code logs with a short event name as the message and the payload in
``extra``. Every record is emitted as one JSON object on stdout carrying the
event, level, logger, environment and a UTC timestamp.
"""

import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

from pythonjsonlogger.json import JsonFormatter

from assessment_engine.core.config import settings

LOG_FORMAT = "%(timestamp)s %(level)s %(logger)s %(message)s"

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncio")


class EngineJsonFormatter(JsonFormatter):
    """JSON formatter that tags every record with its event and environment."""

    def add_fields(self, log_record: dict[str, Any], record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(record.created, tz=UTC).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record.setdefault("event", record.getMessage())
        log_record.setdefault("env", settings.ENV)
        if record.levelno >= logging.WARNING:
            log_record["location"] = f"{record.module}:{record.funcName}:{record.lineno}"


def setup_logging(level: str | None = None, stream: TextIO | None = None) -> None:
    """
    Route the root logger to a single JSON handler.

    Replaces handlers installed by an earlier call so the CLI can be invoked
    repeatedly in one process.
    """
    root_logger = logging.getLogger()
    level_name = (level or settings.LOG_LEVEL).upper()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(EngineJsonFormatter(LOG_FORMAT))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
