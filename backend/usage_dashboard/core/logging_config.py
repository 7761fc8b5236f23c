"""Structured logging configuration.

JSON output (python-json-logger) is the default so logs can be shipped to a
SIEM as-is. Every record carries:
- ISO8601 ``@timestamp``
- ``level`` and ``logger``
- ``service`` metadata (name, version, environment)
- ``event_type`` for filtering

Records from ``security.*`` loggers are tagged with ``is_security_event``.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any

from pythonjsonlogger.json import JsonFormatter

from usage_dashboard.core.config import Settings
from usage_dashboard.core.middleware import install_token_redaction_logging


class SIEMJsonFormatter(JsonFormatter):
    """JSON formatter adding service metadata and an event type to each record."""

    def __init__(self, service: dict[str, str], *args, **kwargs):
        self.service = service
        super().__init__(
            *args,
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "@timestamp",
                "levelname": "level",
                "name": "logger",
            },
            **kwargs,
        )

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["@timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["service"] = self.service

        if "level" in log_record:
            log_record["level"] = log_record["level"].upper()

        if "event_type" not in log_record:
            log_record["event_type"] = f"log.{record.name}"


class SecurityEventFilter(logging.Filter):
    """Tag records coming from security loggers."""

    SECURITY_LOGGERS = ("security.events", "security.auth")

    def filter(self, record: logging.LogRecord) -> bool:
        record.is_security_event = record.name.startswith(self.SECURITY_LOGGERS)
        return True  # Always allow through


def configure_logging(settings: Settings) -> None:
    """Configure root logging for the application.

    Call this once at application startup. Replaces existing root handlers.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(settings.LOG_LEVEL.upper())
    root_logger.handlers.clear()

    if settings.LOG_FORMAT == "text":
        formatter: logging.Formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s"
        )
    else:
        formatter = SIEMJsonFormatter(
            service={
                "name": settings.APP_NAME,
                "version": settings.APP_VERSION,
                "environment": settings.ENVIRONMENT,
            }
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(SecurityEventFilter())
    root_logger.addHandler(console_handler)

    uvicorn_handlers = _configure_uvicorn_loggers(formatter)
    install_token_redaction_logging([console_handler, *uvicorn_handlers])

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "event_type": "system.startup.logging_configured",
            "log_level": settings.LOG_LEVEL.upper(),
            "log_format": settings.LOG_FORMAT,
        },
    )


def _configure_uvicorn_loggers(formatter: logging.Formatter) -> list[logging.Handler]:
    """Route uvicorn loggers through the application formatter. Returns the new handlers."""
    handlers = []
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.propagate = False
        handlers.append(handler)
    return handlers
