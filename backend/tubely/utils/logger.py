"""
Structured Logging Configuration Module for Tubely

Logging utilities with JSON-formatted or human-readable output, context
enrichment via LoggerAdapter, and integration with Uvicorn's loggers so the
whole process writes one consistent format.

Features:
- JSONFormatter: Formatter outputting structured JSON log records
- StandardFormatter: Text formatter that appends context fields as key=value
- setup_logging: Application-wide logging configuration with Uvicorn integration
- add_log_context: Helper for enriching logs with contextual information

Usage:
    from tubely.utils.logger import add_log_context, setup_logging

    # Initialize logging at application startup
    setup_logging(log_level="INFO", json_logs=True)

    logger = logging.getLogger(__name__)

    # Add context to logs (e.g., video_id, user_id)
    ctx_logger = add_log_context(logger, video_id="abc123", user_id="user456")
    ctx_logger.info("Processing upload")
"""

import json
import logging
import sys
import traceback

from datetime import UTC, datetime
from pathlib import Path
from typing import Any
from uuid import UUID


# =============================================================================
# Constants
# =============================================================================

LOG_LEVEL_MAP: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Third-party loggers to reduce verbosity
THIRD_PARTY_LOGGERS: list[str] = [
    "motor",
    "pymongo",
    "boto3",
    "botocore",
    "s3transfer",
    "urllib3",
    "multipart",
    "asyncio",
]

# Standard LogRecord attributes, everything else on a record is context
RESERVED_ATTRS: frozenset[str] = frozenset(
    {
        "args",
        "asctime",
        "color_message",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "thread",
        "threadName",
        "taskName",
    }
)


def _extract_extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if not key.startswith("_") and key not in RESERVED_ATTRS
    }


# =============================================================================
# Custom JSON Encoder
# =============================================================================


class LogJSONEncoder(json.JSONEncoder):
    """JSON encoder that stringifies anything json cannot serialize natively."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, bytes):
            return obj.decode("utf-8", errors="replace")
        if isinstance(obj, (set, frozenset)):
            return list(obj)
        if isinstance(obj, (UUID, Path, Exception)):
            return str(obj)
        return repr(obj)


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """
    Logging formatter that outputs log records as JSON strings.

    Example output:
        {
            "timestamp": "2026-01-15T10:30:45.123456+00:00",
            "level": "INFO",
            "logger": "tubely.services.video_upload_service",
            "message": "Upload complete",
            "extra": {"video_id": "...", "user_id": "..."}
        }
    """

    def __init__(self, include_source_location: bool = False) -> None:
        super().__init__()
        self.include_source_location = include_source_location

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(
                timespec="microseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_source_location:
            log_entry["source"] = {
                "filename": record.filename,
                "lineno": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_entry["exception"] = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value) if exc_value else "",
                "traceback": "".join(traceback.format_exception(*record.exc_info)),
            }

        if record.stack_info:
            log_entry["stack_info"] = record.stack_info

        extra_fields = _extract_extra_fields(record)
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, cls=LogJSONEncoder, ensure_ascii=False, separators=(",", ":"))


class StandardFormatter(logging.Formatter):
    """
    Text formatter for console output in development mode.

    Format: [TIMESTAMP] LEVEL logger_name: message key=value ...
    """

    DEFAULT_FORMAT: str = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
    DEFAULT_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    def __init__(self, fmt: str | None = None, datefmt: str | None = None) -> None:
        super().__init__(
            fmt=fmt or self.DEFAULT_FORMAT,
            datefmt=datefmt or self.DEFAULT_DATE_FORMAT,
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extra_fields = _extract_extra_fields(record)
        if not extra_fields:
            return line
        context = " ".join(f"{key}={value}" for key, value in extra_fields.items())
        # Keep tracebacks after the context on the first line
        first, sep, rest = line.partition("\n")
        return f"{first} {context}{sep}{rest}"


# =============================================================================
# Application Logging Setup
# =============================================================================


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    third_party_level: str = "WARNING",
) -> None:
    """
    Configure application-wide logging with root logger and Uvicorn integration.

    Call once at startup (the FastAPI lifespan does). Configures the root
    logger, routes Uvicorn's loggers through the same formatter and quietens
    third-party libraries.

    Args:
        log_level: Application log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON format; if False, output standard text
        third_party_level: Log level for third-party libraries (default WARNING)
    """
    level_str = log_level.upper()
    level = LOG_LEVEL_MAP.get(level_str, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if json_logs:
        formatter: logging.Formatter = JSONFormatter(include_source_location=level <= logging.DEBUG)
    else:
        formatter = StandardFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    _configure_uvicorn_logging(formatter, level)

    third_party_log_level = LOG_LEVEL_MAP.get(third_party_level.upper(), logging.WARNING)
    for logger_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(third_party_log_level)

    logging.getLogger(__name__).info("Logging configured: level=%s, json=%s", level_str, json_logs)


def _configure_uvicorn_logging(formatter: logging.Formatter, level: int) -> None:
    """Point Uvicorn's loggers at our formatter instead of their own handlers."""
    for name, stream in (
        ("uvicorn", sys.stdout),
        ("uvicorn.access", sys.stdout),
        ("uvicorn.error", sys.stderr),
    ):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.setLevel(level)
        uvicorn_logger.propagate = False
        uvicorn_logger.handlers.clear()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(formatter)
        uvicorn_logger.addHandler(handler)


# =============================================================================
# Context Enrichment
# =============================================================================


class ContextLoggerAdapter(logging.LoggerAdapter):
    """
    LoggerAdapter that merges its context into each call's ``extra``.

    Keys passed explicitly in ``extra`` win over the adapter's context.
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        for key, value in self.extra.items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


def add_log_context(logger: logging.Logger, **kwargs: Any) -> ContextLoggerAdapter:
    """
    Wrap ``logger`` so every message carries the given context fields.

    Example:
        ctx_logger = add_log_context(logger, video_id=video_id, user_id=caller.user_id)
        ctx_logger.info("Starting transcode")
    """
    return ContextLoggerAdapter(logger, kwargs)


__all__ = [
    "LOG_LEVEL_MAP",
    "ContextLoggerAdapter",
    "JSONFormatter",
    "StandardFormatter",
    "add_log_context",
    "setup_logging",
]
