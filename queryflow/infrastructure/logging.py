"""Structured JSON logging configuration."""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variables for request tracing
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
batch_id_var: ContextVar[str | None] = ContextVar("batch_id", default=None)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname.lower(),
            "message": record.getMessage(),
            "logger": record.name,
        }

        # Add service from extra or derive from logger name
        log_data["service"] = getattr(record, "service", record.name.split(".")[0])

        # Add context from context variables
        if request_id := request_id_var.get():
            log_data["request_id"] = request_id
        if batch_id := batch_id_var.get():
            log_data["batch_id"] = batch_id

        # Add extra fields from record
        extra_fields = [
            "request_id",
            "batch_id",
            "moment",
            "method",
            "url",
            "status",
            "chunk_index",
            "chunk_size",
            "request_count",
            "duration_ms",
            "error_code",
            "error_message",
            "error",
            "metadata",
        ]
        for field in extra_fields:
            if hasattr(record, field) and getattr(record, field) is not None:
                log_data[field] = getattr(record, field)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class NamespaceFilter(logging.Filter):
    """Filter that enables debug logging for specific namespaces."""

    def __init__(self, debug_namespaces: list[str]):
        super().__init__()
        self.debug_namespaces = set(debug_namespaces)

    def filter(self, record: logging.LogRecord) -> bool:
        """Allow all INFO+ logs, but only DEBUG for enabled namespaces."""
        if record.levelno >= logging.INFO:
            return True
        namespace = record.name.split(".")[0]
        return namespace in self.debug_namespaces


# Service loggers used inside queryflow
SERVICE_LOGGERS = ("timeline", "queryable", "batch", "config")


def setup_logging(log_level: str = "INFO", debug_namespaces: list[str] | None = None) -> None:
    """Attach structured JSON output to queryflow's service loggers.

    The root logger and third-party loggers are left to the application.
    Configured loggers stop propagating, so records are written once.

    Args:
        log_level: Default log level (DEBUG, INFO, WARNING, ERROR)
        debug_namespaces: Service loggers to enable DEBUG logging for
    """

    debug_namespaces = debug_namespaces or []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(NamespaceFilter(debug_namespaces))

    for name in SERVICE_LOGGERS:
        service_logger = logging.getLogger(name)
        service_logger.handlers.clear()
        service_logger.addHandler(handler)
        service_logger.propagate = False
        # enabled namespaces log at DEBUG
        service_logger.setLevel(logging.DEBUG if name in debug_namespaces else log_level)

    logger = logging.getLogger("config")
    logger.info(
        "Logging configured",
        extra={
            "service": "config",
            "log_level": log_level,
            "debug_namespaces": debug_namespaces,
        },
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically the service/module name)

    Returns:
        Configured logger instance
    """

    return logging.getLogger(name)


def set_request_context(
    request_id: str | None = None,
    batch_id: str | None = None,
) -> None:
    """Set context variables for request tracing."""

    if request_id is not None:
        request_id_var.set(request_id)
    if batch_id is not None:
        batch_id_var.set(batch_id)


def clear_request_context() -> None:
    """Clear all request context variables."""

    request_id_var.set(None)
    batch_id_var.set(None)


__all__ = [
    "SERVICE_LOGGERS",
    "StructuredFormatter",
    "NamespaceFilter",
    "setup_logging",
    "get_logger",
    "set_request_context",
    "clear_request_context",
    "request_id_var",
    "batch_id_var",
]
