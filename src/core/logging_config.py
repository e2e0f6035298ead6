"""Centralized logging configuration with JSON structured logging support.

Compliance code logs phone numbers only as a short hash fingerprint; the
formatter never sees a raw number.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CONTEXT_FIELDS = ("request_id", "user_id", "deal_id", "phone_fingerprint")


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One object per line, suitable for log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        for field_name in CONTEXT_FIELDS:
            if hasattr(record, field_name):
                log_data[field_name] = getattr(record, field_name)

        return json.dumps(log_data, default=str)


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that attaches fixed context to every message.

    Usage:
        logger = get_context_logger(__name__, deal_id=42, user_id=7)
        logger.info("Transition accepted")
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def _build_formatter(json_format: bool) -> logging.Formatter:
    if json_format:
        return JSONFormatter()
    return logging.Formatter(TEXT_LOG_FORMAT, DATE_FORMAT)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        json_format: If True, use JSON structured logging.
    """
    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(_build_formatter(json_format))
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(_build_formatter(json_format))
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True,
    )

    # Third-party noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def get_context_logger(name: str, **context: Any) -> ContextLogger:
    """
    Get a logger with context that will be included in all log messages.

    Args:
        name: Name of the logger (usually __name__).
        **context: Context key-value pairs to include in logs.

    Returns:
        ContextLogger adapter.
    """
    base_logger = logging.getLogger(name)
    return ContextLogger(base_logger, context)


def log_compliance_decision(
    logger: logging.Logger,
    decision: str,
    phone_fingerprint: str,
    **extra: Any,
) -> None:
    """
    Log the outcome of a consent/DNC decision with standard fields.

    Args:
        logger: Logger instance to use.
        decision: ALLOW, BLOCK or VIOLATION.
        phone_fingerprint: Leading characters of the phone lookup hash.
        **extra: Additional context (contact method, log id, ...).
    """
    log_data = {"decision": decision, **extra}
    message = f"Contact gate decision {decision} for phone {phone_fingerprint}"
    extra_fields = {"extra_data": log_data, "phone_fingerprint": phone_fingerprint}

    if decision == "ALLOW":
        logger.info(message, extra=extra_fields)
    else:
        logger.warning(message, extra=extra_fields)


__all__ = [
    "setup_logging",
    "get_logger",
    "get_context_logger",
    "log_compliance_decision",
    "JSONFormatter",
    "ContextLogger",
]
