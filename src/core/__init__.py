"""Core module exports."""
from __future__ import annotations

from core.config import Settings, get_settings, reload_settings
from core.db import Base, SessionLocal, get_readonly_session, get_session
from core.exceptions import (
    BusinessRuleError,
    ConfigurationError,
    ConsentViolationError,
    DatabaseError,
    DealEngineError,
    DealNotFoundError,
    DncBlockedError,
    InvalidTransitionError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
)
from core.logging_config import (
    ContextLogger,
    JSONFormatter,
    get_context_logger,
    get_logger,
    setup_logging,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "reload_settings",
    # Database
    "Base",
    "SessionLocal",
    "get_session",
    "get_readonly_session",
    # Exceptions
    "DealEngineError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "DealNotFoundError",
    "BusinessRuleError",
    "InvalidTransitionError",
    "DncBlockedError",
    "ConsentViolationError",
    "DatabaseError",
    "ServiceUnavailableError",
    # Logging
    "setup_logging",
    "get_logger",
    "get_context_logger",
    "JSONFormatter",
    "ContextLogger",
]
