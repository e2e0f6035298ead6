"""Application bootstrap and environment validation.

Fails fast with clear messages when the compliance secrets or the database
are not usable, then brings the schema to the latest migration.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import PROJECT_ROOT, get_settings
from .db import engine, init_db
from .exceptions import ConfigurationError, DatabaseError
from .logging_config import get_logger

LOGGER = get_logger(__name__)

ALEMBIC_INI = PROJECT_ROOT / "alembic.ini"


@dataclass
class ValidationResult:
    """Result of environment validation."""

    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        """Add an error and mark validation as failed."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)


def validate_environment(require_phone_crypto: bool = False) -> ValidationResult:
    """
    Check that the settings needed to serve requests are present.

    Phone secrets are errors when required (always in production), warnings
    otherwise: without them every compliance operation fails.
    """
    settings = get_settings()
    result = ValidationResult()

    if not settings.database_url:
        result.add_error("DATABASE_URL is not set.")

    check_crypto = require_phone_crypto or settings.environment == "production"
    for name, value in (
        ("PHONE_HASH_KEY", settings.phone_hash_key),
        ("PHONE_ENCRYPTION_KEY", settings.phone_encryption_key),
    ):
        if value:
            continue
        if check_crypto:
            result.add_error(f"{name} is missing (required for the contact gate).")
        else:
            result.add_warning(f"{name} is not set. Compliance operations will fail.")

    if settings.jwt_secret_key.startswith("dev-only"):
        result.add_warning("JWT_SECRET_KEY is the development default.")

    if settings.environment == "production" and settings.is_sqlite():
        result.add_warning("SQLite in production: per-phone locking is disabled.")

    return result


def check_database_connection() -> bool:
    """Verify database connectivity."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as exc:
        LOGGER.error("Database connection check failed: %s", exc)
        return False


def run_migrations() -> None:
    """Upgrade the schema to head, or create tables when no alembic.ini is present."""
    if not ALEMBIC_INI.exists():
        LOGGER.warning("alembic.ini not found. Creating tables from models instead.")
        init_db()
        return

    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(str(ALEMBIC_INI))
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    LOGGER.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    LOGGER.info("Database migrations complete.")


def bootstrap_application(require_phone_crypto: bool = False) -> ValidationResult:
    """
    Perform full application bootstrap.

    Raises:
        ConfigurationError: required settings are missing.
        DatabaseError: the database is unreachable.
    """
    validation = validate_environment(require_phone_crypto)
    for warning in validation.warnings:
        LOGGER.warning("Config Warning: %s", warning)

    if not validation.is_valid:
        for error in validation.errors:
            LOGGER.error("Config Error: %s", error)
        raise ConfigurationError("Environment validation failed: " + "; ".join(validation.errors))

    if not check_database_connection():
        raise DatabaseError("Could not connect to the database.")

    run_migrations()
    LOGGER.info("Application bootstrap completed successfully.")
    return validation


__all__ = [
    "ValidationResult",
    "bootstrap_application",
    "check_database_connection",
    "run_migrations",
    "validate_environment",
]
