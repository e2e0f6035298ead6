"""Database connection and session management."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Generator, List

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from .config import get_settings
from .logging_config import get_logger

SETTINGS = get_settings()
LOGGER = get_logger(__name__)

# Tables the engine cannot run without
REQUIRED_TABLES = [
    "property",
    "qualification_rule",
    "deal",
    "deal_history",
    "rule_evaluation_log",
    "contact_log",
    "consent_record",
    "do_not_call_entry",
]


def _create_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        in_memory = ":memory:" in database_url or database_url.rstrip("/") == "sqlite:"
        new_engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            # A memory database lives only as long as its single connection
            poolclass=StaticPool if in_memory else NullPool,
        )

        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            if not in_memory:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=30000")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return new_engine

    return create_engine(
        database_url,
        pool_size=SETTINGS.db_pool_size,
        max_overflow=SETTINGS.db_max_overflow,
        pool_timeout=SETTINGS.db_pool_timeout,
        pool_pre_ping=True,
    )


engine = _create_engine(SETTINGS.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """
    Context manager for a unit of work.

    Commits on success, rolls back on any exception and re-raises it.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@contextmanager
def get_readonly_session() -> Generator[Session, None, None]:
    """Context manager for read-only sessions. Never commits."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db(create_missing_only: bool = True) -> Dict[str, Any]:
    """
    Initialize database tables.

    Args:
        create_missing_only: If True, only creates missing tables.
            If False, runs a full create_all (fresh install).

    Returns:
        Dict with initialization results.
    """
    from . import models  # noqa: F401

    result: Dict[str, Any] = {
        "status": "success",
        "tables_created": [],
        "tables_existing": [],
        "warnings": [],
    }

    existing_tables = set(inspect(engine).get_table_names())

    if create_missing_only and existing_tables:
        missing_tables = set(Base.metadata.tables.keys()) - existing_tables
        if missing_tables:
            Base.metadata.create_all(
                bind=engine,
                tables=[Base.metadata.tables[name] for name in missing_tables],
            )
            LOGGER.info("Created missing tables: %s", sorted(missing_tables))
        result["tables_created"] = sorted(missing_tables)
    else:
        Base.metadata.create_all(bind=engine)
        result["tables_created"] = sorted(set(inspect(engine).get_table_names()) - existing_tables)

    result["tables_existing"] = sorted(existing_tables)

    final_tables = set(inspect(engine).get_table_names())
    missing_required = [t for t in REQUIRED_TABLES if t not in final_tables]
    if missing_required:
        result["warnings"].append(f"Missing required tables: {missing_required}")
        result["status"] = "warning"

    return result


def validate_database() -> Dict[str, Any]:
    """
    Validate database connection and required tables.

    Used at application startup; failures are reported, not raised.
    """
    result: Dict[str, Any] = {
        "status": "ok",
        "tables_missing": [],
        "errors": [],
    }

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        existing_tables = inspect(engine).get_table_names()
        missing: List[str] = [t for t in REQUIRED_TABLES if t not in existing_tables]
        result["tables_missing"] = missing
        if missing:
            result["status"] = "missing_tables"
    except SQLAlchemyError as e:
        LOGGER.error("Database validation failed: %s", e)
        result["status"] = "error"
        result["errors"].append(str(e))

    return result


__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "get_session",
    "get_readonly_session",
    "init_db",
    "validate_database",
    "REQUIRED_TABLES",
]
