"""Request-scoped dependencies for FastAPI routes."""
from __future__ import annotations

from typing import Generator

from sqlalchemy.orm import Session

from core.db import SessionLocal
from services.background_jobs import JobRunner, get_job_runner


def get_db() -> Generator[Session, None, None]:
    """
    One session per request: committed when the handler returns normally,
    rolled back when it raises.

    Handlers that need a row to survive an error response (the consent
    violation record) return that response instead of raising.
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_readonly_db() -> Generator[Session, None, None]:
    """Session for read-only handlers; never committed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


def get_runner() -> JobRunner:
    """The job runner that owner-lookup requests are handed to."""
    return get_job_runner()


__all__ = ["get_db", "get_readonly_db", "get_runner"]
