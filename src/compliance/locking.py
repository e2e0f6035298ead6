"""Per-phone serialization for compliance writes."""
from __future__ import annotations

from sqlalchemy import text
from sqlalchemy.orm import Session

from core.logging_config import get_logger

LOGGER = get_logger(__name__)


def _advisory_key(phone_hash: str) -> int:
    # 60 bits of the hash fit a signed bigint
    return int(phone_hash[:15], 16)


def lock_phone(session: Session, phone_hash: str) -> bool:
    """
    Serialize compliance writes for one phone until the transaction ends.

    PostgreSQL takes a transaction-scoped advisory lock so a gate check and
    an opt-out for the same number cannot interleave. Other dialects are left
    to their own write serialization (SQLite allows a single writer).

    Returns:
        True if an explicit lock was taken.
    """
    if session.get_bind().dialect.name != "postgresql":
        return False

    session.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": _advisory_key(phone_hash)})
    LOGGER.debug("Advisory lock taken for phone %s", phone_hash[:8])
    return True


__all__ = ["lock_phone"]
