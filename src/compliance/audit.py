"""Contact-log audit listing and consent retention maintenance."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, joinedload

from core.exceptions import ValidationError
from core.logging_config import get_logger
from core.models import ConsentRecord, ConsentStatus, ContactLog, ContactMethod
from core.utils import ensure_aware, utcnow

LOGGER = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class ContactLogView:
    """Read model for one contact attempt. Has no phone field of any kind."""
    id: int
    property_id: int
    property_address: Optional[str]
    contact_timestamp: datetime
    contact_method: str
    consent_status: str
    consent_timestamp: Optional[datetime]
    consent_medium: Optional[str]
    is_violation: bool
    notes: Optional[str]

    @classmethod
    def from_model(cls, log: ContactLog) -> "ContactLogView":
        address = None
        if log.property is not None:
            parts = [log.property.address, log.property.city, log.property.state]
            address = ", ".join(p for p in parts if p)
        return cls(
            id=log.id,
            property_id=log.property_id,
            property_address=address,
            contact_timestamp=log.contact_timestamp,
            contact_method=log.contact_method,
            consent_status=log.consent_status,
            consent_timestamp=log.consent_timestamp,
            consent_medium=log.consent_medium,
            is_violation=log.is_violation,
            notes=log.notes,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "property_address": self.property_address,
            "contact_timestamp": self.contact_timestamp.isoformat(),
            "contact_method": self.contact_method,
            "consent_status": self.consent_status,
            "consent_timestamp": self.consent_timestamp.isoformat() if self.consent_timestamp else None,
            "consent_medium": self.consent_medium,
            "is_violation": self.is_violation,
            "notes": self.notes,
        }


@dataclass
class AuditPage:
    logs: List[ContactLogView] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logs": [log.to_dict() for log in self.logs],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "has_more": self.has_more,
        }


def list_contact_logs(
    session: Session,
    user_id: int,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    contact_method: Optional[str] = None,
    consent_status: Optional[str] = None,
) -> AuditPage:
    """
    Paginated, newest-first listing of the user's contact attempts.

    Raises:
        ValidationError: page/limit out of range, unknown enum filter or
            an inverted date range.
    """
    if page < 1:
        raise ValidationError("page must be >= 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must not be after end_date")

    filters = [ContactLog.user_id == user_id]
    if start_date is not None:
        filters.append(ContactLog.contact_timestamp >= start_date)
    if end_date is not None:
        filters.append(ContactLog.contact_timestamp <= end_date)
    if contact_method is not None:
        try:
            filters.append(ContactLog.contact_method == ContactMethod(contact_method.upper()).value)
        except ValueError:
            raise ValidationError(f"Invalid contact method: {contact_method!r}") from None
    if consent_status is not None:
        try:
            filters.append(ContactLog.consent_status == ConsentStatus(consent_status.upper()).value)
        except ValueError:
            raise ValidationError(f"Invalid consent status: {consent_status!r}") from None

    total = session.execute(
        select(func.count()).select_from(ContactLog).where(*filters)
    ).scalar_one()

    rows = session.execute(
        select(ContactLog)
        .options(joinedload(ContactLog.property))
        .where(*filters)
        .order_by(ContactLog.contact_timestamp.desc(), ContactLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return AuditPage(
        logs=[ContactLogView.from_model(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
    )


def purge_expired_consent_records(session: Session, now: Optional[datetime] = None) -> int:
    """
    Delete consent records whose retention window has fully elapsed.

    Rows with ``must_retain_until`` in the future are never touched; a
    ``now`` later than the current time is clamped to it.
    """
    current = utcnow()
    cutoff = min(ensure_aware(now), current) if now is not None else current
    result = session.execute(
        delete(ConsentRecord)
        .where(ConsentRecord.must_retain_until < cutoff)
        .execution_options(synchronize_session=False)
    )
    purged = result.rowcount or 0
    if purged:
        LOGGER.info("Purged %d consent records past retention", purged)
    return purged


__all__ = [
    "AuditPage",
    "ContactLogView",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "list_contact_logs",
    "purge_expired_consent_records",
]
