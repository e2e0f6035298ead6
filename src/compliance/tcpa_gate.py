"""
Consent & Do-Not-Call gate.

Every outbound contact attempt passes through ``ContactGate.validate_contact``
before anything is dispatched. There are three outcomes, each with its own
persistence rule:

* BLOCK (number on the DNC list): DncBlockedError, nothing written.
* VIOLATION (no consent asserted): ContactLog written, then
  ConsentViolationError referencing it. The caller must commit.
* ALLOW (express or prior express consent): ContactLog written and returned.

Phone numbers are matched only by lookup hash and stored only as ciphertext.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from compliance.crypto import encrypt_phone, fingerprint, hash_phone
from compliance.locking import lock_phone
from core.config import get_settings
from core.exceptions import (
    ConsentViolationError,
    DatabaseError,
    DncBlockedError,
    NotFoundError,
    ValidationError,
)
from core.logging_config import get_logger, log_compliance_decision
from core.models import (
    ComplianceStatus,
    ConsentRecord,
    ConsentStatus,
    ContactLog,
    ContactMethod,
    DoNotCallEntry,
    Property,
)
from core.utils import add_years, utcnow

LOGGER = get_logger(__name__)

# Asserted statuses that are logged and then refused
NON_CONSENTING_STATUSES = frozenset({ConsentStatus.NO_CONSENT_OBTAINED, ConsentStatus.DO_NOT_CALL})


@dataclass
class ConsentMetadata:
    """Evidence accompanying an asserted consent status."""
    timestamp: Optional[datetime] = None
    medium: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OptOutResult:
    processed: bool
    effective_date: datetime
    revoked_consents: int = 0
    message: str = "Phone number added to Do-Not-Call list"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "effective_date": self.effective_date.isoformat(),
            "revoked_consents": self.revoked_consents,
            "message": self.message,
        }


def _parse_enum(enum_cls: Any, value: Any, label: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise ValidationError(f"Invalid {label}: {value!r}") from None


def consent_receipt(record: ConsentRecord) -> Dict[str, Any]:
    """Public shape of a consent record. Never carries the phone in any form."""
    return {
        "id": record.id,
        "consent_method": record.original_consent_method,
        "consent_timestamp": record.original_consent_timestamp.isoformat(),
        "must_retain_until": record.must_retain_until.isoformat(),
        "compliance_status": record.compliance_status,
        "revocation_timestamp": (
            record.revocation_timestamp.isoformat() if record.revocation_timestamp else None
        ),
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }


class ContactGate:
    """Consent/DNC decisions and their audit records for one unit of work."""

    def __init__(self, session: Session):
        self.session = session
        self.settings = get_settings()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _active_dnc_entry(self, phone_hash: str) -> Optional[DoNotCallEntry]:
        stmt = select(DoNotCallEntry).where(
            DoNotCallEntry.phone_hash == phone_hash,
            or_(DoNotCallEntry.expiry_date.is_(None), DoNotCallEntry.expiry_date > utcnow()),
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def check_on_dnc_list(self, phone: str) -> bool:
        """Pre-flight check. True when an active DNC entry exists for the number."""
        return self._active_dnc_entry(hash_phone(phone)) is not None

    # -------------------------------------------------------------------------
    # Gate
    # -------------------------------------------------------------------------

    def validate_contact(
        self,
        property_id: int,
        phone: str,
        contact_method: Any,
        consent_status: Any,
        user_id: int,
        consent_metadata: Optional[ConsentMetadata] = None,
        notes: Optional[str] = None,
    ) -> ContactLog:
        """
        Decide whether a contact attempt may proceed and record it.

        Raises:
            ValidationError: bad phone, method or status.
            NotFoundError: unknown property.
            DncBlockedError: number is on the DNC list; nothing was written.
            ConsentViolationError: attempt logged without consent.
            DatabaseError: the audit row could not be written.
        """
        method = _parse_enum(ContactMethod, contact_method, "contact method")
        status = _parse_enum(ConsentStatus, consent_status, "consent status")
        if self.session.get(Property, property_id) is None:
            raise NotFoundError(f"Property {property_id} not found")

        phone_hash = hash_phone(phone)
        lock_phone(self.session, phone_hash)

        if self._active_dnc_entry(phone_hash) is not None:
            log_compliance_decision(LOGGER, "BLOCK", fingerprint(phone_hash), contact_method=method.value)
            raise DncBlockedError("Phone number is on the Do-Not-Call list")

        metadata = consent_metadata or ConsentMetadata()
        violation = status in NON_CONSENTING_STATUSES
        contact_log = ContactLog(
            user_id=user_id,
            property_id=property_id,
            owner_phone_encrypted=encrypt_phone(phone),
            contact_timestamp=utcnow(),
            contact_method=method.value,
            consent_status=status.value,
            consent_timestamp=metadata.timestamp,
            consent_medium=metadata.medium,
            consent_details=metadata.details or None,
            is_violation=violation,
            notes=notes,
        )
        self.session.add(contact_log)
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            LOGGER.error("Contact log write failed for phone %s", fingerprint(phone_hash))
            raise DatabaseError("Contact attempt could not be recorded") from exc

        if violation:
            log_compliance_decision(
                LOGGER, "VIOLATION", fingerprint(phone_hash),
                contact_method=method.value, contact_log_id=contact_log.id,
            )
            raise ConsentViolationError(
                f"No valid consent ({status.value}); attempt recorded as a violation",
                contact_log_id=contact_log.id,
            )

        log_compliance_decision(
            LOGGER, "ALLOW", fingerprint(phone_hash),
            contact_method=method.value, contact_log_id=contact_log.id,
        )
        return contact_log

    # -------------------------------------------------------------------------
    # Consent capture and opt-out
    # -------------------------------------------------------------------------

    def record_consent(
        self,
        phone: str,
        consent_method: str,
        disclosures: List[str],
        notes: Optional[str] = None,
    ) -> ConsentRecord:
        """Capture a consent event, retained for the legal minimum period."""
        if not consent_method or not consent_method.strip():
            raise ValidationError("consent_method is required")

        phone_hash = hash_phone(phone)
        now = utcnow()
        record = ConsentRecord(
            owner_phone_encrypted=encrypt_phone(phone),
            phone_hash=phone_hash,
            original_consent_method=consent_method.strip(),
            original_consent_timestamp=now,
            disclosures_acknowledged=list(disclosures or []),
            notes=notes,
            must_retain_until=add_years(now, self.settings.consent_retention_years),
            compliance_status=ComplianceStatus.COMPLIANT.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(record)
        self.session.flush()
        LOGGER.info("Consent %s recorded for phone %s", record.id, fingerprint(phone_hash))
        return record

    def process_opt_out(
        self,
        phone: str,
        opt_out_method: str,
        notes: Optional[str] = None,
    ) -> OptOutResult:
        """
        Honor an opt-out immediately: permanent DNC entry plus consent revocation.

        Both writes are flushed in the caller's transaction; idempotent for
        repeated calls on the same number.
        """
        if not opt_out_method or not opt_out_method.strip():
            raise ValidationError("opt_out_method is required")
        method = opt_out_method.strip()

        phone_hash = hash_phone(phone)
        lock_phone(self.session, phone_hash)
        now = utcnow()

        reason = f"Consumer opt-out via {method}"
        if notes:
            reason = f"{reason}: {notes}"

        entry = self.session.execute(
            select(DoNotCallEntry).where(DoNotCallEntry.phone_hash == phone_hash)
        ).scalar_one_or_none()
        if entry is None:
            self.session.add(DoNotCallEntry(phone_hash=phone_hash, added_reason=reason, expiry_date=None))
        elif entry.expiry_date is not None:
            entry.expiry_date = None
            entry.added_reason = reason

        active_consents = self.session.execute(
            select(ConsentRecord).where(
                ConsentRecord.phone_hash == phone_hash,
                ConsentRecord.revocation_timestamp.is_(None),
            )
        ).scalars().all()
        for record in active_consents:
            record.revocation_timestamp = now
            record.revocation_method = method
            record.revocation_processed_date = now
            record.compliance_status = ComplianceStatus.REVOKED.value

        self.session.flush()
        LOGGER.info(
            "Opt-out processed for phone %s (%d consents revoked)",
            fingerprint(phone_hash), len(active_consents),
        )
        return OptOutResult(processed=True, effective_date=now, revoked_consents=len(active_consents))


def get_contact_gate(session: Session) -> ContactGate:
    """Factory function for ContactGate."""
    return ContactGate(session)


__all__ = [
    "ConsentMetadata",
    "ContactGate",
    "NON_CONSENTING_STATUSES",
    "OptOutResult",
    "consent_receipt",
    "get_contact_gate",
]
