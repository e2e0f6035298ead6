"""SQLAlchemy ORM models for the deal engine."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    event,
    func,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from core.db import Base
from core.exceptions import ImmutableRecordError, RetentionViolationError
from core.utils import ensure_aware, utcnow


# =============================================================================
# Enums
# =============================================================================


class DealStatus(str, enum.Enum):
    """Deal lifecycle states."""
    NEW = "NEW"
    ANALYZING = "ANALYZING"
    QUALIFIED = "QUALIFIED"
    REJECTED = "REJECTED"
    OFFERED = "OFFERED"
    NEGOTIATING = "NEGOTIATING"
    UNDER_CONTRACT = "UNDER_CONTRACT"
    CLOSED = "CLOSED"


class RuleType(str, enum.Enum):
    """Qualification rule kinds. FILTER sorts before SCORE_COMPONENT."""
    FILTER = "FILTER"
    SCORE_COMPONENT = "SCORE_COMPONENT"


class RuleOperator(str, enum.Enum):
    """Comparison operators understood by the rule engine."""
    GT = "GT"
    LT = "LT"
    EQ = "EQ"
    IN = "IN"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    RANGE = "RANGE"


class RuleResult(str, enum.Enum):
    """Per-rule evaluation outcome."""
    PASS = "PASS"
    FAIL = "FAIL"


class CreativeFinanceType(str, enum.Enum):
    """Creative-finance structures a rule subtype can flag."""
    SUBJECT_TO = "SUBJECT_TO"
    SELLER_FINANCE = "SELLER_FINANCE"
    OWNER_OCCUPIED_VACATED = "OWNER_OCCUPIED_VACATED"
    LEASE_OPTION = "LEASE_OPTION"
    BRRRR = "BRRRR"
    WHOLESALE = "WHOLESALE"
    LAND_CONTRACT = "LAND_CONTRACT"
    RENT_TO_OWN = "RENT_TO_OWN"


class ContactMethod(str, enum.Enum):
    """Outbound contact channels."""
    EMAIL = "EMAIL"
    CALL = "CALL"
    SMS = "SMS"
    LETTER = "LETTER"


class ConsentStatus(str, enum.Enum):
    """Consent asserted by the caller for a contact attempt."""
    NO_CONSENT_OBTAINED = "NO_CONSENT_OBTAINED"
    EXPRESS_WRITTEN_CONSENT = "EXPRESS_WRITTEN_CONSENT"
    PRIOR_EXPRESS_CONSENT = "PRIOR_EXPRESS_CONSENT"
    DO_NOT_CALL = "DO_NOT_CALL"


class ComplianceStatus(str, enum.Enum):
    """State of a captured consent record."""
    COMPLIANT = "COMPLIANT"
    REVOKED = "REVOKED"


class TaskStatus(str, enum.Enum):
    """Background task statuses."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# User Model
# =============================================================================


class User(Base):
    """
    Internal user record.

    Authentication happens at the identity provider; ``external_id`` is the
    subject it vouches for.
    """
    __tablename__ = "user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(128), unique=True, nullable=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# =============================================================================
# Property Model
# =============================================================================


class Property(Base):
    """
    A property snapshot produced by the import pipeline.

    Read-only to the decision engine.
    """
    __tablename__ = "property"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Address
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True, index=True)
    zip_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, index=True)
    property_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    owner_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Valuation
    estimated_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_sale_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tax_assessed_value: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    equity_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    annual_property_tax: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    debt_owed: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    interest_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Structure
    year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    square_footage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    unit_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    owner_occupied: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Open-ended data
    distress_signals: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    raw_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    data_freshness_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    deals: Mapped[list["Deal"]] = relationship("Deal", back_populates="property")


# =============================================================================
# QualificationRule Model
# =============================================================================


class QualificationRule(Base):
    """A user-owned rule evaluated against property snapshots."""
    __tablename__ = "qualification_rule"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rule_type: Mapped[str] = mapped_column(String(20), nullable=False)
    rule_subtype: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    field_name: Mapped[str] = mapped_column(String(255), nullable=False)
    operator: Mapped[str] = mapped_column(String(20), nullable=False)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    weight: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_rule_user_order", "user_id", "rule_type", "created_at"),
    )


# =============================================================================
# Deal Models
# =============================================================================


class Deal(Base):
    """
    A prospective acquisition of one property by one user.

    ``status`` is written only by the lifecycle state machine; ``version``
    increments on every status write and guards concurrent transitions.
    """
    __tablename__ = "deal"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False, index=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("property.id"), nullable=False, index=True)

    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=DealStatus.NEW.value, nullable=False, index=True)
    qualification_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    creative_finance_types: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)

    # Transition payload
    estimated_profit: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    closed_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    property: Mapped["Property"] = relationship("Property", back_populates="deals")
    history: Mapped[list["DealHistory"]] = relationship(
        "DealHistory", back_populates="deal", order_by="DealHistory.id"
    )

    __table_args__ = (
        Index("ix_deal_user_status", "user_id", "status"),
    )


class DealHistory(Base):
    """Append-only record of one accepted status change."""
    __tablename__ = "deal_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(ForeignKey("deal.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    field_changed: Mapped[str] = mapped_column(String(50), default="status", nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    deal: Mapped["Deal"] = relationship("Deal", back_populates="history")


class RuleEvaluationLog(Base):
    """One row per rule per evaluation run."""
    __tablename__ = "rule_evaluation_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(ForeignKey("deal.id"), nullable=False, index=True)
    rule_id: Mapped[int] = mapped_column(ForeignKey("qualification_rule.id"), nullable=False, index=True)
    evaluation_result: Mapped[str] = mapped_column(String(10), nullable=False)
    score_awarded: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


# =============================================================================
# Compliance Models
# =============================================================================


class ContactLog(Base):
    """
    Append-only record of a contact attempt that passed the DNC check.

    ``owner_phone_encrypted`` is the only place a phone is recoverable and
    is never included in any read model.
    """
    __tablename__ = "contact_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False, index=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("property.id"), nullable=False, index=True)

    owner_phone_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    contact_timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    contact_method: Mapped[str] = mapped_column(String(10), nullable=False)
    consent_status: Mapped[str] = mapped_column(String(40), nullable=False)
    consent_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    consent_medium: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    consent_details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_violation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    property: Mapped["Property"] = relationship("Property")

    __table_args__ = (
        Index("ix_contact_log_user_time", "user_id", "contact_timestamp"),
    )


class ConsentRecord(Base):
    """
    A captured consent event for a phone number.

    Not user-scoped. Must be retained until ``must_retain_until``.
    """
    __tablename__ = "consent_record"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_phone_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    phone_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    original_consent_method: Mapped[str] = mapped_column(String(50), nullable=False)
    original_consent_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    disclosures_acknowledged: Mapped[list] = mapped_column(JSON, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    must_retain_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    compliance_status: Mapped[str] = mapped_column(
        String(20), default=ComplianceStatus.COMPLIANT.value, nullable=False
    )

    revocation_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revocation_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    revocation_processed_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_consent_hash_active", "phone_hash", "revocation_timestamp"),
    )


class DoNotCallEntry(Base):
    """A phone on the Do-Not-Call list, keyed by lookup hash. Null expiry is permanent."""
    __tablename__ = "do_not_call_entry"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phone_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    added_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


# =============================================================================
# BackgroundTask Model
# =============================================================================


class BackgroundTask(Base):
    """Status record for a job handed to the external runner."""
    __tablename__ = "background_task"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    task_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    target_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("user.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=TaskStatus.PENDING.value, index=True)

    params: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    result: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


# =============================================================================
# Audit integrity guards
# =============================================================================


@event.listens_for(DealHistory, "before_update")
@event.listens_for(DealHistory, "before_delete")
@event.listens_for(ContactLog, "before_update")
@event.listens_for(ContactLog, "before_delete")
def _reject_audit_mutation(mapper, connection, target) -> None:
    raise ImmutableRecordError(
        f"{type(target).__name__} {target.id} is append-only"
    )


@event.listens_for(Deal, "before_update")
def _reject_direct_status_write(mapper, connection, target) -> None:
    if inspect(target).attrs.status.history.has_changes():
        raise ImmutableRecordError(
            f"Deal {target.id} status changes only through the lifecycle"
        )


@event.listens_for(ConsentRecord, "before_delete")
def _enforce_consent_retention(mapper, connection, target) -> None:
    retain_until = ensure_aware(target.must_retain_until)
    if retain_until is not None and retain_until > utcnow():
        raise RetentionViolationError(
            f"Consent record {target.id} must be retained until {retain_until.isoformat()}"
        )


__all__ = [
    "Base",
    # Enums
    "DealStatus",
    "RuleType",
    "RuleOperator",
    "RuleResult",
    "CreativeFinanceType",
    "ContactMethod",
    "ConsentStatus",
    "ComplianceStatus",
    "TaskStatus",
    # Models
    "User",
    "Property",
    "QualificationRule",
    "Deal",
    "DealHistory",
    "RuleEvaluationLog",
    "ContactLog",
    "ConsentRecord",
    "DoNotCallEntry",
    "BackgroundTask",
]
