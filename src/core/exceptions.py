"""Custom exceptions for the deal engine.

Every error carries a stable ``error_code`` that the HTTP layer returns to
callers next to the human readable message.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class DealEngineError(Exception):
    """Base exception for all application errors."""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", error_code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.error_code}


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(DealEngineError):
    """Raised when required configuration is missing or invalid."""

    error_code = "CONFIGURATION_ERROR"


class MissingCredentialsError(ConfigurationError):
    """Raised when a required secret (signing, hashing, encryption key) is not configured."""

    error_code = "MISSING_CREDENTIALS"


# =============================================================================
# Validation Errors (malformed input, nothing persisted)
# =============================================================================


class ValidationError(DealEngineError):
    """Raised when input to a public operation is malformed or out of range."""

    error_code = "VALIDATION_ERROR"


class InvalidPhoneNumberError(ValidationError):
    """Raised when a phone number is invalid or cannot be normalized."""

    error_code = "INVALID_PHONE_NUMBER"


class InvalidRuleError(ValidationError):
    """Raised when a qualification rule's comparand does not fit its operator."""

    error_code = "INVALID_RULE"


class UnknownOperatorError(InvalidRuleError):
    """Raised when the rule engine meets an operator it does not implement."""

    error_code = "UNKNOWN_OPERATOR"


# =============================================================================
# Not Found / Ownership
# =============================================================================


class NotFoundError(DealEngineError):
    """Raised when an entity is absent or not owned by the caller."""

    error_code = "NOT_FOUND"


class DealNotFoundError(NotFoundError):
    """Absent and foreign deals are indistinguishable to the caller."""

    error_code = "DEAL_NOT_FOUND"

    def __init__(self, deal_id: int) -> None:
        super().__init__(f"Deal {deal_id} not found")
        self.deal_id = deal_id


# =============================================================================
# Business Rule Rejections (well-formed request, decision was "no")
# =============================================================================


class BusinessRuleError(DealEngineError):
    """Base exception for requests refused by the state graph or a legal gate."""

    error_code = "BUSINESS_RULE_REJECTED"


class InvalidTransitionError(BusinessRuleError):
    """Raised when a deal status change is not an edge of the lifecycle graph."""

    error_code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        target_status: Optional[str] = None,
        valid_next: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status
        self.valid_next = valid_next or []

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["current_status"] = self.current_status
        data["valid_transitions"] = self.valid_next
        return data


class MissingTransitionDataError(InvalidTransitionError):
    """Raised when the target state requires payload that was not supplied."""

    error_code = "MISSING_TRANSITION_DATA"


class TCPAError(BusinessRuleError):
    """Raised when a contact attempt is refused by the consent/DNC gate."""

    error_code = "TCPA_VIOLATION"
    violation_type = "TCPA"


# Alias kept for callers that speak in terms of violations
TCPAViolationError = TCPAError


class DncBlockedError(TCPAError):
    """The phone is on the Do-Not-Call list. Nothing was logged."""

    error_code = "DNC_LIST_BLOCKED"
    violation_type = "DNC_LIST"


class ConsentViolationError(TCPAError):
    """
    Contact attempted without consent.

    Unlike every other rejection, the attempt WAS persisted: ``contact_log_id``
    references the ContactLog row written before this error was raised.
    """

    error_code = "NO_CONSENT"
    violation_type = "NO_CONSENT"

    def __init__(self, message: str, contact_log_id: int) -> None:
        super().__init__(message)
        self.contact_log_id = contact_log_id


# =============================================================================
# Audit Integrity
# =============================================================================


class ImmutableRecordError(DealEngineError):
    """Raised on an attempt to update or delete an append-only audit row."""

    error_code = "IMMUTABLE_RECORD"


class RetentionViolationError(DealEngineError):
    """Raised on an attempt to delete a consent record inside its retention window."""

    error_code = "RETENTION_VIOLATION"


# =============================================================================
# Infrastructure Errors
# =============================================================================


class DatabaseError(DealEngineError):
    """Base exception for store failures."""

    error_code = "DATABASE_ERROR"


class ConcurrencyConflictError(DatabaseError):
    """Raised when a deal kept changing underneath a transition past the retry bound."""

    error_code = "CONCURRENT_MODIFICATION"


class DecryptionError(DealEngineError):
    """Raised when a stored phone ciphertext cannot be authenticated or decoded."""

    error_code = "DECRYPTION_FAILED"


class ExternalServiceError(DealEngineError):
    """Base exception for collaborator failures (job runner, identity provider)."""

    error_code = "EXTERNAL_SERVICE_ERROR"


class ServiceUnavailableError(ExternalServiceError):
    """Raised when a collaborator such as the job runner is unavailable."""

    error_code = "SERVICE_UNAVAILABLE"


__all__ = [
    # Base
    "DealEngineError",
    # Configuration
    "ConfigurationError",
    "MissingCredentialsError",
    # Validation
    "ValidationError",
    "InvalidPhoneNumberError",
    "InvalidRuleError",
    "UnknownOperatorError",
    # Not found
    "NotFoundError",
    "DealNotFoundError",
    # Business rules
    "BusinessRuleError",
    "InvalidTransitionError",
    "MissingTransitionDataError",
    "TCPAError",
    "TCPAViolationError",
    "DncBlockedError",
    "ConsentViolationError",
    # Audit integrity
    "ImmutableRecordError",
    "RetentionViolationError",
    # Infrastructure
    "DatabaseError",
    "ConcurrencyConflictError",
    "DecryptionError",
    "ExternalServiceError",
    "ServiceUnavailableError",
]
