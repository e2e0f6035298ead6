"""TCPA compliance: phone privacy, the consent/DNC gate and the contact audit trail."""
from __future__ import annotations

from .tcpa_gate import ConsentMetadata, ContactGate, OptOutResult, consent_receipt, get_contact_gate

__all__ = [
    "ConsentMetadata",
    "ContactGate",
    "OptOutResult",
    "consent_receipt",
    "get_contact_gate",
]
