"""
TCPA compliance routes: contact gate, DNC pre-flight, consent capture,
opt-out and the contact audit.

Request bodies carry raw phone numbers; no response ever does.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.auth_deps import get_current_user
from api.deps import get_db, get_readonly_db
from compliance.audit import DEFAULT_PAGE_SIZE, list_contact_logs
from compliance.tcpa_gate import ConsentMetadata, ContactGate, consent_receipt
from core.exceptions import ConsentViolationError
from core.models import User

router = APIRouter()


# =============================================================================
# Pydantic Models
# =============================================================================


class ContactAttempt(BaseModel):
    """Request body for the contact gate."""

    property_id: int
    phone: str = Field(..., description="Owner phone number in any common format")
    contact_method: str = Field(..., description="EMAIL, CALL, SMS or LETTER")
    consent_status: str = Field(
        ...,
        description="EXPRESS_WRITTEN_CONSENT, PRIOR_EXPRESS_CONSENT, NO_CONSENT_OBTAINED or DO_NOT_CALL",
    )
    consent_timestamp: Optional[datetime] = None
    consent_medium: Optional[str] = None
    consent_details: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None


class PhoneCheck(BaseModel):
    phone: str


class ConsentCreate(BaseModel):
    """Request body for recording a consent event."""

    phone: str
    consent_method: str = Field(..., description="How consent was captured, e.g. web_form")
    disclosures: List[str] = Field(default_factory=list)
    notes: Optional[str] = None


class OptOutRequest(BaseModel):
    phone: str
    opt_out_method: str = Field(..., description="Channel the opt-out arrived on, e.g. SMS_STOP")
    notes: Optional[str] = None


# =============================================================================
# Routes
# =============================================================================


@router.post("/contacts", status_code=status.HTTP_201_CREATED)
async def validate_contact(
    body: ContactAttempt,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    """
    Gate a contact attempt.

    201 when allowed, 403 DNC_LIST_BLOCKED when the number is on the DNC
    list (nothing recorded), 200 with ``violation: true`` when no consent
    was asserted. The violation response is returned rather than raised so
    the session commits the audit row.
    """
    gate = ContactGate(db)
    metadata = ConsentMetadata(
        timestamp=body.consent_timestamp,
        medium=body.consent_medium,
        details=body.consent_details,
    )
    try:
        contact_log = gate.validate_contact(
            property_id=body.property_id,
            phone=body.phone,
            contact_method=body.contact_method,
            consent_status=body.consent_status,
            user_id=current_user.id,
            consent_metadata=metadata,
            notes=body.notes,
        )
    except ConsentViolationError as exc:
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={
                "allowed": False,
                "violation": True,
                "contact_log_id": exc.contact_log_id,
                **exc.to_dict(),
            },
        )

    return {
        "allowed": True,
        "violation": False,
        "contact_log_id": contact_log.id,
        "consent_status": contact_log.consent_status,
    }


@router.post("/dnc-check")
async def dnc_check(
    body: PhoneCheck,
    db: Session = Depends(get_readonly_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Pre-flight DNC lookup. Records nothing."""
    return {"on_dnc_list": ContactGate(db).check_on_dnc_list(body.phone)}


@router.post("/consent", status_code=status.HTTP_201_CREATED)
async def record_consent(
    body: ConsentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    record = ContactGate(db).record_consent(
        body.phone, body.consent_method, body.disclosures, notes=body.notes
    )
    return consent_receipt(record)


@router.post("/opt-out")
async def opt_out(
    body: OptOutRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Permanent DNC entry plus revocation of active consents, effective immediately."""
    result = ContactGate(db).process_opt_out(body.phone, body.opt_out_method, notes=body.notes)
    return result.to_dict()


@router.get("/audit")
async def audit_log(
    page: int = Query(default=1),
    limit: int = Query(default=DEFAULT_PAGE_SIZE),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    contact_method: Optional[str] = Query(default=None),
    consent_status: Optional[str] = Query(default=None),
    db: Session = Depends(get_readonly_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """The user's contact attempts, newest first."""
    audit_page = list_contact_logs(
        db,
        current_user.id,
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        contact_method=contact_method,
        consent_status=consent_status,
    )
    return audit_page.to_dict()
