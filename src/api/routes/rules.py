"""Qualification rule management routes."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.auth_deps import get_current_user
from api.deps import get_db, get_readonly_db
from core.models import QualificationRule, User
from domain.rules import RuleService

router = APIRouter()


# =============================================================================
# Pydantic Models
# =============================================================================


class RuleCreate(BaseModel):
    """Request body for rule creation. The comparand is checked against the operator."""

    name: str
    rule_type: str = Field(..., description="FILTER or SCORE_COMPONENT")
    field_name: str = Field(..., description="Property field or dot-path, e.g. distressSignals")
    operator: str = Field(..., description="GT, LT, EQ, IN, CONTAINS, NOT_CONTAINS or RANGE")
    value: Any = None
    weight: int = 0
    enabled: bool = True
    description: Optional[str] = None
    rule_subtype: Optional[str] = Field(None, description="Creative-finance type this rule detects")


class RuleUpdate(BaseModel):
    enabled: bool


def _rule_to_dict(rule: QualificationRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "rule_type": rule.rule_type,
        "rule_subtype": rule.rule_subtype,
        "field_name": rule.field_name,
        "operator": rule.operator,
        "value": rule.value,
        "weight": rule.weight,
        "enabled": rule.enabled,
        "created_at": rule.created_at.isoformat() if rule.created_at else None,
    }


# =============================================================================
# Routes
# =============================================================================


@router.get("")
async def list_rules(
    enabled_only: bool = Query(default=False),
    db: Session = Depends(get_readonly_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """The user's rules in evaluation order."""
    rules = RuleService(db).list_rules(current_user.id, enabled_only=enabled_only)
    return {"items": [_rule_to_dict(r) for r in rules], "total": len(rules)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_rule(
    body: RuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    rule = RuleService(db).create_rule(
        current_user.id,
        name=body.name,
        rule_type=body.rule_type,
        field_name=body.field_name,
        operator=body.operator,
        value=body.value,
        weight=body.weight,
        enabled=body.enabled,
        description=body.description,
        rule_subtype=body.rule_subtype,
    )
    db.refresh(rule)
    return _rule_to_dict(rule)


@router.patch("/{rule_id}")
async def update_rule(
    rule_id: int,
    body: RuleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    rule = RuleService(db).set_enabled(rule_id, current_user.id, body.enabled)
    return _rule_to_dict(rule)


@router.delete("/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    """Delete a rule; rules with evaluation history are disabled instead."""
    RuleService(db).delete_rule(rule_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
