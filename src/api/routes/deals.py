"""Deal routes: creation, reads, qualification, lifecycle transitions and analysis."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.auth_deps import get_current_user
from api.deps import get_db, get_readonly_db
from core.logging_config import get_logger
from core.models import User
from domain.deals import DealDetail, DealService
from domain.lifecycle import DealLifecycle
from domain.qualification import QualificationService
from services.deal_analyzer import analyze_deal
from services.offer_calculator import calculate_mao, get_offer_calculator

router = APIRouter()
LOGGER = get_logger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================


class DealCreate(BaseModel):
    """Request body for deal creation."""

    property_id: int = Field(..., description="Property the deal is for")
    title: Optional[str] = Field(None, max_length=255, description="Defaults to the property address")


class TransitionRequest(BaseModel):
    """Request body for a lifecycle transition."""

    target_state: str = Field(..., description="Target deal status, e.g. OFFERED")
    notes: Optional[str] = None
    transition_data: Optional[Dict[str, Any]] = Field(
        None,
        description="closed_date / estimated_profit for CLOSED, rejection_reason for REJECTED",
    )


class MAORequest(BaseModel):
    """Request body for the MAO calculator. Bounds are checked by the calculator."""

    estimated_value: float
    repair_costs: float = 0.0
    discount: Optional[float] = Field(None, description="Fraction taken off the MAO for the suggested offer")


class AnalyzeRequest(BaseModel):
    repair_costs: float = 0.0
    purchase_price: Optional[float] = None


# =============================================================================
# Routes
# =============================================================================


@router.post("/mao")
async def compute_mao(
    body: MAORequest,
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Maximum allowable offer: (estimatedValue × 0.70) − repairCosts, floored at 0."""
    mao = calculate_mao(body.estimated_value, body.repair_costs)
    result = mao.to_dict()
    if body.discount is not None:
        result["suggested_offer"] = get_offer_calculator().suggest_offer(mao.mao, body.discount).to_dict()
    return result


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_deal(
    body: DealCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    service = DealService(db)
    deal = service.create_deal(current_user.id, body.property_id, body.title)
    return DealDetail.from_model(deal).to_dict()


@router.get("/{deal_id}")
async def get_deal(
    deal_id: int,
    db: Session = Depends(get_readonly_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Deal with its full status history."""
    return DealService(db).get_deal_detail(deal_id, current_user.id).to_dict()


@router.post("/{deal_id}/qualify")
async def qualify_deal(
    deal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Evaluate the user's rules against the deal's property and persist the outcome."""
    outcome = QualificationService(db).qualify(deal_id, current_user.id)
    return outcome.to_dict()


@router.post("/{deal_id}/transition")
async def transition_deal(
    deal_id: int,
    body: TransitionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    lifecycle = DealLifecycle(db)
    result = lifecycle.transition(
        deal_id,
        body.target_state,
        current_user.id,
        notes=body.notes,
        transition_data=body.transition_data,
    )
    return result.to_dict()


@router.post("/{deal_id}/analyze")
async def analyze(
    deal_id: int,
    body: Optional[AnalyzeRequest] = None,
    db: Session = Depends(get_readonly_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """Comp validation, rehab traps, liquidity, strategy and risk flags for the deal's property."""
    body = body or AnalyzeRequest()
    deal = DealService(db).get_deal(deal_id, current_user.id)
    analysis = analyze_deal(deal.property, body.repair_costs, body.purchase_price)

    result = {"deal_id": deal.id, **analysis.to_dict()}
    if deal.property.estimated_value is not None:
        result["mao"] = calculate_mao(deal.property.estimated_value, body.repair_costs).to_dict()
    return result
