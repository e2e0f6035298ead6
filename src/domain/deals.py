"""Deal domain service: creation and user-scoped reads."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from core.exceptions import DealNotFoundError, NotFoundError
from core.logging_config import get_logger
from core.models import Deal, DealStatus, Property

LOGGER = get_logger(__name__)


@dataclass
class HistoryEntry:
    field_changed: str
    old_value: Optional[str]
    new_value: Optional[str]
    user_id: int
    created_at: datetime


@dataclass
class DealDetail:
    """Read model for a deal and its status history."""
    id: int
    property_id: int
    title: Optional[str]
    status: str
    qualification_score: Optional[int]
    creative_finance_types: List[str]
    estimated_profit: Optional[float]
    closed_date: Optional[datetime]
    rejection_reason: Optional[str]
    notes: Optional[str]
    history: List[HistoryEntry] = field(default_factory=list)

    @classmethod
    def from_model(cls, deal: Deal) -> "DealDetail":
        return cls(
            id=deal.id,
            property_id=deal.property_id,
            title=deal.title,
            status=deal.status,
            qualification_score=deal.qualification_score,
            creative_finance_types=list(deal.creative_finance_types or []),
            estimated_profit=deal.estimated_profit,
            closed_date=deal.closed_date,
            rejection_reason=deal.rejection_reason,
            notes=deal.notes,
            history=[
                HistoryEntry(
                    field_changed=h.field_changed,
                    old_value=h.old_value,
                    new_value=h.new_value,
                    user_id=h.user_id,
                    created_at=h.created_at,
                )
                for h in deal.history
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "title": self.title,
            "status": self.status,
            "qualification_score": self.qualification_score,
            "creative_finance_types": self.creative_finance_types,
            "estimated_profit": self.estimated_profit,
            "closed_date": self.closed_date.isoformat() if self.closed_date else None,
            "rejection_reason": self.rejection_reason,
            "notes": self.notes,
            "history": [
                {
                    "field_changed": h.field_changed,
                    "old_value": h.old_value,
                    "new_value": h.new_value,
                    "user_id": h.user_id,
                    "created_at": h.created_at.isoformat() if h.created_at else None,
                }
                for h in self.history
            ],
        }


class DealService:
    """Deal creation and reads. Status changes belong to DealLifecycle."""

    def __init__(self, session: Session):
        self.session = session

    def create_deal(self, user_id: int, property_id: int, title: Optional[str] = None) -> Deal:
        prop = self.session.get(Property, property_id)
        if prop is None:
            raise NotFoundError(f"Property {property_id} not found")

        deal = Deal(
            user_id=user_id,
            property_id=property_id,
            title=title or prop.address,
            status=DealStatus.NEW.value,
            version=1,
        )
        self.session.add(deal)
        self.session.flush()
        LOGGER.info("Deal %s created for property %s by user %s", deal.id, property_id, user_id)
        return deal

    def get_deal(self, deal_id: int, user_id: int) -> Deal:
        """Load a deal owned by ``user_id``; anything else is DealNotFoundError."""
        deal = self.session.execute(
            select(Deal)
            .options(selectinload(Deal.history), selectinload(Deal.property))
            .where(Deal.id == deal_id, Deal.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if deal is None:
            raise DealNotFoundError(deal_id)
        return deal

    def get_deal_detail(self, deal_id: int, user_id: int) -> DealDetail:
        return DealDetail.from_model(self.get_deal(deal_id, user_id))


def get_deal_service(session: Session) -> DealService:
    """Factory function for DealService."""
    return DealService(session)


__all__ = ["DealDetail", "DealService", "get_deal_service"]
