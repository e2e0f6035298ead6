"""
Deal qualification: evaluate the deal's property against the user's rules and
persist the outcome.

The engine itself is pure (scoring.rule_engine); this service supplies the
property context and the ordered rules, then applies the recommended status,
the score and one RuleEvaluationLog per evaluated rule in a single flush
through the lifecycle state machine.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from core.config import get_settings
from core.exceptions import InvalidTransitionError
from core.logging_config import get_context_logger
from core.models import Deal, DealStatus, Property, RuleEvaluationLog
from core.utils import ensure_aware, utcnow
from domain.deals import DealService
from domain.lifecycle import DealLifecycle, TransitionResult
from domain.rules import RuleService
from scoring.rule_engine import EvaluationResult, evaluate

# Statuses from which a deal may be (re-)qualified
QUALIFIABLE_STATES = frozenset({DealStatus.NEW, DealStatus.ANALYZING, DealStatus.QUALIFIED})


def _days_since(moment: Optional[datetime], now: datetime) -> Optional[int]:
    moment = ensure_aware(moment)
    if moment is None:
        return None
    return max((now - moment).days, 0)


def build_property_context(prop: Property, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Flatten a property into the mapping rules are evaluated against.

    Keys are snake_case; rule field names may use either snake_case or
    camelCase (``distressSignals``) and dot-paths into ``raw_data``.
    """
    now = now or utcnow()
    return {
        "address": prop.address,
        "city": prop.city,
        "state": prop.state,
        "zip_code": prop.zip_code,
        "zip": prop.zip_code,
        "property_type": prop.property_type,
        "estimated_value": prop.estimated_value,
        "last_sale_price": prop.last_sale_price,
        "tax_assessed_value": prop.tax_assessed_value,
        "equity_percent": prop.equity_percent,
        "annual_property_tax": prop.annual_property_tax,
        "debt_owed": prop.debt_owed,
        "interest_rate": prop.interest_rate,
        "year_built": prop.year_built,
        "square_footage": prop.square_footage,
        "unit_count": prop.unit_count,
        "owner_occupied": prop.owner_occupied,
        "distress_signals": dict(prop.distress_signals or {}),
        "raw_data": dict(prop.raw_data or {}),
        "data_freshness_date": prop.data_freshness_date,
        "days_on_market": _days_since(prop.data_freshness_date, now),
    }


@dataclass
class QualificationOutcome:
    evaluation: EvaluationResult
    transition: TransitionResult

    def to_dict(self) -> Dict[str, Any]:
        data = self.evaluation.to_dict()
        data["previous_status"] = self.transition.previous_status
        data["status_changed"] = self.transition.history_id is not None
        return data


class QualificationService:
    """Runs the rule engine for a deal and persists its recommendation."""

    def __init__(self, session: Session, lifecycle: Optional[DealLifecycle] = None):
        self.session = session
        self.settings = get_settings()
        self.lifecycle = lifecycle or DealLifecycle(session)
        self.deals = DealService(session)
        self.rules = RuleService(session)

    def qualify(self, deal_id: int, user_id: int) -> QualificationOutcome:
        """
        Evaluate and persist.

        Raises:
            DealNotFoundError: deal absent or not owned by ``user_id``.
            InvalidTransitionError: deal is past qualification, or the
                recommended status is not reachable from the current one.
        """
        log = get_context_logger(__name__, deal_id=deal_id, user_id=user_id)
        deal = self.deals.get_deal(deal_id, user_id)

        rules = self.rules.list_rules(user_id)
        context = build_property_context(deal.property)
        evaluation = evaluate(context, rules, self.settings.qualification_min_score)

        def plan(current_deal: Deal) -> Tuple[DealStatus, Dict[str, Any]]:
            current = DealStatus(current_deal.status)
            if current not in QUALIFIABLE_STATES:
                raise InvalidTransitionError(
                    f"Deal in {current.value} can no longer be qualified",
                    current_status=current.value,
                    target_status=evaluation.status.value,
                    valid_next=self.lifecycle.valid_next_states(current),
                )
            target = evaluation.status
            if target != current:
                self.lifecycle.check_edge(current, target)

            updates: Dict[str, Any] = {
                "qualification_score": evaluation.qualification_score,
                "creative_finance_types": list(evaluation.creative_finance_types),
            }
            if target == DealStatus.REJECTED:
                failed = [e.rule_name for e in evaluation.rule_breakdown if e.rule_type == "FILTER" and not e.passed]
                updates["rejection_reason"] = "Failed qualification filters: " + ", ".join(failed)
            return target, updates

        transition = self.lifecycle.apply_change(deal_id, user_id, plan)

        self.session.add_all(self._evaluation_logs(deal_id, evaluation))
        self.session.flush()

        log.info(
            "Qualified deal: status=%s score=%d rules=%d",
            evaluation.status.value, evaluation.qualification_score, len(evaluation.rule_breakdown),
        )
        return QualificationOutcome(evaluation=evaluation, transition=transition)

    @staticmethod
    def _evaluation_logs(deal_id: int, evaluation: EvaluationResult) -> List[RuleEvaluationLog]:
        return [
            RuleEvaluationLog(
                deal_id=deal_id,
                rule_id=entry.rule_id,
                evaluation_result=entry.result,
                score_awarded=entry.scored,
            )
            for entry in evaluation.rule_breakdown
        ]


def get_qualification_service(session: Session) -> QualificationService:
    """Factory function for QualificationService."""
    return QualificationService(session)


__all__ = [
    "QUALIFIABLE_STATES",
    "QualificationOutcome",
    "QualificationService",
    "build_property_context",
    "get_qualification_service",
]
