"""
Qualification rule management.

Comparands are validated when a rule is created, keyed by operator, so the
engine never meets a value whose type cannot fit its operator:

    GT, LT             -> number
    RANGE              -> {"min": number, "max": number}, min <= max
    IN                 -> non-empty list of scalars
    CONTAINS, NOT_CONTAINS -> string
    EQ                 -> scalar (number, string, bool)
"""
from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.exceptions import InvalidRuleError, NotFoundError
from core.logging_config import get_logger
from core.models import QualificationRule, RuleEvaluationLog, RuleOperator, RuleType
from scoring.creative_finance import parse_creative_finance_type
from scoring.operators import parse_operator

LOGGER = get_logger(__name__)

MAX_WEIGHT = 100


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, bool)) or _is_number(value)


def validate_rule_value(operator: Any, value: Any) -> Any:
    """
    Check a comparand against its operator and return it normalized.

    Raises:
        UnknownOperatorError: operator not implemented.
        InvalidRuleError: comparand does not fit the operator.
    """
    op = parse_operator(operator)

    if op in (RuleOperator.GT, RuleOperator.LT):
        if not _is_number(value):
            raise InvalidRuleError(f"{op.value} requires a numeric value")
        return value

    if op == RuleOperator.RANGE:
        if not isinstance(value, dict) or not {"min", "max"} <= set(value):
            raise InvalidRuleError("RANGE requires an object with min and max")
        low, high = value["min"], value["max"]
        if not (_is_number(low) and _is_number(high)):
            raise InvalidRuleError("RANGE bounds must be numbers")
        if low > high:
            raise InvalidRuleError("RANGE min must not exceed max")
        return {"min": low, "max": high}

    if op == RuleOperator.IN:
        if not isinstance(value, list) or not value or not all(_is_scalar(v) for v in value):
            raise InvalidRuleError("IN requires a non-empty list of scalar values")
        return list(value)

    if op in (RuleOperator.CONTAINS, RuleOperator.NOT_CONTAINS):
        if not isinstance(value, str) or not value:
            raise InvalidRuleError(f"{op.value} requires a non-empty string value")
        return value

    if not _is_scalar(value):
        raise InvalidRuleError("EQ requires a scalar value")
    return value


class RuleService:
    """CRUD over a user's qualification rules."""

    def __init__(self, session: Session):
        self.session = session

    def create_rule(
        self,
        user_id: int,
        name: str,
        rule_type: Any,
        field_name: str,
        operator: Any,
        value: Any,
        weight: int = 0,
        enabled: bool = True,
        description: Optional[str] = None,
        rule_subtype: Optional[str] = None,
    ) -> QualificationRule:
        if not name or not name.strip():
            raise InvalidRuleError("Rule name is required")
        if not field_name or not field_name.strip():
            raise InvalidRuleError("field_name is required")
        try:
            parsed_type = RuleType(str(getattr(rule_type, "value", rule_type)).upper())
        except ValueError:
            raise InvalidRuleError(f"Unknown rule type: {rule_type!r}") from None
        if not _is_number(weight) or not 0 <= weight <= MAX_WEIGHT:
            raise InvalidRuleError(f"weight must be between 0 and {MAX_WEIGHT}")

        op = parse_operator(operator)
        normalized = validate_rule_value(op, value)
        subtype = parse_creative_finance_type(rule_subtype).value if rule_subtype else None

        rule = QualificationRule(
            user_id=user_id,
            name=name.strip(),
            description=description,
            rule_type=parsed_type.value,
            rule_subtype=subtype,
            field_name=field_name.strip(),
            operator=op.value,
            value=normalized,
            # FILTER rules never contribute score
            weight=int(weight) if parsed_type == RuleType.SCORE_COMPONENT else 0,
            enabled=enabled,
        )
        self.session.add(rule)
        self.session.flush()
        LOGGER.info("Rule %s (%s %s) created for user %s", rule.id, rule.rule_type, rule.operator, user_id)
        return rule

    def list_rules(self, user_id: int, enabled_only: bool = False) -> List[QualificationRule]:
        """Rules in evaluation order: rule type, then creation time."""
        stmt = select(QualificationRule).where(QualificationRule.user_id == user_id)
        if enabled_only:
            stmt = stmt.where(QualificationRule.enabled.is_(True))
        stmt = stmt.order_by(
            QualificationRule.rule_type.asc(),
            QualificationRule.created_at.asc(),
            QualificationRule.id.asc(),
        )
        return list(self.session.execute(stmt).scalars().all())

    def get_rule(self, rule_id: int, user_id: int) -> QualificationRule:
        rule = self.session.execute(
            select(QualificationRule).where(
                QualificationRule.id == rule_id,
                QualificationRule.user_id == user_id,
            )
        ).scalar_one_or_none()
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found")
        return rule

    def set_enabled(self, rule_id: int, user_id: int, enabled: bool) -> QualificationRule:
        rule = self.get_rule(rule_id, user_id)
        rule.enabled = enabled
        self.session.flush()
        return rule

    def delete_rule(self, rule_id: int, user_id: int) -> None:
        """
        Delete a rule with no evaluation history.

        Rules referenced by evaluation logs are disabled instead so the audit
        of past scores stays intact.
        """
        rule = self.get_rule(rule_id, user_id)
        referenced = self.session.execute(
            select(RuleEvaluationLog.id).where(RuleEvaluationLog.rule_id == rule_id).limit(1)
        ).first()
        if referenced:
            rule.enabled = False
            LOGGER.info("Rule %s has evaluation history; disabled instead of deleted", rule_id)
        else:
            self.session.delete(rule)
        self.session.flush()


def get_rule_service(session: Session) -> RuleService:
    """Factory function for RuleService."""
    return RuleService(session)


__all__ = ["RuleService", "get_rule_service", "validate_rule_value"]
