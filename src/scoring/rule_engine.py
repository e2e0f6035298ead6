"""
Rule Evaluation Engine for deal qualification.

Pure and deterministic: a property context plus an ordered rule set in, a
score, a recommended status and a per-rule breakdown out. No database access,
no logging of business outcomes, no exceptions for "no" answers.

FILTER rules are gates. If any enabled FILTER fails the deal is REJECTED with
score 0, but every SCORE_COMPONENT rule is still evaluated so the breakdown
explains the full picture.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.exceptions import InvalidRuleError
from core.models import DealStatus, RuleResult, RuleType
from scoring.creative_finance import CREATIVE_FINANCE_BONUS, match_creative_finance
from scoring.operators import apply_operator, resolve_field

# Score at or above which a passing deal is QUALIFIED rather than ANALYZING
DEFAULT_MIN_QUALIFIED_SCORE = 0

_RULE_TYPE_ORDER = {RuleType.FILTER.value: 0, RuleType.SCORE_COMPONENT.value: 1}


@dataclass
class RuleSpec:
    """In-memory rule, interchangeable with a QualificationRule row."""
    id: Any
    name: str
    rule_type: str
    field_name: str
    operator: str
    value: Any = None
    weight: int = 0
    enabled: bool = True
    rule_subtype: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class RuleBreakdownEntry:
    """How one rule fared and what it contributed."""
    rule_id: Any
    rule_name: str
    rule_type: str
    result: str
    scored: int

    @property
    def passed(self) -> bool:
        return self.result == RuleResult.PASS.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "rule_type": self.rule_type,
            "result": self.result,
            "scored": self.scored,
        }


@dataclass
class EvaluationResult:
    """Complete evaluation outcome."""
    status: DealStatus
    qualification_score: int
    rule_breakdown: List[RuleBreakdownEntry] = field(default_factory=list)
    creative_finance_types: List[str] = field(default_factory=list)

    @property
    def rejected(self) -> bool:
        return self.status == DealStatus.REJECTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "qualification_score": self.qualification_score,
            "rule_breakdown": [entry.to_dict() for entry in self.rule_breakdown],
            "creative_finance_types": list(self.creative_finance_types),
        }


def _rule_type(rule: Any) -> str:
    value = getattr(rule.rule_type, "value", rule.rule_type)
    if value not in _RULE_TYPE_ORDER:
        raise InvalidRuleError(f"Rule {rule.id} has unknown rule type {value!r}")
    return value


def order_rules(rules: Sequence[Any]) -> List[Any]:
    """FILTER before SCORE_COMPONENT, otherwise keeping the given order."""
    return sorted(rules, key=lambda rule: _RULE_TYPE_ORDER[_rule_type(rule)])


def _check(rule: Any, context: Mapping[str, Any]) -> bool:
    return apply_operator(rule.operator, resolve_field(context, rule.field_name), rule.value)


def _entry(rule: Any, rule_type: str, passed: bool, scored: int) -> RuleBreakdownEntry:
    return RuleBreakdownEntry(
        rule_id=rule.id,
        rule_name=rule.name,
        rule_type=rule_type,
        result=RuleResult.PASS.value if passed else RuleResult.FAIL.value,
        scored=scored,
    )


def evaluate(
    context: Mapping[str, Any],
    rules: Sequence[Any],
    min_qualified_score: int = DEFAULT_MIN_QUALIFIED_SCORE,
) -> EvaluationResult:
    """
    Evaluate a property context against a rule set.

    Args:
        context: Flat property snapshot (see domain.qualification.build_property_context).
        rules: QualificationRule rows or RuleSpec objects. Disabled rules are ignored.
        min_qualified_score: Threshold separating QUALIFIED from ANALYZING.

    Returns:
        EvaluationResult whose breakdown scores always sum to the total.

    Raises:
        UnknownOperatorError / InvalidRuleError: only for malformed rules.
    """
    active = [rule for rule in rules if rule.enabled]
    finance_rules = [rule for rule in active if getattr(rule, "rule_subtype", None)]
    ordered = order_rules([rule for rule in active if not getattr(rule, "rule_subtype", None)])

    breakdown: List[RuleBreakdownEntry] = []
    rejected = False
    score = 0

    for rule in ordered:
        rule_type = _rule_type(rule)
        passed = _check(rule, context)

        if rule_type == RuleType.FILTER.value:
            if not passed:
                rejected = True
            breakdown.append(_entry(rule, rule_type, passed, 0))
            continue

        # FILTER rules sort first, so `rejected` is final by now
        awarded = int(rule.weight or 0) if passed and not rejected else 0
        score += awarded
        breakdown.append(_entry(rule, rule_type, passed, awarded))

    finance = match_creative_finance(context, finance_rules)
    for rule, matched in finance.matches:
        awarded = CREATIVE_FINANCE_BONUS if matched and not rejected else 0
        score += awarded
        breakdown.append(_entry(rule, _rule_type(rule), matched, awarded))

    if rejected:
        status = DealStatus.REJECTED
    elif score >= min_qualified_score:
        status = DealStatus.QUALIFIED
    else:
        status = DealStatus.ANALYZING

    return EvaluationResult(
        status=status,
        qualification_score=score,
        rule_breakdown=breakdown,
        creative_finance_types=finance.types,
    )


__all__ = [
    "DEFAULT_MIN_QUALIFIED_SCORE",
    "EvaluationResult",
    "RuleBreakdownEntry",
    "RuleSpec",
    "evaluate",
    "order_rules",
]
