"""
Creative-finance rule matching.

A qualification rule with a ``rule_subtype`` flags a creative-finance
structure instead of gating or scoring the deal directly. Each matching rule
awards a flat bonus and adds its structure to the deal's deduplicated list.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from core.exceptions import InvalidRuleError
from core.models import CreativeFinanceType
from scoring.operators import apply_operator, resolve_field

CREATIVE_FINANCE_BONUS = 20

CREATIVE_FINANCE_DESCRIPTIONS: Dict[CreativeFinanceType, str] = {
    CreativeFinanceType.SUBJECT_TO: "Take over existing mortgage payments",
    CreativeFinanceType.SELLER_FINANCE: "Seller acts as the bank",
    CreativeFinanceType.OWNER_OCCUPIED_VACATED: "Owner moved out, property vacant",
    CreativeFinanceType.LEASE_OPTION: "Lease with option to purchase",
    CreativeFinanceType.BRRRR: "Buy, Rehab, Rent, Refinance, Repeat",
    CreativeFinanceType.WHOLESALE: "Assign contract to end buyer",
    CreativeFinanceType.LAND_CONTRACT: "Installment sale, deed transfers at payoff",
    CreativeFinanceType.RENT_TO_OWN: "Tenant-buyer with rent credits",
}


def parse_creative_finance_type(subtype: Any) -> CreativeFinanceType:
    if isinstance(subtype, CreativeFinanceType):
        return subtype
    try:
        return CreativeFinanceType(str(subtype).upper())
    except ValueError:
        raise InvalidRuleError(f"Unknown creative finance type: {subtype!r}") from None


@dataclass
class CreativeFinanceMatch:
    """Outcome of the creative-finance rules for one snapshot."""
    types: List[str] = field(default_factory=list)
    matches: List[Tuple[Any, bool]] = field(default_factory=list)

    @property
    def bonus(self) -> int:
        return CREATIVE_FINANCE_BONUS * sum(1 for _, matched in self.matches if matched)

    def descriptions(self) -> Dict[str, str]:
        return {t: CREATIVE_FINANCE_DESCRIPTIONS[CreativeFinanceType(t)] for t in self.types}


def match_creative_finance(context: Mapping[str, Any], rules: Sequence[Any]) -> CreativeFinanceMatch:
    """Evaluate subtype rules in order; first occurrence of a type wins its slot."""
    result = CreativeFinanceMatch()
    for rule in rules:
        cf_type = parse_creative_finance_type(rule.rule_subtype)
        matched = apply_operator(rule.operator, resolve_field(context, rule.field_name), rule.value)
        result.matches.append((rule, matched))
        if matched and cf_type.value not in result.types:
            result.types.append(cf_type.value)
    return result


__all__ = [
    "CREATIVE_FINANCE_BONUS",
    "CREATIVE_FINANCE_DESCRIPTIONS",
    "CreativeFinanceMatch",
    "match_creative_finance",
    "parse_creative_finance_type",
]
