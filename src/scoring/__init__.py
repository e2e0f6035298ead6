"""Deal qualification scoring: rule operators, rule engine, creative finance."""
from __future__ import annotations

from .rule_engine import EvaluationResult, RuleBreakdownEntry, RuleSpec, evaluate

__all__ = [
    "evaluate",
    "EvaluationResult",
    "RuleBreakdownEntry",
    "RuleSpec",
]
