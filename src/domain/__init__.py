"""Domain layer: deal lifecycle, qualification and rule management.

All status changes go through DealLifecycle; the API and CLI call these
services rather than touching models directly.
"""
from __future__ import annotations

from .deals import DealDetail, DealService
from .lifecycle import DEFAULT_TRANSITIONS, DealLifecycle, TransitionResult
from .qualification import QualificationOutcome, QualificationService, build_property_context
from .rules import RuleService, validate_rule_value

__all__ = [
    "DEFAULT_TRANSITIONS",
    "DealDetail",
    "DealLifecycle",
    "DealService",
    "QualificationOutcome",
    "QualificationService",
    "RuleService",
    "TransitionResult",
    "build_property_context",
    "validate_rule_value",
]
