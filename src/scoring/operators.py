"""
Comparison operators and dot-path field resolution for qualification rules.

Every operator is total: a missing field, or a field whose type does not fit
the operator, compares as False. The only error raised here is for an
operator name the engine does not implement.
"""
from __future__ import annotations

import re
from typing import Any, Callable, Dict, Mapping, Optional

from core.exceptions import UnknownOperatorError
from core.models import RuleOperator


class _Missing:
    """Sentinel for a dot-path that resolves to nothing."""

    _instance: Optional["_Missing"] = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _lookup(container: Any, key: str) -> Any:
    if not isinstance(container, Mapping):
        return MISSING
    if key in container:
        return container[key]
    snake = _snake_case(key)
    if snake in container:
        return container[snake]
    return MISSING


def resolve_field(context: Mapping[str, Any], path: str) -> Any:
    """
    Resolve a dot-path such as ``rawData.mortgage.rate`` against the context.

    Each segment is tried verbatim and then in snake_case. Returns MISSING
    when any segment is absent or the value is null.
    """
    if not path:
        return MISSING

    current: Any = context
    for segment in path.split("."):
        current = _lookup(current, segment)
        if current is MISSING:
            return MISSING

    if current is None:
        return MISSING
    return current


def as_number(value: Any) -> Optional[float]:
    """Coerce ints, floats and numeric strings. Booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


# =============================================================================
# Operators
# =============================================================================


def _gt(actual: Any, expected: Any) -> bool:
    a, e = as_number(actual), as_number(expected)
    return a is not None and e is not None and a > e


def _lt(actual: Any, expected: Any) -> bool:
    a, e = as_number(actual), as_number(expected)
    return a is not None and e is not None and a < e


def _eq(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return False
    a, e = as_number(actual), as_number(expected)
    if a is not None and e is not None and not isinstance(actual, str) and not isinstance(expected, str):
        return a == e
    return actual == expected


def _in(actual: Any, expected: Any) -> bool:
    if actual is MISSING or not isinstance(expected, (list, tuple, set, frozenset)):
        return False
    return any(_eq(actual, candidate) for candidate in expected)


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, Mapping):
        # Signal mappings: the key must be present with truthy evidence
        return isinstance(expected, str) and bool(actual.get(expected))
    if isinstance(actual, (list, tuple, set, frozenset)):
        return expected in actual
    if isinstance(actual, str) and isinstance(expected, str):
        return expected in actual
    return False


def _not_contains(actual: Any, expected: Any) -> bool:
    if not isinstance(actual, (Mapping, list, tuple, set, frozenset, str)):
        return False
    return not _contains(actual, expected)


def _range(actual: Any, expected: Any) -> bool:
    a = as_number(actual)
    if a is None or not isinstance(expected, Mapping):
        return False
    low = as_number(expected.get("min"))
    high = as_number(expected.get("max"))
    if low is not None and a < low:
        return False
    if high is not None and a > high:
        return False
    return True


OPERATORS: Dict[RuleOperator, Callable[[Any, Any], bool]] = {
    RuleOperator.GT: _gt,
    RuleOperator.LT: _lt,
    RuleOperator.EQ: _eq,
    RuleOperator.IN: _in,
    RuleOperator.CONTAINS: _contains,
    RuleOperator.NOT_CONTAINS: _not_contains,
    RuleOperator.RANGE: _range,
}


def parse_operator(operator: Any) -> RuleOperator:
    """Map a stored operator name to the enum, rejecting unknown names."""
    if isinstance(operator, RuleOperator):
        return operator
    try:
        return RuleOperator(str(operator).upper())
    except ValueError:
        raise UnknownOperatorError(f"Unknown operator: {operator!r}") from None


def apply_operator(operator: Any, actual: Any, expected: Any) -> bool:
    """Compare a resolved field value against a rule comparand."""
    return OPERATORS[parse_operator(operator)](actual, expected)


__all__ = [
    "MISSING",
    "OPERATORS",
    "apply_operator",
    "as_number",
    "parse_operator",
    "resolve_field",
]
