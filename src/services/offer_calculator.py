"""Offer calculator service: Maximum Allowable Offer and discounted offers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from core.exceptions import ValidationError
from core.logging_config import get_logger

LOGGER = get_logger(__name__)

MAO_MULTIPLIER = 0.70
MAO_FORMULA = "(estimatedValue × 0.70) − repairCosts"


@dataclass
class MAOResult:
    """Maximum Allowable Offer and the formula that produced it."""

    mao: float
    formula: str
    estimated_value: float
    repair_costs: float
    clamped: bool = False

    def to_dict(self) -> dict:
        return {
            "mao": round(self.mao, 2),
            "formula": self.formula,
            "estimated_value": round(self.estimated_value, 2),
            "repair_costs": round(self.repair_costs, 2),
            "clamped": self.clamped,
        }


@dataclass
class OfferResult:
    """A concrete offer price derived from an MAO."""

    mao: float
    discount: float
    offer_price: float
    explanation: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "mao": round(self.mao, 2),
            "discount": round(self.discount * 100, 1),
            "offer_price": round(self.offer_price, 2),
            "explanation": self.explanation,
        }


def _require_non_negative(name: str, value: Optional[float]) -> float:
    if value is None:
        raise ValidationError(f"{name} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number")
    if value < 0:
        raise ValidationError(f"{name} must be non-negative")
    return float(value)


def calculate_mao(estimated_value: float, repair_costs: float) -> MAOResult:
    """
    Maximum Allowable Offer: 70% of value minus repairs, floored at zero.

    >>> calculate_mao(200000, 20000).mao
    120000.0
    """
    value = _require_non_negative("estimated_value", estimated_value)
    repairs = _require_non_negative("repair_costs", repair_costs)

    raw = round(value * MAO_MULTIPLIER - repairs, 2)
    return MAOResult(
        mao=max(raw, 0.0),
        formula=MAO_FORMULA,
        estimated_value=value,
        repair_costs=repairs,
        clamped=raw < 0,
    )


class OfferCalculatorService:
    """Turns an MAO into an offer price using the caller's discount."""

    # Offers below this fraction of MAO are flagged as lowball
    LOWBALL_FLOOR = 0.50

    def calculate_mao(self, estimated_value: float, repair_costs: float) -> MAOResult:
        return calculate_mao(estimated_value, repair_costs)

    def suggest_offer(self, mao: float, discount: float = 0.0) -> OfferResult:
        """
        Apply an additional discount to an MAO.

        Args:
            mao: Maximum Allowable Offer.
            discount: Fraction in [0, 1) taken off the MAO.
        """
        mao = _require_non_negative("mao", mao)
        if not 0 <= discount < 1:
            raise ValidationError("discount must be in [0, 1)")

        offer_price = round(mao * (1 - discount), 2)
        explanation = [f"MAO: ${mao:,.0f}"]
        if discount:
            explanation.append(f"Discount: {discount * 100:.0f}%")
        if mao and offer_price < mao * self.LOWBALL_FLOOR:
            explanation.append("Offer is below half of MAO and may read as a lowball")
        explanation.append(f"Offer price: ${offer_price:,.0f}")

        LOGGER.debug("Offer %.2f from MAO %.2f (discount %.2f)", offer_price, mao, discount)
        return OfferResult(mao=mao, discount=discount, offer_price=offer_price, explanation=explanation)


_service: Optional[OfferCalculatorService] = None


def get_offer_calculator() -> OfferCalculatorService:
    """Get the global OfferCalculatorService instance."""
    global _service
    if _service is None:
        _service = OfferCalculatorService()
    return _service


__all__ = [
    "MAO_FORMULA",
    "MAOResult",
    "OfferCalculatorService",
    "OfferResult",
    "calculate_mao",
    "get_offer_calculator",
]
