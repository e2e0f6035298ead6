"""Deal services: offer math, the advanced deal analyzer and the job handoff contract."""
from __future__ import annotations

from .offer_calculator import MAOResult, OfferCalculatorService, calculate_mao, get_offer_calculator

__all__ = [
    "MAOResult",
    "OfferCalculatorService",
    "calculate_mao",
    "get_offer_calculator",
]
