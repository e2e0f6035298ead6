"""Tests for the MAO and offer calculator."""
from __future__ import annotations

import pytest

from core.exceptions import ValidationError
from services.offer_calculator import MAO_FORMULA, OfferCalculatorService, calculate_mao


class TestCalculateMAO:
    def test_standard_formula(self):
        result = calculate_mao(200000, 20000)

        assert result.mao == 120000.0
        assert result.formula == MAO_FORMULA
        assert result.clamped is False

    def test_no_repairs(self):
        assert calculate_mao(100000, 0).mao == 70000.0

    def test_floored_at_zero(self):
        result = calculate_mao(50000, 60000)

        assert result.mao == 0.0
        assert result.clamped is True

    def test_exactly_zero_is_not_clamped(self):
        result = calculate_mao(100000, 70000)
        assert result.mao == 0.0
        assert result.clamped is False

    @pytest.mark.parametrize("value,repairs", [(-1, 0), (100000, -5), (None, 0), ("100000", 0), (True, 0)])
    def test_invalid_inputs(self, value, repairs):
        with pytest.raises(ValidationError):
            calculate_mao(value, repairs)

    def test_to_dict_rounds(self):
        data = calculate_mao(123456.789, 0).to_dict()
        assert data["mao"] == 86419.75
        assert data["estimated_value"] == 123456.79


class TestSuggestOffer:
    def test_discount_applied(self):
        offer = OfferCalculatorService().suggest_offer(120000, 0.1)

        assert offer.offer_price == 108000.0
        assert offer.to_dict()["discount"] == 10.0
        assert offer.explanation[-1] == "Offer price: $108,000"

    def test_no_discount(self):
        offer = OfferCalculatorService().suggest_offer(120000)
        assert offer.offer_price == 120000.0
        assert len(offer.explanation) == 2

    def test_lowball_flag(self):
        offer = OfferCalculatorService().suggest_offer(100000, 0.6)
        assert any("lowball" in line for line in offer.explanation)

    @pytest.mark.parametrize("discount", [-0.1, 1.0, 1.5])
    def test_discount_out_of_range(self, discount):
        with pytest.raises(ValidationError):
            OfferCalculatorService().suggest_offer(100000, discount)
