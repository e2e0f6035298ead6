"""Tests for the qualification rule engine."""
from __future__ import annotations

import pytest

from core.exceptions import InvalidRuleError, UnknownOperatorError
from core.models import DealStatus
from scoring.creative_finance import CREATIVE_FINANCE_BONUS, match_creative_finance
from scoring.rule_engine import RuleSpec, evaluate, order_rules


@pytest.fixture
def context():
    return {
        "state": "LA",
        "estimated_value": 200000,
        "year_built": 1995,
        "equity_percent": 55.0,
        "distress_signals": {"foreclosure": True, "vacant": False},
        "raw_data": {"mortgage": {"rate": 3.1}},
    }


def _filter(rule_id, field_name, operator, value, enabled=True):
    return RuleSpec(
        id=rule_id,
        name=f"filter-{rule_id}",
        rule_type="FILTER",
        field_name=field_name,
        operator=operator,
        value=value,
        enabled=enabled,
    )


def _score(rule_id, field_name, operator, value, weight, enabled=True):
    return RuleSpec(
        id=rule_id,
        name=f"score-{rule_id}",
        rule_type="SCORE_COMPONENT",
        field_name=field_name,
        operator=operator,
        value=value,
        weight=weight,
        enabled=enabled,
    )


def _finance(rule_id, subtype, field_name, operator, value):
    return RuleSpec(
        id=rule_id,
        name=f"cf-{rule_id}",
        rule_type="SCORE_COMPONENT",
        field_name=field_name,
        operator=operator,
        value=value,
        rule_subtype=subtype,
    )


class TestEvaluate:
    def test_foreclosure_signal_scores_weight(self, context):
        rules = [
            _filter(1, "state", "EQ", "LA"),
            _score(2, "distressSignals", "CONTAINS", "foreclosure", 25),
        ]
        result = evaluate(context, rules)

        assert result.status == DealStatus.QUALIFIED
        assert result.qualification_score == 25
        assert [entry.result for entry in result.rule_breakdown] == ["PASS", "PASS"]
        assert [entry.scored for entry in result.rule_breakdown] == [0, 25]

    def test_failed_filter_rejects_with_zero_score(self, context):
        rules = [
            _score(1, "distressSignals", "CONTAINS", "foreclosure", 25),
            _filter(2, "state", "IN", ["TX", "MS"]),
        ]
        result = evaluate(context, rules)

        assert result.rejected
        assert result.qualification_score == 0
        # Scoring rules are still evaluated for the breakdown
        by_id = {entry.rule_id: entry for entry in result.rule_breakdown}
        assert by_id[1].result == "PASS"
        assert by_id[1].scored == 0
        assert by_id[2].result == "FAIL"

    def test_filters_are_evaluated_first(self, context):
        rules = [
            _score(1, "yearBuilt", "LT", 2000, 10),
            _filter(2, "state", "EQ", "LA"),
        ]
        result = evaluate(context, rules)
        assert [entry.rule_id for entry in result.rule_breakdown] == [2, 1]

    def test_breakdown_sums_to_score(self, context):
        rules = [
            _score(1, "yearBuilt", "LT", 2000, 10),
            _score(2, "equityPercent", "RANGE", {"min": 40, "max": 100}, 30),
            _score(3, "distressSignals", "CONTAINS", "vacant", 15),
            _finance(4, "SUBJECT_TO", "rawData.mortgage.rate", "LT", 4.5),
        ]
        result = evaluate(context, rules)

        assert result.qualification_score == 10 + 30 + CREATIVE_FINANCE_BONUS
        assert sum(entry.scored for entry in result.rule_breakdown) == result.qualification_score

    def test_disabled_rules_are_ignored(self, context):
        rules = [
            _filter(1, "state", "EQ", "TX", enabled=False),
            _score(2, "yearBuilt", "LT", 2000, 10, enabled=False),
        ]
        result = evaluate(context, rules)

        assert result.status == DealStatus.QUALIFIED
        assert result.qualification_score == 0
        assert result.rule_breakdown == []

    def test_missing_field_fails_rule(self, context):
        result = evaluate(context, [_score(1, "rawData.listing.daysOnMarket", "GT", 90, 10)])
        assert result.qualification_score == 0
        assert result.rule_breakdown[0].result == "FAIL"

    def test_below_threshold_is_analyzing(self, context):
        rules = [_score(1, "yearBuilt", "LT", 2000, 10)]
        assert evaluate(context, rules, min_qualified_score=50).status == DealStatus.ANALYZING
        assert evaluate(context, rules, min_qualified_score=10).status == DealStatus.QUALIFIED

    def test_deterministic(self, context):
        rules = [
            _filter(1, "state", "EQ", "LA"),
            _score(2, "distressSignals", "CONTAINS", "foreclosure", 25),
            _finance(3, "SUBJECT_TO", "rawData.mortgage.rate", "LT", 4.5),
        ]
        assert evaluate(context, rules).to_dict() == evaluate(context, rules).to_dict()

    def test_unknown_operator_raises(self, context):
        with pytest.raises(UnknownOperatorError):
            evaluate(context, [_score(1, "state", "MATCHES", "L.*", 10)])

    def test_unknown_rule_type_raises(self, context):
        rule = RuleSpec(id=1, name="odd", rule_type="BONUS", field_name="state", operator="EQ", value="LA")
        with pytest.raises(InvalidRuleError):
            evaluate(context, [rule])


class TestCreativeFinance:
    def test_match_awards_bonus_and_type(self, context):
        rules = [
            _finance(1, "SUBJECT_TO", "rawData.mortgage.rate", "LT", 4.5),
            _finance(2, "SELLER_FINANCE", "equityPercent", "GT", 80),
        ]
        result = evaluate(context, rules)

        assert result.creative_finance_types == ["SUBJECT_TO"]
        assert result.qualification_score == CREATIVE_FINANCE_BONUS

    def test_types_are_deduplicated(self, context):
        rules = [
            _finance(1, "SUBJECT_TO", "rawData.mortgage.rate", "LT", 4.5),
            _finance(2, "subject_to", "equityPercent", "GT", 50),
        ]
        match = match_creative_finance(context, rules)

        assert match.types == ["SUBJECT_TO"]
        assert match.bonus == 2 * CREATIVE_FINANCE_BONUS
        assert match.descriptions() == {"SUBJECT_TO": "Take over existing mortgage payments"}

    def test_rejected_deal_gets_no_bonus(self, context):
        rules = [
            _filter(1, "state", "EQ", "TX"),
            _finance(2, "SUBJECT_TO", "rawData.mortgage.rate", "LT", 4.5),
        ]
        result = evaluate(context, rules)

        assert result.rejected
        assert result.qualification_score == 0
        assert result.creative_finance_types == ["SUBJECT_TO"]

    def test_unknown_subtype(self, context):
        with pytest.raises(InvalidRuleError):
            match_creative_finance(context, [_finance(1, "TIMESHARE", "state", "EQ", "LA")])


def test_order_rules_is_stable():
    rules = [
        _score(1, "a", "EQ", 1, 5),
        _filter(2, "b", "EQ", 1),
        _score(3, "c", "EQ", 1, 5),
        _filter(4, "d", "EQ", 1),
    ]
    assert [rule.id for rule in order_rules(rules)] == [2, 4, 1, 3]
