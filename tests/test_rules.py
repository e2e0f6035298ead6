"""Tests for qualification rule management."""
from __future__ import annotations

import pytest

from core.exceptions import InvalidRuleError, NotFoundError, UnknownOperatorError
from core.models import QualificationRule, RuleEvaluationLog
from domain.rules import RuleService, validate_rule_value


class TestValidateRuleValue:
    @pytest.mark.parametrize(
        "operator,value",
        [
            ("GT", 100000),
            ("LT", 4.5),
            ("EQ", "LA"),
            ("EQ", True),
            ("IN", ["LA", "TX"]),
            ("CONTAINS", "foreclosure"),
            ("NOT_CONTAINS", "flood_zone"),
        ],
    )
    def test_accepts_matching_values(self, operator, value):
        assert validate_rule_value(operator, value) == value

    def test_range_is_normalized(self):
        assert validate_rule_value("RANGE", {"min": 1, "max": 5, "note": "x"}) == {"min": 1, "max": 5}

    @pytest.mark.parametrize(
        "operator,value",
        [
            ("GT", "100000"),
            ("LT", True),
            ("RANGE", {"min": 10, "max": 5}),
            ("RANGE", {"min": 1}),
            ("RANGE", [1, 5]),
            ("IN", []),
            ("IN", "LA"),
            ("IN", [["nested"]]),
            ("CONTAINS", ""),
            ("CONTAINS", 5),
            ("EQ", {"a": 1}),
        ],
    )
    def test_rejects_mismatched_values(self, operator, value):
        with pytest.raises(InvalidRuleError):
            validate_rule_value(operator, value)

    def test_unknown_operator(self):
        with pytest.raises(UnknownOperatorError):
            validate_rule_value("BETWEEN", [1, 2])


class TestRuleService:
    def test_create_rule(self, db_session, user):
        rule = RuleService(db_session).create_rule(
            user.id, " Foreclosure ", "score_component", "distressSignals", "contains", "foreclosure", weight=25
        )

        assert rule.id is not None
        assert rule.name == "Foreclosure"
        assert rule.rule_type == "SCORE_COMPONENT"
        assert rule.operator == "CONTAINS"
        assert rule.weight == 25

    def test_filter_weight_is_zeroed(self, db_session, user):
        rule = RuleService(db_session).create_rule(user.id, "LA", "FILTER", "state", "EQ", "LA", weight=40)
        assert rule.weight == 0

    def test_creative_finance_subtype(self, db_session, user):
        rule = RuleService(db_session).create_rule(
            user.id, "Low rate", "SCORE_COMPONENT", "rawData.mortgage.rate", "LT", 4.5, rule_subtype="subject_to"
        )
        assert rule.rule_subtype == "SUBJECT_TO"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"name": ""},
            {"field_name": " "},
            {"rule_type": "BONUS"},
            {"weight": 101},
            {"weight": -1},
            {"rule_subtype": "TIMESHARE"},
        ],
    )
    def test_create_rule_rejects(self, db_session, user, kwargs):
        params = dict(
            name="Rule", rule_type="SCORE_COMPONENT", field_name="yearBuilt", operator="LT", value=2000, weight=10
        )
        params.update(kwargs)
        with pytest.raises(InvalidRuleError):
            RuleService(db_session).create_rule(user.id, **params)

    def test_list_rules_orders_filters_first(self, db_session, user, make_rule):
        make_rule("score", "SCORE_COMPONENT", "yearBuilt", "LT", 2000, weight=10)
        make_rule("filter", "FILTER", "state", "EQ", "LA")
        make_rule("off", "SCORE_COMPONENT", "yearBuilt", "LT", 1950, weight=10, enabled=False)

        service = RuleService(db_session)
        assert [r.name for r in service.list_rules(user.id)] == ["filter", "score", "off"]
        assert [r.name for r in service.list_rules(user.id, enabled_only=True)] == ["filter", "score"]

    def test_rules_are_user_scoped(self, db_session, other_user, make_rule):
        rule = make_rule("filter", "FILTER", "state", "EQ", "LA")
        service = RuleService(db_session)

        assert service.list_rules(other_user.id) == []
        with pytest.raises(NotFoundError):
            service.get_rule(rule.id, other_user.id)

    def test_set_enabled(self, db_session, user, make_rule):
        rule = make_rule("filter", "FILTER", "state", "EQ", "LA")
        RuleService(db_session).set_enabled(rule.id, user.id, False)
        assert rule.enabled is False

    def test_delete_unreferenced_rule(self, db_session, user, make_rule):
        rule = make_rule("filter", "FILTER", "state", "EQ", "LA")
        rule_id = rule.id

        RuleService(db_session).delete_rule(rule_id, user.id)
        assert db_session.get(QualificationRule, rule_id) is None

    def test_delete_referenced_rule_disables_it(self, db_session, user, deal, make_rule):
        rule = make_rule("filter", "FILTER", "state", "EQ", "LA")
        db_session.add(RuleEvaluationLog(deal_id=deal.id, rule_id=rule.id, evaluation_result="PASS", score_awarded=0))
        db_session.flush()

        RuleService(db_session).delete_rule(rule.id, user.id)

        assert db_session.get(QualificationRule, rule.id) is rule
        assert rule.enabled is False
