"""Tests for the deal lifecycle state machine."""
from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import func, select, update

from core.exceptions import (
    ConcurrencyConflictError,
    DealNotFoundError,
    InvalidTransitionError,
    MissingTransitionDataError,
    ValidationError,
)
from core.models import Deal, DealHistory, DealStatus
from domain.lifecycle import DEFAULT_TRANSITIONS, TERMINAL_STATES, DealLifecycle, parse_status


def _history_count(session, deal_id):
    return session.execute(
        select(func.count()).select_from(DealHistory).where(DealHistory.deal_id == deal_id)
    ).scalar_one()


def _walk(lifecycle, deal, user, *states):
    for state in states:
        lifecycle.transition(deal.id, state, user.id)


class TestGraph:
    def test_terminal_states(self):
        assert TERMINAL_STATES == {DealStatus.REJECTED, DealStatus.CLOSED}

    def test_every_status_has_an_entry(self):
        assert set(DEFAULT_TRANSITIONS) == set(DealStatus)

    def test_rejected_reachable_from_every_active_state(self):
        for state, targets in DEFAULT_TRANSITIONS.items():
            if state not in TERMINAL_STATES:
                assert DealStatus.REJECTED in targets

    def test_error_lists_valid_transitions(self, db_session):
        lifecycle = DealLifecycle(db_session)
        with pytest.raises(InvalidTransitionError) as exc_info:
            lifecycle.check_edge(DealStatus.NEW, DealStatus.CLOSED)

        assert str(exc_info.value) == (
            "Cannot transition from NEW to CLOSED. Valid transitions: ANALYZING, QUALIFIED, REJECTED"
        )
        assert exc_info.value.valid_next == ["ANALYZING", "QUALIFIED", "REJECTED"]

    def test_terminal_error_message(self, db_session):
        with pytest.raises(InvalidTransitionError, match=r"none \(terminal state\)"):
            DealLifecycle(db_session).check_edge(DealStatus.CLOSED, DealStatus.OFFERED)

    def test_custom_graph(self, db_session):
        lifecycle = DealLifecycle(db_session, transitions={DealStatus.NEW: frozenset({DealStatus.CLOSED})})
        assert lifecycle.can_transition(DealStatus.NEW, DealStatus.CLOSED)
        assert not lifecycle.can_transition(DealStatus.NEW, DealStatus.ANALYZING)

    def test_parse_status(self):
        assert parse_status("offered") == DealStatus.OFFERED
        with pytest.raises(ValidationError):
            parse_status("PENDING")


class TestTransition:
    def test_valid_transition_writes_history(self, db_session, deal, user):
        result = DealLifecycle(db_session).transition(deal.id, "ANALYZING", user.id)

        assert result.success
        assert result.previous_status == "NEW"
        assert result.new_status == "ANALYZING"
        assert result.history_id is not None
        assert deal.status == "ANALYZING"
        assert deal.version == 2

        history = db_session.get(DealHistory, result.history_id)
        assert (history.old_value, history.new_value, history.user_id) == ("NEW", "ANALYZING", user.id)

    def test_invalid_transition_changes_nothing(self, db_session, deal, user):
        with pytest.raises(InvalidTransitionError):
            DealLifecycle(db_session).transition(deal.id, "CLOSED", user.id)

        assert deal.status == "NEW"
        assert _history_count(db_session, deal.id) == 0

    def test_full_path_to_closed(self, db_session, deal, user):
        lifecycle = DealLifecycle(db_session)
        _walk(lifecycle, deal, user, "QUALIFIED", "OFFERED", "NEGOTIATING", "UNDER_CONTRACT")
        result = lifecycle.transition(
            deal.id,
            "CLOSED",
            user.id,
            transition_data={"closed_date": "2026-03-01", "estimated_profit": 22500},
        )

        assert result.new_status == "CLOSED"
        assert deal.closed_date.year == 2026
        assert deal.estimated_profit == 22500.0
        assert _history_count(db_session, deal.id) == 5

    def test_closed_requires_closed_date(self, db_session, deal, user):
        lifecycle = DealLifecycle(db_session)
        _walk(lifecycle, deal, user, "QUALIFIED", "OFFERED", "UNDER_CONTRACT")

        with pytest.raises(MissingTransitionDataError):
            lifecycle.transition(deal.id, "CLOSED", user.id, transition_data={"estimated_profit": 1000})
        assert deal.status == "UNDER_CONTRACT"

    def test_closed_date_accepts_date_objects(self, db_session, deal, user):
        lifecycle = DealLifecycle(db_session)
        _walk(lifecycle, deal, user, "QUALIFIED", "OFFERED", "UNDER_CONTRACT")
        lifecycle.transition(deal.id, "CLOSED", user.id, transition_data={"closed_date": date(2026, 1, 15)})
        assert deal.status == "CLOSED"

    def test_malformed_closed_date(self, db_session, deal, user):
        with pytest.raises(ValidationError):
            DealLifecycle(db_session).transition(
                deal.id, "CLOSED", user.id, transition_data={"closed_date": "next tuesday"}
            )

    def test_terminal_states_are_final(self, db_session, deal, user):
        lifecycle = DealLifecycle(db_session)
        lifecycle.transition(deal.id, "REJECTED", user.id, transition_data={"rejection_reason": "Flood zone"})
        assert deal.rejection_reason == "Flood zone"

        for target in ("NEW", "ANALYZING", "QUALIFIED", "OFFERED", "CLOSED"):
            with pytest.raises(InvalidTransitionError):
                lifecycle.transition(deal.id, target, user.id)

    def test_notes_are_saved(self, db_session, deal, user):
        DealLifecycle(db_session).transition(deal.id, "ANALYZING", user.id, notes="Pulling comps")
        assert deal.notes == "Pulling comps"

    def test_other_users_deal_is_not_found(self, db_session, deal, other_user):
        with pytest.raises(DealNotFoundError):
            DealLifecycle(db_session).transition(deal.id, "ANALYZING", other_user.id)
        assert deal.status == "NEW"

    def test_missing_deal(self, db_session, user):
        with pytest.raises(DealNotFoundError):
            DealLifecycle(db_session).transition(999999, "ANALYZING", user.id)


class TestConcurrency:
    def test_concurrent_change_is_re_evaluated(self, db_session, deal, user, monkeypatch):
        lifecycle = DealLifecycle(db_session)
        original = DealLifecycle._compare_and_swap
        calls = []

        def racing_swap(self, current_deal, expected, target, updates):
            calls.append(target)
            if len(calls) == 1:
                # Another request rejects the deal between our read and write
                db_session.execute(
                    update(Deal)
                    .where(Deal.id == current_deal.id)
                    .values(status="REJECTED", version=Deal.version + 1)
                    .execution_options(synchronize_session=False)
                )
            return original(self, current_deal, expected, target, updates)

        monkeypatch.setattr(DealLifecycle, "_compare_and_swap", racing_swap)

        with pytest.raises(InvalidTransitionError):
            lifecycle.transition(deal.id, "ANALYZING", user.id)

        assert len(calls) == 1
        db_session.refresh(deal)
        assert deal.status == "REJECTED"
        assert _history_count(db_session, deal.id) == 0

    def test_retry_succeeds_after_a_miss(self, db_session, deal, user, monkeypatch):
        lifecycle = DealLifecycle(db_session, max_attempts=3)
        original = DealLifecycle._compare_and_swap
        calls = []

        def flaky_swap(self, *args):
            calls.append(1)
            if len(calls) == 1:
                return False
            return original(self, *args)

        monkeypatch.setattr(DealLifecycle, "_compare_and_swap", flaky_swap)
        result = lifecycle.transition(deal.id, "ANALYZING", user.id)

        assert result.new_status == "ANALYZING"
        assert len(calls) == 2
        assert _history_count(db_session, deal.id) == 1

    def test_gives_up_after_max_attempts(self, db_session, deal, user, monkeypatch):
        lifecycle = DealLifecycle(db_session, max_attempts=2)
        monkeypatch.setattr(DealLifecycle, "_compare_and_swap", lambda self, *args: False)

        with pytest.raises(ConcurrencyConflictError):
            lifecycle.transition(deal.id, "ANALYZING", user.id)
        assert _history_count(db_session, deal.id) == 0

    def test_stale_version_does_not_write(self, db_session, deal, user):
        lifecycle = DealLifecycle(db_session)
        loaded = lifecycle._load_for_update(deal.id, user.id)
        db_session.execute(
            update(Deal).where(Deal.id == deal.id).values(version=Deal.version + 1)
            .execution_options(synchronize_session=False)
        )
        assert lifecycle._compare_and_swap(loaded, DealStatus.NEW, DealStatus.ANALYZING, {}) is False
