"""Tests for audit immutability, contact-log listing and consent retention."""
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select

from compliance.audit import list_contact_logs, purge_expired_consent_records
from compliance.crypto import encrypt_phone, hash_phone
from compliance.tcpa_gate import ContactGate
from core.exceptions import ImmutableRecordError, RetentionViolationError, ValidationError
from core.models import ConsentRecord, ContactLog, DealHistory
from core.utils import utcnow
from domain.lifecycle import DealLifecycle

from conftest import PHONE


def _log_contact(session, user, prop, method="CALL", status="EXPRESS_WRITTEN_CONSENT", when=None):
    log = ContactLog(
        user_id=user.id,
        property_id=prop.id,
        owner_phone_encrypted=encrypt_phone(PHONE),
        contact_timestamp=when or utcnow(),
        contact_method=method,
        consent_status=status,
        is_violation=status in ("NO_CONSENT_OBTAINED", "DO_NOT_CALL"),
    )
    session.add(log)
    session.flush()
    return log


def _consent(session, retain_until):
    now = utcnow()
    record = ConsentRecord(
        owner_phone_encrypted=encrypt_phone(PHONE),
        phone_hash=hash_phone(PHONE),
        original_consent_method="web_form",
        original_consent_timestamp=now,
        disclosures_acknowledged=[],
        must_retain_until=retain_until,
        compliance_status="COMPLIANT",
        created_at=now,
        updated_at=now,
    )
    session.add(record)
    session.flush()
    return record


class TestImmutability:
    def test_contact_log_cannot_be_updated(self, db_session, user, sample_property):
        log = _log_contact(db_session, user, sample_property)
        log.notes = "edited"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()

    def test_contact_log_cannot_be_deleted(self, db_session, user, sample_property):
        log = _log_contact(db_session, user, sample_property)
        db_session.delete(log)
        with pytest.raises(ImmutableRecordError):
            db_session.flush()

    def test_deal_history_cannot_be_updated(self, db_session, deal, user):
        result = DealLifecycle(db_session).transition(deal.id, "ANALYZING", user.id)
        history = db_session.get(DealHistory, result.history_id)
        history.new_value = "CLOSED"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()

    def test_deal_status_cannot_be_written_directly(self, db_session, deal):
        deal.status = "CLOSED"
        with pytest.raises(ImmutableRecordError):
            db_session.flush()

    def test_other_deal_columns_stay_editable(self, db_session, deal):
        deal.title = "Renamed"
        db_session.flush()

        db_session.expire(deal)
        assert deal.title == "Renamed"
        assert deal.status == "NEW"

    def test_lifecycle_still_changes_status(self, db_session, deal, user):
        DealLifecycle(db_session).transition(deal.id, "ANALYZING", user.id)
        db_session.flush()

        db_session.expire(deal)
        assert deal.status == "ANALYZING"


class TestRetention:
    def test_consent_inside_retention_cannot_be_deleted(self, db_session):
        record = ContactGate(db_session).record_consent(PHONE, "web_form", [])
        db_session.delete(record)
        with pytest.raises(RetentionViolationError):
            db_session.flush()

    def test_purge_removes_only_expired(self, db_session):
        now = utcnow()
        expired = _consent(db_session, now - timedelta(days=1))
        kept = _consent(db_session, now + timedelta(days=365))
        expired_id, kept_id = expired.id, kept.id

        assert purge_expired_consent_records(db_session, now=now) == 1

        remaining = db_session.execute(select(ConsentRecord.id)).scalars().all()
        assert expired_id not in remaining
        assert kept_id in remaining

    def test_future_now_does_not_shorten_retention(self, db_session):
        now = utcnow()
        expired = _consent(db_session, now - timedelta(days=1))
        kept = ContactGate(db_session).record_consent(PHONE, "web_form", ["tcpa"])
        expired_id, kept_id = expired.id, kept.id

        assert purge_expired_consent_records(db_session, now=now + timedelta(days=5 * 366)) == 1

        remaining = db_session.execute(select(ConsentRecord.id)).scalars().all()
        assert expired_id not in remaining
        assert kept_id in remaining

    def test_purge_with_nothing_due(self, db_session):
        _consent(db_session, utcnow() + timedelta(days=10))
        assert purge_expired_consent_records(db_session) == 0


class TestListContactLogs:
    def test_newest_first_with_pagination(self, db_session, user, sample_property):
        base = utcnow() - timedelta(days=5)
        ids = [_log_contact(db_session, user, sample_property, when=base + timedelta(days=i)).id for i in range(3)]

        first = list_contact_logs(db_session, user.id, page=1, limit=2)
        second = list_contact_logs(db_session, user.id, page=2, limit=2)

        assert first.total == 3
        assert [log.id for log in first.logs] == [ids[2], ids[1]]
        assert first.has_more is True
        assert [log.id for log in second.logs] == [ids[0]]
        assert second.has_more is False

    def test_views_carry_no_phone(self, db_session, user, sample_property):
        _log_contact(db_session, user, sample_property)
        data = list_contact_logs(db_session, user.id).to_dict()["logs"][0]

        assert not any("phone" in key for key in data)
        assert data["property_address"] == "456 Oak St, Baton Rouge, LA"

    def test_filters(self, db_session, user, sample_property):
        _log_contact(db_session, user, sample_property, method="CALL")
        _log_contact(db_session, user, sample_property, method="SMS", status="NO_CONSENT_OBTAINED")

        assert list_contact_logs(db_session, user.id, contact_method="sms").total == 1
        assert list_contact_logs(db_session, user.id, consent_status="NO_CONSENT_OBTAINED").total == 1
        assert list_contact_logs(
            db_session, user.id, start_date=utcnow() + timedelta(hours=1)
        ).total == 0

    def test_scoped_to_user(self, db_session, user, other_user, sample_property):
        _log_contact(db_session, user, sample_property)
        assert list_contact_logs(db_session, other_user.id).total == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"page": 0},
            {"limit": 0},
            {"limit": 101},
            {"contact_method": "FAX"},
            {"consent_status": "MAYBE"},
        ],
    )
    def test_invalid_arguments(self, db_session, user, kwargs):
        with pytest.raises(ValidationError):
            list_contact_logs(db_session, user.id, **kwargs)

    def test_inverted_date_range(self, db_session, user):
        now = utcnow()
        with pytest.raises(ValidationError):
            list_contact_logs(db_session, user.id, start_date=now, end_date=now - timedelta(days=1))

