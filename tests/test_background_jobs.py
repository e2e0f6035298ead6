"""Tests for owner-lookup job handoff and status tracking."""
from __future__ import annotations

import pytest

from core.exceptions import NotFoundError, ServiceUnavailableError
from core.models import BackgroundTask
from services.background_jobs import (
    OWNER_LOOKUP_JOB,
    InMemoryJobRunner,
    complete_job,
    enqueue_owner_lookup,
    fail_job,
    get_job_runner,
    get_job_status,
    set_job_runner,
    start_job,
)


class BrokenRunner:
    def submit(self, job_id, job_type, payload):
        raise ConnectionError("queue down")


class TestEnqueue:
    def test_enqueue_records_pending_job(self, db_session, user, sample_property):
        runner = InMemoryJobRunner()
        task = enqueue_owner_lookup(db_session, sample_property, runner, user_id=user.id)

        assert task.task_id.startswith(f"{OWNER_LOOKUP_JOB}-")
        assert task.status == "pending"
        assert task.target_id == sample_property.id

        [(job_id, job_type, payload)] = runner.drain()
        assert job_id == task.task_id
        assert job_type == OWNER_LOOKUP_JOB
        assert payload["property_id"] == sample_property.id
        assert payload["address"] == "456 Oak St"
        assert len(runner) == 0

    def test_job_ids_are_unique(self, db_session, sample_property):
        runner = InMemoryJobRunner()
        first = enqueue_owner_lookup(db_session, sample_property, runner)
        second = enqueue_owner_lookup(db_session, sample_property, runner)
        assert first.task_id != second.task_id

    def test_runner_failure(self, db_session, sample_property):
        with pytest.raises(ServiceUnavailableError):
            enqueue_owner_lookup(db_session, sample_property, BrokenRunner())


class TestStatus:
    def test_lifecycle_of_a_job(self, db_session, user, sample_property):
        task = enqueue_owner_lookup(db_session, sample_property, InMemoryJobRunner(), user_id=user.id)

        start_job(db_session, task.task_id)
        assert get_job_status(db_session, task.task_id, user.id)["status"] == "running"

        complete_job(db_session, task.task_id, {"phones_found": 2})
        status = get_job_status(db_session, task.task_id, user.id)
        assert status["status"] == "completed"
        assert status["result"] == {"phones_found": 2}
        assert status["started_at"] is not None
        assert status["completed_at"] is not None

    def test_failed_job(self, db_session, sample_property):
        task = enqueue_owner_lookup(db_session, sample_property, InMemoryJobRunner())
        fail_job(db_session, task.task_id, "provider timeout")

        status = get_job_status(db_session, task.task_id)
        assert status["status"] == "failed"
        assert status["error"] == "provider timeout"

    def test_unknown_job(self, db_session):
        with pytest.raises(NotFoundError):
            get_job_status(db_session, "owner-lookup-missing")

    def test_other_users_job_is_hidden(self, db_session, user, other_user, sample_property):
        task = enqueue_owner_lookup(db_session, sample_property, InMemoryJobRunner(), user_id=user.id)
        with pytest.raises(NotFoundError):
            get_job_status(db_session, task.task_id, other_user.id)

    def test_status_record_persisted(self, db_session, sample_property):
        task = enqueue_owner_lookup(db_session, sample_property, InMemoryJobRunner())
        assert db_session.get(BackgroundTask, task.id).params["zip_code"] == "70808"


def test_set_job_runner():
    runner = InMemoryJobRunner()
    set_job_runner(runner)
    try:
        assert get_job_runner() is runner
    finally:
        set_job_runner(None)
    assert isinstance(get_job_runner(), InMemoryJobRunner)
    assert get_job_runner() is not runner
