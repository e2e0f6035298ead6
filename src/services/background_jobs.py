"""Owner-lookup job handoff with persisted status tracking.

The engine does not run lookups itself. It writes a BackgroundTask status
record, hands a small payload to a JobRunner, and later reads the record by
job id. The runner reports progress through start_job/complete_job/fail_job.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.exceptions import NotFoundError, ServiceUnavailableError
from core.logging_config import get_logger
from core.models import BackgroundTask, Property, TaskStatus
from core.utils import utcnow

LOGGER = get_logger(__name__)

OWNER_LOOKUP_JOB = "owner-lookup"


@dataclass(frozen=True)
class OwnerLookupPayload:
    """What the runner needs to discover an owner's phone: a target id and address fields."""
    property_id: int
    address: str
    city: Optional[str]
    state: Optional[str]
    zip_code: Optional[str]
    owner_name: Optional[str] = None

    @classmethod
    def from_property(cls, prop: Property) -> "OwnerLookupPayload":
        return cls(
            property_id=prop.id,
            address=prop.address,
            city=prop.city,
            state=prop.state,
            zip_code=prop.zip_code,
            owner_name=prop.owner_name,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class JobRunner(Protocol):
    """Contract the engine requires from an asynchronous job runner."""

    def submit(self, job_id: str, job_type: str, payload: Dict[str, Any]) -> None:
        """Accept a job or raise if the runner is unavailable."""
        ...


class InMemoryJobRunner:
    """
    In-process handoff queue.

    Holds submitted jobs until a worker drains them; used for local runs and
    tests where no external runner is deployed.
    """

    def __init__(self) -> None:
        self._queue: List[Tuple[str, str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def submit(self, job_id: str, job_type: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            self._queue.append((job_id, job_type, dict(payload)))

    def drain(self) -> List[Tuple[str, str, Dict[str, Any]]]:
        with self._lock:
            jobs, self._queue = self._queue, []
        return jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)


_runner: Optional[JobRunner] = None


def get_job_runner() -> JobRunner:
    """Get the process-wide job runner."""
    global _runner
    if _runner is None:
        _runner = InMemoryJobRunner()
    return _runner


def set_job_runner(runner: Optional[JobRunner]) -> None:
    """Install a different runner (an external queue client, or None to reset)."""
    global _runner
    _runner = runner


# =============================================================================
# Enqueue / status
# =============================================================================


def enqueue_owner_lookup(
    session: Session,
    prop: Property,
    runner: JobRunner,
    user_id: Optional[int] = None,
) -> BackgroundTask:
    """
    Persist a pending job record and hand the payload to the runner.

    Raises:
        ServiceUnavailableError: the runner refused the job. The caller's
            transaction should be rolled back so no orphan record remains.
    """
    job_id = f"{OWNER_LOOKUP_JOB}-{uuid.uuid4().hex}"
    payload = OwnerLookupPayload.from_property(prop).to_dict()

    task = BackgroundTask(
        task_id=job_id,
        task_type=OWNER_LOOKUP_JOB,
        target_id=prop.id,
        user_id=user_id,
        status=TaskStatus.PENDING.value,
        params=payload,
    )
    session.add(task)
    session.flush()

    try:
        runner.submit(job_id, OWNER_LOOKUP_JOB, payload)
    except Exception as exc:
        LOGGER.error("Job runner rejected %s for property %s: %s", job_id, prop.id, exc)
        raise ServiceUnavailableError("Job runner unavailable") from exc

    LOGGER.info("Enqueued %s for property %s", job_id, prop.id)
    return task


def _get_task(session: Session, job_id: str) -> BackgroundTask:
    task = session.execute(
        select(BackgroundTask).where(BackgroundTask.task_id == job_id)
    ).scalar_one_or_none()
    if task is None:
        raise NotFoundError(f"Job {job_id} not found")
    return task


def get_job_status(session: Session, job_id: str, user_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Read the status record of a job.

    When ``user_id`` is given, jobs enqueued by another user are reported
    as not found.
    """
    task = _get_task(session, job_id)
    if user_id is not None and task.user_id is not None and task.user_id != user_id:
        raise NotFoundError(f"Job {job_id} not found")

    return {
        "job_id": task.task_id,
        "job_type": task.task_type,
        "target_id": task.target_id,
        "status": task.status,
        "started_at": task.started_at.isoformat() if task.started_at else None,
        "completed_at": task.completed_at.isoformat() if task.completed_at else None,
        "error": task.error_message,
        "result": task.result,
    }


def start_job(session: Session, job_id: str) -> None:
    """Mark a job as running."""
    task = _get_task(session, job_id)
    task.status = TaskStatus.RUNNING.value
    task.started_at = utcnow()
    session.flush()


def complete_job(session: Session, job_id: str, result: Dict[str, Any]) -> None:
    """Mark a job as completed with its result."""
    task = _get_task(session, job_id)
    task.status = TaskStatus.COMPLETED.value
    task.result = result
    task.completed_at = utcnow()
    session.flush()


def fail_job(session: Session, job_id: str, error: str) -> None:
    """Mark a job as failed."""
    task = _get_task(session, job_id)
    task.status = TaskStatus.FAILED.value
    task.error_message = error
    task.completed_at = utcnow()
    session.flush()
    LOGGER.warning("Job %s failed: %s", job_id, error)


__all__ = [
    "OWNER_LOOKUP_JOB",
    "InMemoryJobRunner",
    "JobRunner",
    "OwnerLookupPayload",
    "complete_job",
    "enqueue_owner_lookup",
    "fail_job",
    "get_job_runner",
    "get_job_status",
    "set_job_runner",
    "start_job",
]
