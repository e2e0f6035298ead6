"""Owner-lookup job routes: enqueue for a property, poll by job id."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from api.auth_deps import get_current_user
from api.deps import get_db, get_readonly_db, get_runner
from core.exceptions import NotFoundError
from core.models import Property, User
from services.background_jobs import JobRunner, enqueue_owner_lookup, get_job_status

router = APIRouter()


@router.post("/properties/{property_id}/owner-lookup", status_code=status.HTTP_202_ACCEPTED)
async def request_owner_lookup(
    property_id: int,
    db: Session = Depends(get_db),
    runner: JobRunner = Depends(get_runner),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    """
    Hand an owner lookup to the job runner.

    503 when the runner refuses the job; the pending record is rolled back
    with the request.
    """
    prop = db.get(Property, property_id)
    if prop is None:
        raise NotFoundError(f"Property {property_id} not found")

    task = enqueue_owner_lookup(db, prop, runner, user_id=current_user.id)
    return {"job_id": task.task_id, "status": task.status, "property_id": property_id}


@router.get("/jobs/{job_id}")
async def job_status(
    job_id: str,
    db: Session = Depends(get_readonly_db),
    current_user: User = Depends(get_current_user),
) -> Dict[str, Any]:
    return get_job_status(db, job_id, user_id=current_user.id)
