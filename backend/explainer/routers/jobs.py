from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..auth import get_current_user
from ..database import get_session
from ..deps import load_owned_project
from ..errors import ApiError
from ..jobs import get_job
from ..models import User
from ..schemas import ApiEnvelope, JobOut

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=ApiEnvelope[JobOut])
def get_job_status(
    job_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
) -> ApiEnvelope[JobOut]:
    job = get_job(session, job_id)
    if job is None:
        raise ApiError(404, "Job not found")
    # Jobs inherit ownership from their project.
    load_owned_project(session, job.project_id, user)
    return ApiEnvelope(data=JobOut.model_validate(job))
