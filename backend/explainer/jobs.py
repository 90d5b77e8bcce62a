from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlmodel import Session, select

from .errors import ApiError, StageFailed, stage_failure_status
from .models import Job, JobStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _append_log(job: Job, message: str) -> None:
    line = f"{_utcnow().isoformat()} {message}"
    job.logs = f"{job.logs}\n{line}" if job.logs else line


def _set_job_status(
    session: Session,
    job: Job,
    *,
    status: JobStatus,
    message: str,
    error: str | None = None,
) -> Job:
    job.status = status
    job.updated_at = _utcnow()
    if error is not None:
        job.error = error
    _append_log(job, message)
    session.add(job)
    session.commit()
    session.refresh(job)
    return job


def create_job(session: Session, project_id: str, kind: str) -> Job:
    job = Job(project_id=project_id, kind=kind, status=JobStatus.PENDING)
    _append_log(job, f"{kind} job created")
    session.add(job)
    session.commit()
    session.refresh(job)
    return job


def start_job(session: Session, job: Job, message: str = "Job started") -> Job:
    return _set_job_status(session, job, status=JobStatus.RUNNING, message=message)


def complete_job(session: Session, job: Job, message: str = "Job completed") -> Job:
    return _set_job_status(session, job, status=JobStatus.COMPLETED, message=message)


def fail_job(session: Session, job: Job, error: str) -> Job:
    logger.warning("Job %s (%s) failed: %s", job.id, job.kind, error)
    return _set_job_status(session, job, status=JobStatus.FAILED, message=f"Job failed: {error}", error=error)


def get_job(session: Session, job_id: str) -> Optional[Job]:
    return session.exec(select(Job).where(Job.id == job_id)).first()


def list_project_jobs(session: Session, project_id: str) -> list[Job]:
    return list(
        session.exec(select(Job).where(Job.project_id == project_id).order_by(Job.created_at.desc())).all()
    )


@contextmanager
def job_scope(
    session: Session,
    project_id: str,
    kind: str,
    failure_message: str,
    *,
    phase_messages: Optional[dict[str, str]] = None,
) -> Iterator[Job]:
    """Run a stage inside a job of ``kind``.

    A :class:`StageFailed` escaping the block marks the job FAILED and is turned
    into an :class:`ApiError` carrying the step detail. The error message is
    looked up by failing phase in ``phase_messages``, else ``failure_message``.
    """
    job = start_job(session, create_job(session, project_id, kind))
    try:
        yield job
    except StageFailed as exc:
        fail_job(session, job, str(exc))
        message = (phase_messages or {}).get(exc.phase, failure_message)
        raise ApiError(stage_failure_status(exc), message, exc.detail) from exc
    except Exception as exc:
        session.rollback()
        fail_job(session, job, str(exc) or exc.__class__.__name__)
        raise
    complete_job(session, job)
