"""Project status machine and the append-only progress log."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional

from sqlmodel import Session, select

from .errors import IllegalTransitionError, StageFailed
from .models import ProgressEntry, Project, ProjectStatus

logger = logging.getLogger(__name__)

STATUS_CHAIN: tuple[ProjectStatus, ...] = (
    ProjectStatus.PLANNED,
    ProjectStatus.NARRATED,
    ProjectStatus.ALIGNED,
    ProjectStatus.CUES_READY,
    ProjectStatus.FRAMES_READY,
    ProjectStatus.ASSEMBLED,
)

# Each status may be re-entered (re-running its stage) or advance one step.
LEGAL_TRANSITIONS: dict[ProjectStatus, frozenset[ProjectStatus]] = {
    status: frozenset({status, *STATUS_CHAIN[position + 1 : position + 2]})
    for position, status in enumerate(STATUS_CHAIN)
}

IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"
FAILED = "FAILED"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_legal_transition(current: ProjectStatus, requested: ProjectStatus) -> bool:
    return requested in LEGAL_TRANSITIONS.get(current, frozenset())


def ensure_transition(project: Project, requested: ProjectStatus) -> None:
    current = ProjectStatus(project.status)
    if not is_legal_transition(current, requested):
        raise IllegalTransitionError(current.value, requested.value)


def advance_status(
    session: Session,
    project: Project,
    new_status: ProjectStatus,
    *,
    commit: bool = True,
) -> Project:
    ensure_transition(project, new_status)
    previous = project.status
    project.status = new_status
    project.updated_at = _utcnow()
    session.add(project)
    if commit:
        session.commit()
        session.refresh(project)
    logger.info("Project %s status %s -> %s", project.id, getattr(previous, "value", previous), new_status.value)
    return project


def record_progress(
    session: Session,
    project_id: str,
    phase: str,
    status: str,
    notes: Optional[str] = None,
    *,
    commit: bool = True,
) -> ProgressEntry:
    entry = ProgressEntry(project_id=project_id, phase=phase, status=status, notes=notes)
    session.add(entry)
    if commit:
        session.commit()
        session.refresh(entry)
    logger.info("Progress %s - %s%s", phase, status, f": {notes}" if notes else "")
    return entry


def list_progress(session: Session, project_id: str, limit: int = 20) -> list[ProgressEntry]:
    return list(
        session.exec(
            select(ProgressEntry)
            .where(ProgressEntry.project_id == project_id)
            .order_by(ProgressEntry.created_at.desc(), ProgressEntry.id.desc())
            .limit(max(1, limit))
        ).all()
    )


@dataclass
class StepOutcome:
    notes: Optional[str] = None


@contextmanager
def stage_step(
    session: Session,
    project_id: str,
    phase: str,
    start_note: Optional[str] = None,
) -> Iterator[StepOutcome]:
    """Bracket one step of a stage with IN_PROGRESS and COMPLETED/FAILED entries.

    On any exception the session is rolled back, a FAILED entry carrying the
    error message is committed, and :class:`StageFailed` is raised in place of
    the original error. Work already committed by earlier steps is left alone.
    """
    record_progress(session, project_id, phase, IN_PROGRESS, start_note)
    outcome = StepOutcome()
    try:
        yield outcome
    except StageFailed:
        raise
    except Exception as exc:
        session.rollback()
        detail = str(exc) or exc.__class__.__name__
        logger.error("Stage step %s failed for project %s: %s", phase, project_id, detail)
        record_progress(session, project_id, phase, FAILED, detail)
        raise StageFailed(phase, detail, exc) from exc
    record_progress(session, project_id, phase, COMPLETED, outcome.notes)
