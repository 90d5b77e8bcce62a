from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from ..auth import get_current_user
from ..database import get_session
from ..deps import get_project_or_404
from ..jobs import job_scope
from ..logging_setup import log_context
from ..models import Project, User
from ..progress import list_progress, stage_step
from ..project_service import (
    create_project,
    list_projects_for_user,
    load_project_detail,
    materialize_frames,
    to_project_out,
)
from ..schemas import (
    ApiEnvelope,
    FramesResult,
    ProgressEntryOut,
    ProjectCreateRequest,
    ProjectDetail,
    ProjectOut,
)

router = APIRouter(prefix="/api/projects", tags=["projects"])


@router.post("", response_model=ApiEnvelope[ProjectOut])
def create(
    payload: ProjectCreateRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
) -> ApiEnvelope[ProjectOut]:
    project = create_project(session, user, payload.topic)
    return ApiEnvelope(data=to_project_out(project))


@router.get("", response_model=ApiEnvelope[list[ProjectOut]])
def list_projects(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
) -> ApiEnvelope[list[ProjectOut]]:
    return ApiEnvelope(data=[to_project_out(project) for project in list_projects_for_user(session, user)])


@router.get("/{project_id}", response_model=ApiEnvelope[ProjectDetail])
def get_project(
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
) -> ApiEnvelope[ProjectDetail]:
    return ApiEnvelope(data=load_project_detail(session, project))


@router.post("/{project_id}/frames", response_model=ApiEnvelope[FramesResult])
def create_frames(
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
) -> ApiEnvelope[FramesResult]:
    with log_context(project.id), job_scope(session, project.id, "frames", "Failed to create frames"):
        with stage_step(session, project.id, "FRAME_MATERIALIZATION", "Creating placeholder frames") as step:
            total = materialize_frames(session, project)
            step.notes = f"Created {total} placeholder frames"
    session.refresh(project)
    return ApiEnvelope(data=FramesResult(total=total, project=load_project_detail(session, project)))


@router.get("/{project_id}/progress", response_model=ApiEnvelope[list[ProgressEntryOut]])
def get_progress(
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
    limit: int = Query(default=20, ge=1, le=200),
) -> ApiEnvelope[list[ProgressEntryOut]]:
    entries = list_progress(session, project.id, limit=limit)
    return ApiEnvelope(data=[ProgressEntryOut.model_validate(entry) for entry in entries])
