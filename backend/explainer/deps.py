from __future__ import annotations

from fastapi import Depends, Request
from sqlmodel import Session

from .auth import get_current_user
from .config import Settings
from .database import get_session
from .errors import ApiError
from .llm import PlanGenerator
from .models import Project, User
from .narration import NarrationClient
from .project_service import get_project_for_user
from .storage import ArtifactStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ArtifactStore:
    return request.app.state.store


def get_planner(request: Request) -> PlanGenerator:
    return request.app.state.planner


def get_narrator(request: Request) -> NarrationClient:
    return request.app.state.narrator


def load_owned_project(session: Session, project_id: str, user: User) -> Project:
    project = get_project_for_user(session, project_id, user)
    if project is None:
        raise ApiError(404, "Project not found")
    return project


def get_project_or_404(
    project_id: str,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
) -> Project:
    return load_owned_project(session, project_id, user)
