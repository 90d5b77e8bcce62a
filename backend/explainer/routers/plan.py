from __future__ import annotations

import json
import logging
import random
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends
from sqlmodel import Session

from ..asset_service import (
    build_asset,
    deactivate_plan_docs,
    get_active_plan_asset,
    select_active_plan_asset,
)
from ..auth import get_current_user
from ..database import get_session
from ..deps import get_planner, get_project_or_404, get_store, load_owned_project
from ..errors import ApiError, StorageError
from ..jobs import job_scope
from ..llm import PlanGenerator
from ..logging_setup import log_context
from ..models import AssetType, Project, ProjectStatus, User
from ..planning import (
    DEFAULT_TEST_TOPIC,
    MOCK_TEST_TOPICS,
    PROJECT_PLAN_FILENAME,
    STYLE_BIBLE_FILENAME,
    build_plan_files,
    generate_mock_plan,
    store_plan_files,
)
from ..progress import COMPLETED, advance_status, ensure_transition, record_progress, stage_step
from ..project_service import replace_beats, replace_style_bible, select_active_style_bible
from ..schemas import (
    ApiEnvelope,
    PlanDocMeta,
    PlanMetadata,
    PlanRequest,
    PlanResponse,
    PlanResult,
    PlanSelectRequest,
    PlanSelectResult,
    PlanStorageKeys,
    PlanTestRequest,
    StyleBibleDocMeta,
)
from ..storage import ArtifactStore, build_plan_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["plan"])

TEST_PROJECT_ID = "test-project"

PLAN_PHASE_ERRORS = {
    "LLM_GENERATION": "Failed to generate project plan",
    "STORAGE_UPLOAD": "Failed to save plan files to storage",
    "DATABASE_SAVE": "Failed to save plan data to database",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _metadata(plan: PlanResponse, *, test_mode: Optional[bool] = None) -> PlanMetadata:
    return PlanMetadata(
        total_duration=plan.timeline_skeleton.total_duration,
        beat_count=len(plan.beats),
        dialogue_count=len(plan.dialogue_inputs),
        generated_at=_now_iso(),
        test_mode=test_mode,
    )


@router.post("/plan", response_model=ApiEnvelope[PlanResult])
def create_plan(
    payload: PlanRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    store: ArtifactStore = Depends(get_store),
    planner: PlanGenerator = Depends(get_planner),
) -> ApiEnvelope[PlanResult]:
    project = load_owned_project(session, payload.project_id, user)
    project_id = project.id
    topic = payload.topic
    ensure_transition(project, ProjectStatus.PLANNED)

    with log_context(project_id):
        logger.info("Starting planning for topic %r", topic)
        with job_scope(
            session,
            project_id,
            "plan",
            "Internal server error during planning",
            phase_messages=PLAN_PHASE_ERRORS,
        ) as job:
            with stage_step(session, project_id, "PLANNING_START", f"Starting planning for: {topic}") as step:
                step.notes = "Planning initialized"

            with stage_step(session, project_id, "LLM_GENERATION", "Calling LLM for plan generation") as step:
                plan = planner.generate(topic)
                step.notes = f"Generated {len(plan.beats)} beats, {len(plan.dialogue_inputs)} dialogue turns"

            with stage_step(session, project_id, "STORAGE_UPLOAD", "Uploading plan files") as step:
                stored = store_plan_files(store, project_id, build_plan_files(topic, plan), version=job.id)
                step.notes = f"Uploaded {PROJECT_PLAN_FILENAME} and {STYLE_BIBLE_FILENAME}"

            # Beats, style bible, plan documents and status land in one commit.
            with stage_step(session, project_id, "DATABASE_SAVE", "Saving beats and style bible") as step:
                replace_beats(session, project, plan.beats)
                replace_style_bible(session, project, plan.style_bible_min)
                deactivate_plan_docs(session, project_id)
                session.add(
                    build_asset(
                        project_id,
                        AssetType.DOC,
                        PROJECT_PLAN_FILENAME,
                        stored.project_plan_key,
                        stored.project_plan_bytes,
                        PlanDocMeta(),
                    )
                )
                session.add(
                    build_asset(
                        project_id,
                        AssetType.DOC,
                        STYLE_BIBLE_FILENAME,
                        stored.style_bible_key,
                        stored.style_bible_bytes,
                        StyleBibleDocMeta(),
                    )
                )
                advance_status(session, project, ProjectStatus.PLANNED, commit=False)
                session.commit()
                step.notes = f"Saved {len(plan.beats)} beats and style bible"

            record_progress(
                session,
                project_id,
                "PLANNING_COMPLETE",
                COMPLETED,
                f"Planning completed successfully. Total duration: {plan.timeline_skeleton.total_duration:g}s",
            )
            job_id = job.id

    session.refresh(project)
    return ApiEnvelope(
        data=PlanResult(
            project_id=project_id,
            topic=topic,
            status=project.status,
            plan_response=plan,
            storage=PlanStorageKeys(
                project_plan_key=stored.project_plan_key,
                style_bible_key=stored.style_bible_key,
            ),
            metadata=_metadata(plan),
            job_id=job_id,
        )
    )


@router.get("/plan/test", response_model=ApiEnvelope[PlanResult])
def plan_test() -> ApiEnvelope[PlanResult]:
    plan = generate_mock_plan(DEFAULT_TEST_TOPIC)
    logger.info("Generated mock plan with %d beats and %d dialogue turns", len(plan.beats), len(plan.dialogue_inputs))
    return ApiEnvelope(
        data=PlanResult(
            topic=DEFAULT_TEST_TOPIC,
            status=ProjectStatus.PLANNED,
            plan_response=plan,
            metadata=_metadata(plan, test_mode=True),
            test_info={
                "description": "Mock plan generated for testing purposes",
                "features": [
                    "Complete dialogue turns with timing",
                    "Visual beat breakdown",
                    "Style bible with colors and typography",
                    "Timeline skeleton with beat timings",
                    "No LLM API calls required",
                ],
                "usage": "Exercises the planning response format without calling the LLM",
            },
        )
    )


@router.post("/plan/test", response_model=ApiEnvelope[PlanResult])
def plan_test_post(payload: Optional[PlanTestRequest] = Body(default=None)) -> ApiEnvelope[PlanResult]:
    topic = payload.topic if payload is not None and payload.topic else random.choice(MOCK_TEST_TOPICS)
    plan = generate_mock_plan(topic)
    logger.info("Generated mock plan for topic %r", topic)
    return ApiEnvelope(
        data=PlanResult(
            topic=topic,
            status=ProjectStatus.PLANNED,
            plan_response=plan,
            storage=PlanStorageKeys(
                project_plan_key=build_plan_key(TEST_PROJECT_ID, PROJECT_PLAN_FILENAME),
                style_bible_key=build_plan_key(TEST_PROJECT_ID, STYLE_BIBLE_FILENAME),
            ),
            metadata=_metadata(plan, test_mode=True),
            test_info={
                "description": "Mock plan for POST testing",
                "topic": topic,
                "availableTopics": list(MOCK_TEST_TOPICS),
                "note": "Mirrors the full planning pipeline response format",
            },
        )
    )


@router.get("/projects/{project_id}/plan", response_model=ApiEnvelope[dict[str, Any]])
def get_plan_document(
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
    store: ArtifactStore = Depends(get_store),
) -> ApiEnvelope[dict[str, Any]]:
    asset = get_active_plan_asset(session, project.id)
    key = asset.r2_key if asset is not None else build_plan_key(project.id, PROJECT_PLAN_FILENAME)
    try:
        document = json.loads(store.get(key).decode("utf-8"))
    except (StorageError, ValueError) as exc:
        logger.error("Failed to fetch plan %s: %s", key, exc)
        raise ApiError(500, "Failed to fetch plan", str(exc)) from exc
    return ApiEnvelope(data=document)


@router.post("/projects/{project_id}/plan", response_model=ApiEnvelope[PlanSelectResult])
def select_plan(
    payload: PlanSelectRequest,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
) -> ApiEnvelope[PlanSelectResult]:
    result = PlanSelectResult()
    if payload.plan_asset_id:
        asset = select_active_plan_asset(session, project, payload.plan_asset_id)
        if asset is None:
            raise ApiError(404, "Plan asset not found")
        result.plan_asset_id = asset.id
    if payload.style_bible_id:
        style_bible = select_active_style_bible(session, project, payload.style_bible_id)
        if style_bible is None:
            raise ApiError(404, "Style bible not found")
        result.style_bible_id = style_bible.id
    return ApiEnvelope(data=result)
