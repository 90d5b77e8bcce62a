from __future__ import annotations

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlmodel import Session

from ..asset_service import create_asset, narration_assets, parse_asset_meta
from ..auth import get_current_user
from ..config import Settings
from ..database import get_session
from ..deps import get_app_settings, get_narrator, get_project_or_404, get_store, load_owned_project
from ..errors import ApiError
from ..jobs import job_scope
from ..logging_setup import log_context
from ..models import AssetType, Project, ProjectStatus, User
from ..narration import AUDIO_CONTENT_TYPE, NarrationClient, NarrationOptions, estimate_duration, narration_filename
from ..progress import COMPLETED, IN_PROGRESS, advance_status, ensure_transition, record_progress, stage_step
from ..project_service import list_beats
from ..schemas import (
    ApiEnvelope,
    NarrationBeatOut,
    NarrationFileOut,
    NarrationLine,
    NarrationMeta,
    NarrationOverview,
    NarrationRequest,
    NarrationResult,
    VoiceSettings,
)
from ..storage import ArtifactStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["narration"])


def _options(payload: NarrationRequest, settings: Settings) -> NarrationOptions:
    return NarrationOptions(
        voice_id=payload.voice_id or settings.default_voice_id,
        model_id=payload.model_id or settings.narration_model_id,
        output_format=payload.output_format or settings.narration_output_format,
        voice_settings=payload.voice_settings or VoiceSettings(),
    )


def _narrate_line(
    session: Session,
    store: ArtifactStore,
    narrator: NarrationClient,
    project_id: str,
    dialogue_index: int,
    text: str,
    options: NarrationOptions,
) -> NarrationLine:
    with stage_step(session, project_id, "AUDIO_GENERATION", f"Generating audio for dialogue {dialogue_index}") as step:
        audio = narrator.synthesize(text, options)
        filename = narration_filename(dialogue_index)
        stored = store.put(project_id, AssetType.AUDIO, filename, audio, AUDIO_CONTENT_TYPE)
        duration = estimate_duration(text)
        # Re-narrating a line overwrites the object; drop the superseded rows.
        for previous in narration_assets(session, project_id):
            if getattr(parse_asset_meta(previous.meta_json), "dialogue_index", None) == dialogue_index:
                session.delete(previous)
        asset = create_asset(
            session,
            project_id,
            AssetType.AUDIO,
            filename,
            stored.key,
            audio,
            NarrationMeta(dialogue_index=dialogue_index, duration=duration, voice_id=options.voice_id),
        )
        step.notes = f"Generated audio for dialogue {dialogue_index}: {stored.key}"
    return NarrationLine(
        dialogue_index=dialogue_index,
        asset_id=asset.id,
        key=stored.key,
        url=stored.url,
        duration=duration,
        size_bytes=asset.size_bytes,
    )


@router.post("/narration", response_model=ApiEnvelope[NarrationResult])
def create_narration(
    payload: NarrationRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    settings: Settings = Depends(get_app_settings),
    store: ArtifactStore = Depends(get_store),
    narrator: NarrationClient = Depends(get_narrator),
) -> ApiEnvelope[NarrationResult]:
    project = load_owned_project(session, payload.project_id, user)
    project_id = project.id
    ensure_transition(project, ProjectStatus.NARRATED)

    beats = list_beats(session, project_id)
    if not beats:
        raise ApiError(400, "Project has no dialogue turns to narrate")

    if payload.is_single:
        dialogues = [(payload.dialogue_index, payload.text)]
    else:
        dialogues = [(beat.index, beat.on_screen_text) for beat in beats if beat.on_screen_text]
        if not dialogues:
            raise ApiError(400, "Project beats have no on-screen text to narrate")

    options = _options(payload, settings)
    mode = "single" if payload.is_single else "batch"
    lines: list[NarrationLine] = []

    with log_context(project_id):
        logger.info("Starting %s narration of %d lines", mode, len(dialogues))
        with job_scope(session, project_id, "narration", "Failed to generate audio") as job:
            record_progress(
                session,
                project_id,
                "NARRATION_START",
                IN_PROGRESS,
                f"Starting narration with voice: {options.voice_id}",
            )
            for position, (dialogue_index, text) in enumerate(dialogues):
                if position and settings.narration_delay_sec:
                    time.sleep(settings.narration_delay_sec)
                lines.append(_narrate_line(session, store, narrator, project_id, dialogue_index, text, options))

            with stage_step(session, project_id, "STATUS_UPDATE", "Marking project narrated"):
                advance_status(session, project, ProjectStatus.NARRATED)

            record_progress(
                session,
                project_id,
                "NARRATION_COMPLETE",
                COMPLETED,
                f"Narration completed: {len(lines)}/{len(dialogues)} lines",
            )
            job_id = job.id

    session.refresh(project)
    return ApiEnvelope(
        data=NarrationResult(
            project_id=project_id,
            mode=mode,
            voice_id=options.voice_id,
            status=project.status,
            lines=lines,
            generated_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            job_id=job_id,
        )
    )


@router.get("/projects/{project_id}/narration", response_model=ApiEnvelope[NarrationOverview])
def get_narration(
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    store: ArtifactStore = Depends(get_store),
) -> ApiEnvelope[NarrationOverview]:
    files: list[NarrationFileOut] = []
    audio_by_index: dict[int, str] = {}
    for asset in narration_assets(session, project.id):
        meta = parse_asset_meta(asset.meta_json)
        files.append(
            NarrationFileOut(
                id=asset.id,
                dialogue_index=meta.dialogue_index,
                filename=asset.label,
                r2_key=asset.r2_key,
                duration=meta.duration,
                voice_id=meta.voice_id,
                bytes=asset.size_bytes,
                created_at=asset.created_at,
                download_url=store.presign(asset.r2_key, "download", settings.presign_ttl_sec),
            )
        )
        audio_by_index.setdefault(meta.dialogue_index, asset.label)

    beats = [
        NarrationBeatOut(
            id=beat.id,
            index=beat.index,
            summary=beat.summary,
            on_screen_text=beat.on_screen_text,
            duration_s=beat.duration_s,
            has_audio=beat.index in audio_by_index,
            audio_file=audio_by_index.get(beat.index),
        )
        for beat in list_beats(session, project.id)
    ]
    return ApiEnvelope(
        data=NarrationOverview(
            project_id=project.id,
            status=project.status,
            total_dialogues=len(beats),
            narrated_dialogues=sum(1 for beat in beats if beat.has_audio),
            audio_files=sorted(files, key=lambda item: item.dialogue_index or 0),
            beats=beats,
        )
    )
