from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlmodel import Session, delete, select

from .asset_service import list_assets, to_asset_out
from .models import Beat, Cue, Frame, FrameStatus, Project, ProjectStatus, StyleBible, User
from .progress import list_progress
from .schemas import (
    BeatOut,
    BeatPlan,
    CueOut,
    FrameOut,
    ProgressEntryOut,
    ProjectDetail,
    ProjectOut,
    StyleBibleMin,
    StyleBibleOut,
)

logger = logging.getLogger(__name__)

RECENT_PROGRESS_LIMIT = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=True)


def _json_loads(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        return {}
    return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Users and projects
# ---------------------------------------------------------------------------


def sync_user(session: Session, external_id: str, email: str) -> User:
    user = session.exec(select(User).where(User.external_id == external_id)).first()
    if user is None:
        user = User(external_id=external_id, email=email)
        session.add(user)
        session.commit()
        session.refresh(user)
        logger.info("Created user for identity %s", external_id)
        return user
    if email and user.email != email:
        user.email = email
        user.updated_at = _utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)
    return user


def create_project(session: Session, owner: User, topic: str) -> Project:
    project = Project(owner_id=owner.id, topic=topic, status=ProjectStatus.PLANNED)
    session.add(project)
    session.commit()
    session.refresh(project)
    logger.info("Created project %s for user %s", project.id, owner.id)
    return project


def list_projects_for_user(session: Session, owner: User) -> list[Project]:
    return list(
        session.exec(
            select(Project).where(Project.owner_id == owner.id).order_by(Project.updated_at.desc())
        ).all()
    )


def get_project_for_user(session: Session, project_id: str, owner: User) -> Optional[Project]:
    return session.exec(
        select(Project).where(Project.id == project_id, Project.owner_id == owner.id)
    ).first()


def touch_project(session: Session, project: Project) -> None:
    project.updated_at = _utcnow()
    session.add(project)


# ---------------------------------------------------------------------------
# Beats and style bibles (replaced wholesale on every planning run)
# ---------------------------------------------------------------------------


def list_beats(session: Session, project_id: str) -> list[Beat]:
    return list(session.exec(select(Beat).where(Beat.project_id == project_id).order_by(Beat.index)).all())


def _delete_frames_and_cues(session: Session, project_id: str) -> None:
    session.exec(delete(Cue).where(Cue.project_id == project_id))
    session.exec(delete(Frame).where(Frame.project_id == project_id))


def replace_beats(session: Session, project: Project, beats: list[BeatPlan]) -> list[Beat]:
    """Stage a delete-then-recreate of the project's beats; the caller commits.

    Frames and cues hang off beats, so they are cleared with them.
    """
    _delete_frames_and_cues(session, project.id)
    session.exec(delete(Beat).where(Beat.project_id == project.id))
    rows = [
        Beat(
            project_id=project.id,
            index=beat.index,
            summary=beat.summary,
            on_screen_text=beat.on_screen_text,
            planned_frames=beat.planned_frames or 0,
            duration_s=beat.duration_s,
        )
        for beat in beats
    ]
    session.add_all(rows)
    return rows


def replace_style_bible(session: Session, project: Project, style: StyleBibleMin) -> StyleBible:
    """Stage a delete-then-recreate of the style bible; the caller commits."""
    session.exec(delete(StyleBible).where(StyleBible.project_id == project.id))
    row = StyleBible(
        project_id=project.id,
        style_json=style.model_dump_json(by_alias=True),
        meta_json=_json_dumps({"active": True}),
    )
    session.add(row)
    return row


def list_style_bibles(session: Session, project_id: str) -> list[StyleBible]:
    return list(
        session.exec(
            select(StyleBible).where(StyleBible.project_id == project_id).order_by(StyleBible.created_at.desc())
        ).all()
    )


def is_active_style_bible(row: StyleBible) -> bool:
    return bool(_json_loads(row.meta_json).get("active"))


def get_active_style_bible(session: Session, project_id: str) -> Optional[StyleBible]:
    rows = list_style_bibles(session, project_id)
    for row in rows:
        if is_active_style_bible(row):
            return row
    return rows[0] if rows else None


def select_active_style_bible(session: Session, project: Project, style_bible_id: str) -> Optional[StyleBible]:
    rows = list_style_bibles(session, project.id)
    chosen = next((row for row in rows if row.id == style_bible_id), None)
    if chosen is None:
        return None
    for row in rows:
        meta = _json_loads(row.meta_json)
        meta["active"] = row.id == style_bible_id
        row.meta_json = _json_dumps(meta)
        session.add(row)
    touch_project(session, project)
    session.commit()
    session.refresh(chosen)
    return chosen


# ---------------------------------------------------------------------------
# Frames
# ---------------------------------------------------------------------------


def list_frames(session: Session, project_id: str) -> list[Frame]:
    frames = session.exec(select(Frame).where(Frame.project_id == project_id)).all()
    beat_order = {beat.id: beat.index for beat in list_beats(session, project_id)}
    return sorted(frames, key=lambda frame: (beat_order.get(frame.beat_id, 0), frame.index))


def materialize_frames(session: Session, project: Project) -> int:
    """Replace every frame of the project with NEW placeholders, one per planned frame.

    Runs as one transaction, so calling it twice leaves the same rows as calling it once.
    """
    beats = list_beats(session, project.id)
    try:
        _delete_frames_and_cues(session, project.id)
        total = 0
        for beat in beats:
            for frame_index in range(1, max(0, beat.planned_frames) + 1):
                session.add(
                    Frame(
                        project_id=project.id,
                        beat_id=beat.id,
                        index=frame_index,
                        status=FrameStatus.NEW,
                    )
                )
                total += 1
        touch_project(session, project)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("Materialized %d frames across %d beats for project %s", total, len(beats), project.id)
    return total


# ---------------------------------------------------------------------------
# Cues
# ---------------------------------------------------------------------------


def list_cues(session: Session, project_id: str) -> list[Cue]:
    return list(session.exec(select(Cue).where(Cue.project_id == project_id).order_by(Cue.start_sec)).all())


def add_cue(
    session: Session,
    project: Project,
    frame_id: str,
    start_sec: float,
    end_sec: float,
    *,
    on_screen_text: Optional[str] = None,
    transition: Optional[dict[str, Any]] = None,
) -> Cue:
    if end_sec <= start_sec:
        raise ValueError("cue end_sec must be greater than start_sec")
    frame = session.exec(select(Frame).where(Frame.id == frame_id, Frame.project_id == project.id)).first()
    if frame is None:
        raise ValueError("frame not found in project")
    cue = Cue(
        project_id=project.id,
        frame_id=frame_id,
        start_sec=start_sec,
        end_sec=end_sec,
        on_screen_text=on_screen_text,
        transition_json=_json_dumps(transition or {}),
    )
    session.add(cue)
    session.commit()
    session.refresh(cue)
    return cue


def find_overlapping_cues(cues: list[Cue]) -> list[tuple[str, str]]:
    overlaps: list[tuple[str, str]] = []
    ordered = sorted(cues, key=lambda cue: (cue.start_sec, cue.end_sec))
    for previous, current in zip(ordered, ordered[1:]):
        if current.start_sec < previous.end_sec:
            overlaps.append((previous.id, current.id))
    return overlaps


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


def to_project_out(project: Project) -> ProjectOut:
    return ProjectOut.model_validate(project)


def to_style_bible_out(row: StyleBible) -> StyleBibleOut:
    return StyleBibleOut(
        id=row.id,
        style=_json_loads(row.style_json),
        active=is_active_style_bible(row),
        created_at=row.created_at,
    )


def load_project_detail(session: Session, project: Project) -> ProjectDetail:
    style_bible = get_active_style_bible(session, project.id)
    return ProjectDetail(
        **to_project_out(project).model_dump(),
        beats=[BeatOut.model_validate(beat) for beat in list_beats(session, project.id)],
        assets=[to_asset_out(asset) for asset in list_assets(session, project.id)],
        frames=[
            FrameOut(
                id=frame.id,
                beat_id=frame.beat_id,
                index=frame.index,
                status=frame.status,
                r2_key=frame.r2_key,
                meta=_json_loads(frame.meta_json),
            )
            for frame in list_frames(session, project.id)
        ],
        cues=[
            CueOut(
                id=cue.id,
                frame_id=cue.frame_id,
                start_sec=cue.start_sec,
                end_sec=cue.end_sec,
                on_screen_text=cue.on_screen_text,
                transition=_json_loads(cue.transition_json),
            )
            for cue in list_cues(session, project.id)
        ],
        style_bible=to_style_bible_out(style_bible) if style_bible else None,
        progress_entries=[
            ProgressEntryOut.model_validate(entry)
            for entry in list_progress(session, project.id, limit=RECENT_PROGRESS_LIMIT)
        ],
    )
