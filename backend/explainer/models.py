from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import BigInteger, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


class ProjectStatus(str, Enum):
    PLANNED = "PLANNED"
    NARRATED = "NARRATED"
    ALIGNED = "ALIGNED"
    CUES_READY = "CUES_READY"
    FRAMES_READY = "FRAMES_READY"
    ASSEMBLED = "ASSEMBLED"


class AssetType(str, Enum):
    AUDIO = "AUDIO"
    ALIGN = "ALIGN"
    FRAME = "FRAME"
    CUE = "CUE"
    VIDEO = "VIDEO"
    DOC = "DOC"


class FrameStatus(str, Enum):
    NEW = "NEW"
    GENERATED = "GENERATED"
    APPROVED = "APPROVED"
    REPAIR_NEEDED = "REPAIR_NEEDED"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=_new_id, primary_key=True)
    external_id: str = Field(index=True, unique=True)
    email: str
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class Project(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    owner_id: str = Field(foreign_key="users.id", index=True)
    topic: str
    status: ProjectStatus = Field(default=ProjectStatus.PLANNED)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class Beat(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("project_id", "index", name="uq_beat_project_index"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    index: int
    summary: str
    on_screen_text: Optional[str] = None
    planned_frames: int = 0
    duration_s: Optional[float] = None
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)


class StyleBible(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    style_json: str = Field(sa_type=Text)
    # {"active": bool}; at most one active row per project, kept by the service layer.
    meta_json: str = "{}"
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)


class Asset(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    type: AssetType = Field(index=True)
    label: str
    r2_key: str
    size_bytes: int = Field(default=0, sa_type=BigInteger)
    checksum: Optional[str] = None
    meta_json: Optional[str] = Field(default=None, sa_type=Text)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)


class Frame(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("project_id", "beat_id", "index", name="uq_frame_project_beat_index"),)

    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    beat_id: str = Field(foreign_key="beat.id", index=True)
    index: int
    status: FrameStatus = Field(default=FrameStatus.NEW)
    r2_key: Optional[str] = None
    meta_json: str = "{}"
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class Cue(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    frame_id: str = Field(foreign_key="frame.id", index=True)
    start_sec: float
    end_sec: float
    on_screen_text: Optional[str] = None
    transition_json: str = "{}"
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)


class Job(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    kind: str
    status: JobStatus = Field(default=JobStatus.PENDING)
    logs: str = Field(default="", sa_type=Text)
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class ProgressEntry(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: str = Field(foreign_key="project.id", index=True)
    phase: str
    status: str
    notes: Optional[str] = Field(default=None, sa_type=Text)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False, index=True)
