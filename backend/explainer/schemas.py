from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .models import AssetType, FrameStatus, JobStatus, ProjectStatus

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiEnvelope(BaseModel, Generic[T]):
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Plan documents (the LLM contract and the files written under plan/)
# ---------------------------------------------------------------------------


class DialogueTurn(CamelModel):
    index: int
    text: str
    estimated_duration: float


class BeatPlan(CamelModel):
    index: int
    summary: str
    on_screen_text: Optional[str] = None
    planned_frames: Optional[int] = Field(default=None, ge=0)
    duration_s: Optional[float] = None


class StyleBibleMin(CamelModel):
    visual_style: str = Field(min_length=1)
    color_palette: list[str]
    typography: str = Field(min_length=1)
    mood: str = Field(min_length=1)


class BeatTiming(CamelModel):
    beat_index: int
    start_time: float
    end_time: float


class TimelineSkeleton(CamelModel):
    total_duration: float
    beat_timings: list[BeatTiming] = Field(default_factory=list)


class PlanResponse(CamelModel):
    dialogue_inputs: list[DialogueTurn]
    beats: list[BeatPlan]
    style_bible_min: StyleBibleMin
    timeline_skeleton: TimelineSkeleton

    @model_validator(mode="after")
    def validate_unique_indices(self) -> "PlanResponse":
        for name, items in (("beats", self.beats), ("dialogueInputs", self.dialogue_inputs)):
            seen: set[int] = set()
            for item in items:
                if item.index in seen:
                    raise ValueError(f"duplicate {name} index {item.index}")
                seen.add(item.index)
        return self


class ProjectPlanFile(CamelModel):
    topic: str
    total_duration: float
    dialogue_inputs: list[DialogueTurn]
    beats: list[BeatPlan]
    timeline_skeleton: TimelineSkeleton
    created_at: str
    version: Literal["1.0"] = "1.0"


class StyleBibleFile(StyleBibleMin):
    created_at: str
    version: Literal["1.0"] = "1.0"


# ---------------------------------------------------------------------------
# Asset metadata, one variant per asset kind
# ---------------------------------------------------------------------------


class PlanDocMeta(BaseModel):
    kind: Literal["plan"] = "plan"
    description: str = "Full planning artifact"
    active: bool = True


class StyleBibleDocMeta(BaseModel):
    kind: Literal["style_bible_min"] = "style_bible_min"
    active: bool = True


class NarrationMeta(BaseModel):
    kind: Literal["narration"] = "narration"
    dialogue_index: int
    duration: Optional[float] = None
    voice_id: str


class UploadMeta(BaseModel):
    kind: Literal["upload"] = "upload"
    original_filename: str
    content_type: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)


AssetMeta = Annotated[
    Union[PlanDocMeta, StyleBibleDocMeta, NarrationMeta, UploadMeta],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class VoiceSettings(BaseModel):
    # Snake case on purpose: this is the TTS provider's wire format.
    stability: float = Field(default=0.8, ge=0.0, le=1.0)
    similarity_boost: float = Field(default=0.9, ge=0.0, le=1.0)
    style: Optional[float] = Field(default=0.7, ge=0.0, le=1.0)
    use_speaker_boost: Optional[bool] = True
    speed: Optional[float] = Field(default=1.0, ge=0.5, le=2.0)


class ProjectCreateRequest(CamelModel):
    topic: str = Field(min_length=1, max_length=500)


class PlanRequest(CamelModel):
    project_id: str = Field(min_length=1)
    topic: str = Field(min_length=1, max_length=500)


class PlanTestRequest(CamelModel):
    topic: Optional[str] = Field(default=None, min_length=1, max_length=500)


class PlanSelectRequest(CamelModel):
    plan_asset_id: Optional[str] = None
    style_bible_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_target(self) -> "PlanSelectRequest":
        if not self.plan_asset_id and not self.style_bible_id:
            raise ValueError("planAssetId or styleBibleId is required")
        return self


class NarrationRequest(CamelModel):
    project_id: str = Field(min_length=1)
    dialogue_index: Optional[int] = Field(default=None, ge=0)
    text: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    voice_id: Optional[str] = None
    model_id: Optional[str] = None
    output_format: Optional[str] = None
    voice_settings: Optional[VoiceSettings] = None

    @model_validator(mode="after")
    def validate_mode(self) -> "NarrationRequest":
        if (self.dialogue_index is None) != (self.text is None):
            raise ValueError("dialogueIndex and text must be provided together for single narration")
        return self

    @property
    def is_single(self) -> bool:
        return self.dialogue_index is not None and self.text is not None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ProjectOut(CamelModel):
    id: str
    owner_id: str
    topic: str
    status: ProjectStatus
    created_at: datetime
    updated_at: datetime


class BeatOut(CamelModel):
    id: str
    index: int
    summary: str
    on_screen_text: Optional[str] = None
    planned_frames: int
    duration_s: Optional[float] = None


class StyleBibleOut(CamelModel):
    id: str
    style: dict[str, Any]
    active: bool
    created_at: datetime


class AssetOut(CamelModel):
    id: str
    project_id: str
    type: AssetType
    label: str
    r2_key: str
    size_bytes: int
    checksum: Optional[str] = None
    meta: Optional[dict[str, Any]] = None
    created_at: datetime


class FrameOut(CamelModel):
    id: str
    beat_id: str
    index: int
    status: FrameStatus
    r2_key: Optional[str] = None
    meta: dict[str, Any] = Field(default_factory=dict)


class CueOut(CamelModel):
    id: str
    frame_id: str
    start_sec: float
    end_sec: float
    on_screen_text: Optional[str] = None
    transition: dict[str, Any] = Field(default_factory=dict)


class ProgressEntryOut(CamelModel):
    id: int
    phase: str
    status: str
    notes: Optional[str] = None
    created_at: datetime


class JobOut(CamelModel):
    id: str
    project_id: str
    kind: str
    status: JobStatus
    logs: str
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ProjectDetail(ProjectOut):
    beats: list[BeatOut] = Field(default_factory=list)
    assets: list[AssetOut] = Field(default_factory=list)
    frames: list[FrameOut] = Field(default_factory=list)
    cues: list[CueOut] = Field(default_factory=list)
    style_bible: Optional[StyleBibleOut] = None
    progress_entries: list[ProgressEntryOut] = Field(default_factory=list)


class FramesResult(CamelModel):
    total: int
    project: ProjectDetail


class PlanStorageKeys(CamelModel):
    project_plan_key: str
    style_bible_key: str


class PlanMetadata(CamelModel):
    total_duration: float
    beat_count: int
    dialogue_count: int
    generated_at: str
    test_mode: Optional[bool] = None


class PlanResult(CamelModel):
    project_id: Optional[str] = None
    topic: str
    status: ProjectStatus
    plan_response: PlanResponse
    storage: Optional[PlanStorageKeys] = None
    metadata: PlanMetadata
    job_id: Optional[str] = None
    test_info: Optional[dict[str, Any]] = None


class PlanSelectResult(CamelModel):
    plan_asset_id: Optional[str] = None
    style_bible_id: Optional[str] = None


class NarrationLine(CamelModel):
    dialogue_index: int
    asset_id: str
    key: str
    url: str
    duration: Optional[float] = None
    size_bytes: int


class NarrationResult(CamelModel):
    project_id: str
    mode: Literal["single", "batch"]
    voice_id: str
    status: ProjectStatus
    lines: list[NarrationLine]
    generated_at: str
    job_id: str


class NarrationFileOut(CamelModel):
    id: str
    dialogue_index: Optional[int] = None
    filename: str
    r2_key: str
    duration: Optional[float] = None
    voice_id: Optional[str] = None
    bytes: int
    created_at: datetime
    download_url: str


class NarrationBeatOut(CamelModel):
    id: str
    index: int
    summary: str
    on_screen_text: Optional[str] = None
    duration_s: Optional[float] = None
    has_audio: bool
    audio_file: Optional[str] = None


class NarrationOverview(CamelModel):
    project_id: str
    status: ProjectStatus
    total_dialogues: int
    narrated_dialogues: int
    audio_files: list[NarrationFileOut]
    beats: list[NarrationBeatOut]


class AssetUploadResult(CamelModel):
    asset: AssetOut
    url: str
    warnings: list[str] = Field(default_factory=list)


class TypeUsage(CamelModel):
    count: int = 0
    bytes: int = 0


class StorageUsage(CamelModel):
    total_assets: int
    total_bytes: int
    by_type: dict[str, TypeUsage]
