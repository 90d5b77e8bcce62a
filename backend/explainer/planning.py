from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .schemas import (
    BeatPlan,
    BeatTiming,
    DialogueTurn,
    PlanResponse,
    ProjectPlanFile,
    StyleBibleFile,
    StyleBibleMin,
    TimelineSkeleton,
)
from .storage import ArtifactStore

logger = logging.getLogger(__name__)

PROJECT_PLAN_FILENAME = "ProjectPlan.json"
STYLE_BIBLE_FILENAME = "StyleBible.min.json"

MOCK_TEST_TOPICS = (
    "The science of productivity",
    "Understanding cryptocurrency",
    "Building sustainable habits",
    "The psychology of decision making",
)
DEFAULT_TEST_TOPIC = "How to make the perfect coffee"

_MOCK_BEATS = (
    ("Introduction and hook - animated title sequence with {topic} visualization", "Understanding {topic}", 2, 20),
    ("Definition and context - infographic style explanation with icons", "What it means", 3, 27),
    ("Key components breakdown - diagram with interconnected elements", "Key Components", 4, 33),
    ("Practical applications showcase - split screen examples", "Real Applications", 3, 38),
    ("Real-world examples - case studies with visual data", "Success Stories", 3, 36),
    ("Future trends and conclusion - forward-looking animation", "The Future", 2, 24),
)

_MOCK_DIALOGUE = (
    ("Ever wondered about {topic}? Let's dive in and explore this fascinating topic together.", 8),
    ("First, let's understand what {topic} actually means and why it matters in today's world.", 12),
    ("The key components that make {topic} work are interconnected in interesting ways.", 15),
    ("Here's where things get really interesting - the practical applications are endless.", 18),
    ("Let's look at some real-world examples that demonstrate these principles in action.", 20),
    ("But what about the challenges? Every system has its limitations and considerations.", 16),
    ("The future looks bright with emerging trends and innovations on the horizon.", 14),
    ("Now you have a solid understanding of {topic} and its importance. Thanks for watching!", 10),
)

_MOCK_TIMINGS = ((0, 20), (20, 47), (47, 80), (80, 118), (118, 154), (154, 178))


@dataclass(frozen=True)
class PlanFiles:
    project_plan: ProjectPlanFile
    style_bible: StyleBibleFile


@dataclass(frozen=True)
class StoredPlanFiles:
    project_plan_key: str
    style_bible_key: str
    project_plan_bytes: bytes
    style_bible_bytes: bytes


def _isoformat_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def generate_mock_plan(topic: str) -> PlanResponse:
    """Deterministic plan used by the test endpoints and local development."""
    dialogue = [
        DialogueTurn(index=index, text=text.format(topic=topic), estimated_duration=duration)
        for index, (text, duration) in enumerate(_MOCK_DIALOGUE)
    ]
    beats = [
        BeatPlan(
            index=index,
            summary=summary.format(topic=topic),
            on_screen_text=on_screen.format(topic=topic),
            planned_frames=frames,
            duration_s=duration,
        )
        for index, (summary, on_screen, frames, duration) in enumerate(_MOCK_BEATS, start=1)
    ]
    style = StyleBibleMin(
        visual_style="Modern flat illustration with clean geometric shapes and subtle gradients",
        color_palette=["#2563eb", "#3b82f6", "#60a5fa", "#93c5fd", "#ffffff"],
        typography="Inter font family, bold for headings, medium for body text",
        mood="Professional, approachable, and educational",
    )
    timeline = TimelineSkeleton(
        total_duration=180,
        beat_timings=[
            BeatTiming(beat_index=index, start_time=start, end_time=end)
            for index, (start, end) in enumerate(_MOCK_TIMINGS, start=1)
        ],
    )
    return PlanResponse(
        dialogue_inputs=dialogue,
        beats=beats,
        style_bible_min=style,
        timeline_skeleton=timeline,
    )


def build_plan_files(topic: str, plan: PlanResponse) -> PlanFiles:
    created_at = _isoformat_now()
    project_plan = ProjectPlanFile(
        topic=topic,
        total_duration=plan.timeline_skeleton.total_duration,
        dialogue_inputs=plan.dialogue_inputs,
        beats=plan.beats,
        timeline_skeleton=plan.timeline_skeleton,
        created_at=created_at,
    )
    style_bible = StyleBibleFile(**plan.style_bible_min.model_dump(), created_at=created_at)
    return PlanFiles(project_plan=project_plan, style_bible=style_bible)


def serialize_plan_files(files: PlanFiles) -> tuple[bytes, bytes]:
    project_plan = files.project_plan.model_dump_json(by_alias=True, indent=2).encode("utf-8")
    style_bible = files.style_bible.model_dump_json(by_alias=True).encode("utf-8")
    return project_plan, style_bible


def store_plan_files(
    store: ArtifactStore,
    project_id: str,
    files: PlanFiles,
    version: Optional[str] = None,
) -> StoredPlanFiles:
    """Upload both plan files, under ``plan/{version}/`` when a version is given."""
    project_plan_bytes, style_bible_bytes = serialize_plan_files(files)
    plan_object = store.put_plan_file(project_id, PROJECT_PLAN_FILENAME, project_plan_bytes, version=version)
    style_object = store.put_plan_file(project_id, STYLE_BIBLE_FILENAME, style_bible_bytes, version=version)
    logger.info("Plan files uploaded: %s, %s", plan_object.key, style_object.key)
    return StoredPlanFiles(
        project_plan_key=plan_object.key,
        style_bible_key=style_object.key,
        project_plan_bytes=project_plan_bytes,
        style_bible_bytes=style_bible_bytes,
    )
