import json

import pytest

from explainer.models import AssetType
from explainer.validation import (
    MB,
    format_bytes,
    generate_safe_filename,
    infer_asset_type_from_filename,
    validate_file,
    validate_filename_pattern,
    validate_project_id,
    validate_project_plan,
)


def test_valid_beat_audio_passes_cleanly() -> None:
    result = validate_file("beat_001.mp3", b"ID3" * 10, AssetType.AUDIO, "audio/mpeg", "BEAT_AUDIO")
    assert result.is_valid
    assert result.errors == []
    assert result.warnings == []


def test_oversized_audio_is_rejected_with_readable_limit() -> None:
    result = validate_file("beat_001.mp3", 60 * MB, AssetType.AUDIO, "audio/mpeg")
    assert not result.is_valid
    assert "exceeds limit of 50 MB" in result.errors[0]


def test_all_checks_accumulate() -> None:
    result = validate_file("clip.exe", 600 * MB, AssetType.VIDEO, None)
    assert not result.is_valid
    assert len(result.errors) == 3
    joined = " ".join(result.errors)
    assert "exceeds limit" in joined
    assert '".exe"' in joined
    assert "MIME type is required" in joined


def test_large_but_allowed_file_warns() -> None:
    result = validate_file("beat_002.wav", 30 * MB, AssetType.AUDIO, "audio/wav")
    assert result.is_valid
    assert len(result.warnings) == 1


def test_mime_type_comparison_ignores_case() -> None:
    assert validate_file("frame.png", 100, AssetType.FRAME, "IMAGE/PNG").is_valid


@pytest.mark.parametrize(
    ("filename", "pattern", "expected"),
    [
        ("B1_F2.png", "FRAME", True),
        ("b12_f3.JPG", "FRAME", True),
        ("frame-1.png", "FRAME", False),
        ("stylebible.min.json", "STYLE_BIBLE", True),
        ("ProjectPlan.json", "PROJECT_PLAN", True),
        ("final.mov", "FINAL_VIDEO", True),
    ],
)
def test_filename_patterns_are_case_insensitive(filename: str, pattern: str, expected: bool) -> None:
    assert validate_filename_pattern(filename, pattern).is_valid is expected


def test_unknown_pattern_name_is_an_error() -> None:
    result = validate_filename_pattern("beat_001.mp3", "NOT_A_PATTERN")
    assert not result.is_valid
    assert "Unknown filename pattern" in result.errors[0]


def test_format_bytes() -> None:
    assert format_bytes(0) == "0 Bytes"
    assert format_bytes(512) == "512 Bytes"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(50 * MB) == "50 MB"


def test_generate_safe_filename() -> None:
    assert generate_safe_filename("My Plan (v2).JSON") == "my_plan_v2_.json"
    assert generate_safe_filename("beat_001.mp3") == "beat_001.mp3"


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("beat_001_align.json", AssetType.ALIGN),
        ("cues.json", AssetType.CUE),
        ("ProjectPlan.json", AssetType.DOC),
        ("B1_F2.png", AssetType.FRAME),
        ("final.mov", AssetType.VIDEO),
        ("beat_003.mp3", AssetType.AUDIO),
        ("archive.exe", None),
    ],
)
def test_infer_asset_type_from_filename(filename: str, expected: AssetType) -> None:
    assert infer_asset_type_from_filename(filename) == expected


def test_project_plan_requires_top_level_fields() -> None:
    result = validate_project_plan(json.dumps({"beats": [{"index": 1, "summary": "Intro"}]}))
    assert not result.is_valid
    assert "dialogueInputs" in result.errors[0]
    assert "timelineSkeleton" in result.errors[0]


def test_project_plan_beats_missing_fields_only_warn() -> None:
    plan = {
        "dialogueInputs": [{"index": 0, "text": "Hi", "estimatedDuration": 5}],
        "beats": [{"index": 1, "summary": "Intro"}, {"summary": "No index"}],
        "styleBibleMin": {"visualStyle": "flat"},
        "timelineSkeleton": {"totalDuration": 10},
    }
    result = validate_project_plan(json.dumps(plan))
    assert result.is_valid
    assert result.warnings == ["Beat 1 is missing required fields (index, summary)"]


def test_invalid_json_plan() -> None:
    result = validate_project_plan("{not json")
    assert not result.is_valid
    assert result.errors[0].startswith("Invalid JSON")


def test_project_id_format_is_only_a_warning() -> None:
    assert validate_project_id("6f1c2c5e-8a0b-4e55-9d4f-2b7f0d9a1c33").warnings == []
    result = validate_project_id("project-1")
    assert result.is_valid
    assert result.warnings == ["Project ID does not follow UUID format"]
