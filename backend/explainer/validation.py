"""Upload validation against a static per-asset-type policy table.

Every check runs independently and the results are merged, so a single call
reports an oversized file with a wrong extension and a wrong MIME type all at
once. Nothing here touches the network or the database.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from .models import AssetType

MB = 1024 * 1024

FILE_SIZE_LIMITS: dict[AssetType, int] = {
    AssetType.AUDIO: 50 * MB,
    AssetType.VIDEO: 500 * MB,
    AssetType.FRAME: 10 * MB,
    AssetType.DOC: 5 * MB,
    AssetType.ALIGN: 1 * MB,
    AssetType.CUE: 1 * MB,
}

ALLOWED_MIME_TYPES: dict[AssetType, tuple[str, ...]] = {
    AssetType.AUDIO: (
        "audio/wav",
        "audio/wave",
        "audio/x-wav",
        "audio/mpeg",
        "audio/mp3",
        "audio/mp4",
        "audio/aac",
        "audio/ogg",
        "audio/webm",
    ),
    AssetType.VIDEO: (
        "video/mp4",
        "video/mpeg",
        "video/quicktime",
        "video/x-msvideo",
        "video/webm",
        "video/ogg",
    ),
    AssetType.FRAME: (
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/webp",
        "image/gif",
        "image/svg+xml",
    ),
    AssetType.DOC: (
        "application/json",
        "application/pdf",
        "text/plain",
        "text/markdown",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ),
    AssetType.ALIGN: ("application/json", "text/plain"),
    AssetType.CUE: ("application/json", "text/plain"),
}

ALLOWED_EXTENSIONS: dict[AssetType, tuple[str, ...]] = {
    AssetType.AUDIO: (".wav", ".mp3", ".mp4", ".aac", ".ogg", ".webm", ".m4a"),
    AssetType.VIDEO: (".mp4", ".mpeg", ".mov", ".avi", ".webm", ".ogv", ".mkv"),
    AssetType.FRAME: (".png", ".jpg", ".jpeg", ".webp", ".gif", ".svg"),
    AssetType.DOC: (".json", ".pdf", ".txt", ".md", ".doc", ".docx"),
    AssetType.ALIGN: (".json", ".txt"),
    AssetType.CUE: (".json", ".txt"),
}

FILENAME_PATTERNS: dict[str, re.Pattern[str]] = {
    "BEAT_AUDIO": re.compile(r"^beat_\d+\.(wav|mp3|mp4|aac|ogg|webm|m4a)$", re.IGNORECASE),
    "BEAT_ALIGNMENT": re.compile(r"^beat_\d+\.json$", re.IGNORECASE),
    "FRAME": re.compile(r"^B\d+_F\d+\.(png|jpg|jpeg|webp|gif)$", re.IGNORECASE),
    "PROJECT_PLAN": re.compile(r"^ProjectPlan\.json$", re.IGNORECASE),
    "STYLE_BIBLE": re.compile(r"^StyleBible\.min\.json$", re.IGNORECASE),
    "CUES": re.compile(r"^cues\.json$", re.IGNORECASE),
    "FINAL_VIDEO": re.compile(r"^final\.(mp4|webm|mov)$", re.IGNORECASE),
    "FINAL_ALIGNMENT": re.compile(r"^final\.json$", re.IGNORECASE),
}

PLAN_REQUIRED_FIELDS = ("dialogueInputs", "beats", "styleBibleMin", "timelineSkeleton")

_UUID_RE = re.compile(r"^[a-f\d]{8}(-[a-f\d]{4}){3}-[a-f\d]{12}$", re.IGNORECASE)


@dataclass
class ValidationResult:
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def fail(self, message: str) -> None:
        self.is_valid = False
        self.errors.append(message)

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        if not other.is_valid:
            self.is_valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self


def get_file_extension(filename: str) -> str:
    last_dot = filename.rfind(".")
    return filename[last_dot:].lower() if last_dot != -1 else ""


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB", "TB"]
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(units) - 1:
        exponent += 1
    value = round(size / (1024**exponent), 2)
    return f"{value:g} {units[exponent]}"


def validate_file_size(size: int, asset_type: AssetType) -> ValidationResult:
    result = ValidationResult()
    limit = FILE_SIZE_LIMITS[asset_type]
    if size > limit:
        result.fail(
            f"File size {format_bytes(size)} exceeds limit of {format_bytes(limit)} for {asset_type.value} files"
        )
    if size > limit * 0.5:
        result.warnings.append(
            f"File size {format_bytes(size)} is large for {asset_type.value} files (limit: {format_bytes(limit)})"
        )
    return result


def validate_mime_type(mime_type: Optional[str], asset_type: AssetType) -> ValidationResult:
    result = ValidationResult()
    if not mime_type:
        result.fail("MIME type is required")
        return result
    allowed = ALLOWED_MIME_TYPES[asset_type]
    if mime_type.lower() not in allowed:
        result.fail(
            f'MIME type "{mime_type}" is not allowed for {asset_type.value} files. '
            f"Allowed types: {', '.join(allowed)}"
        )
    return result


def validate_file_extension(filename: str, asset_type: AssetType) -> ValidationResult:
    result = ValidationResult()
    extension = get_file_extension(filename)
    allowed = ALLOWED_EXTENSIONS[asset_type]
    if extension not in allowed:
        result.fail(
            f'File extension "{extension}" is not allowed for {asset_type.value} files. '
            f"Allowed extensions: {', '.join(allowed)}"
        )
    return result


def validate_filename_pattern(filename: str, expected_pattern: Optional[str] = None) -> ValidationResult:
    result = ValidationResult()
    if not expected_pattern:
        return result
    pattern = FILENAME_PATTERNS.get(expected_pattern)
    if pattern is None:
        result.fail(f'Unknown filename pattern "{expected_pattern}"')
        return result
    if not pattern.match(filename):
        result.fail(f'Filename "{filename}" does not match expected pattern for {expected_pattern}')
    return result


def validate_file(
    filename: str,
    data: bytes | int,
    asset_type: AssetType,
    mime_type: Optional[str] = None,
    expected_pattern: Optional[str] = None,
) -> ValidationResult:
    size = data if isinstance(data, int) else len(data)
    combined = ValidationResult()
    for partial in (
        validate_file_size(size, asset_type),
        validate_file_extension(filename, asset_type),
        validate_mime_type(mime_type, asset_type),
        validate_filename_pattern(filename, expected_pattern),
    ):
        combined.merge(partial)
    return combined


def validate_project_id(project_id: str) -> ValidationResult:
    result = ValidationResult()
    if not _UUID_RE.match(project_id):
        result.warnings.append("Project ID does not follow UUID format")
    return result


def generate_safe_filename(original_name: str) -> str:
    lowered = re.sub(r"[^a-z0-9.-]", "_", original_name.lower())
    lowered = re.sub(r"_+", "_", lowered)
    return lowered.strip("_")


def infer_asset_type_from_filename(filename: str) -> Optional[AssetType]:
    extension = get_file_extension(filename)
    lowered = filename.lower()
    # Alignment and cue sheets are JSON too, so the name hint wins over the DOC fallback.
    if extension == ".json" and "align" in lowered:
        return AssetType.ALIGN
    if extension == ".json" and "cue" in lowered:
        return AssetType.CUE
    for asset_type in (AssetType.AUDIO, AssetType.VIDEO, AssetType.FRAME, AssetType.DOC):
        if extension in ALLOWED_EXTENSIONS[asset_type]:
            return asset_type
    return None


def validate_json(content: str) -> ValidationResult:
    result = ValidationResult()
    try:
        json.loads(content)
    except ValueError as exc:
        result.fail(f"Invalid JSON: {exc}")
    return result


def validate_project_plan(content: str) -> ValidationResult:
    result = validate_json(content)
    if not result.is_valid:
        return result

    plan: Any = json.loads(content)
    if not isinstance(plan, dict):
        result.fail("Project plan must be a JSON object")
        return result

    missing = [name for name in PLAN_REQUIRED_FIELDS if not plan.get(name)]
    if missing:
        result.fail(f"Missing required fields in project plan: {', '.join(missing)}")

    beats = plan.get("beats")
    if isinstance(beats, list):
        for position, beat in enumerate(beats):
            if (
                not isinstance(beat, dict)
                or not isinstance(beat.get("index"), int)
                or not isinstance(beat.get("summary"), str)
            ):
                result.warnings.append(f"Beat {position} is missing required fields (index, summary)")
    return result
