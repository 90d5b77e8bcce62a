from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlmodel import Session

from ..asset_service import (
    create_asset,
    delete_asset,
    find_orphaned_assets,
    get_asset_for_project,
    list_assets,
    storage_usage,
    to_asset_out,
)
from ..config import Settings
from ..database import get_session
from ..deps import get_app_settings, get_project_or_404, get_store
from ..errors import ApiError
from ..logging_setup import log_context
from ..models import AssetType, Project
from ..schemas import ApiEnvelope, AssetOut, AssetUploadResult, StorageUsage, UploadMeta
from ..storage import ArtifactStore
from ..validation import (
    FILE_SIZE_LIMITS,
    generate_safe_filename,
    infer_asset_type_from_filename,
    validate_file,
    validate_project_plan,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects/{project_id}", tags=["assets"])


@router.get("/assets", response_model=ApiEnvelope[list[AssetOut]])
def get_assets(
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
    asset_type: Optional[AssetType] = Query(default=None, alias="type"),
) -> ApiEnvelope[list[AssetOut]]:
    return ApiEnvelope(data=[to_asset_out(asset) for asset in list_assets(session, project.id, asset_type)])


@router.post("/assets", response_model=ApiEnvelope[AssetUploadResult])
def upload_asset(
    file: UploadFile = File(...),
    asset_type: Optional[AssetType] = Form(default=None, alias="type"),
    label: Optional[str] = Form(default=None),
    pattern: Optional[str] = Form(default=None),
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
    store: ArtifactStore = Depends(get_store),
) -> ApiEnvelope[AssetUploadResult]:
    filename = file.filename or ""
    resolved_type = asset_type or infer_asset_type_from_filename(filename)
    if resolved_type is None:
        raise ApiError(400, "Could not determine asset type", ["Pass an explicit type for this file"])

    # Reads stop one byte past the type's size limit.
    limit = FILE_SIZE_LIMITS[resolved_type]
    if file.size is not None and file.size > limit:
        data = b""
        size = file.size
    else:
        data = file.file.read(limit + 1)
        size = len(data)
    result = validate_file(filename, size, resolved_type, file.content_type, pattern)
    if result.is_valid and pattern == "PROJECT_PLAN":
        result.merge(validate_project_plan(data.decode("utf-8", errors="replace")))
    if not result.is_valid:
        raise ApiError(400, "File validation failed", result.errors)

    with log_context(project.id):
        stored_name = filename if pattern else generate_safe_filename(filename)
        stored = store.put(
            project.id,
            resolved_type,
            stored_name,
            data,
            file.content_type or "application/octet-stream",
        )
        asset = create_asset(
            session,
            project.id,
            resolved_type,
            label or stored_name,
            stored.key,
            data,
            UploadMeta(original_filename=filename, content_type=file.content_type, warnings=result.warnings),
        )
        logger.info("Stored upload %s as asset %s", filename, asset.id)

    return ApiEnvelope(
        data=AssetUploadResult(
            asset=to_asset_out(asset),
            url=store.presign(stored.key, "download", settings.presign_ttl_sec),
            warnings=result.warnings,
        )
    )


@router.delete("/assets/{asset_id}", response_model=ApiEnvelope[AssetOut])
def remove_asset(
    asset_id: str,
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
    store: ArtifactStore = Depends(get_store),
) -> ApiEnvelope[AssetOut]:
    asset = get_asset_for_project(session, project, asset_id)
    if asset is None:
        raise ApiError(404, "Asset not found")
    payload = to_asset_out(asset)
    with log_context(project.id):
        delete_asset(session, store, asset)
    return ApiEnvelope(data=payload)


@router.get("/assets/orphans", response_model=ApiEnvelope[list[AssetOut]])
def get_orphaned_assets(
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
    store: ArtifactStore = Depends(get_store),
) -> ApiEnvelope[list[AssetOut]]:
    return ApiEnvelope(data=[to_asset_out(asset) for asset in find_orphaned_assets(session, store, project.id)])


@router.get("/storage", response_model=ApiEnvelope[StorageUsage])
def get_storage_usage(
    project: Project = Depends(get_project_or_404),
    session: Session = Depends(get_session),
) -> ApiEnvelope[StorageUsage]:
    return ApiEnvelope(data=storage_usage(session, project.id))
