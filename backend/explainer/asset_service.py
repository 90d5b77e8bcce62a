from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError
from sqlmodel import Session, select

from .models import Asset, AssetType, Project
from .schemas import AssetMeta, AssetOut, StorageUsage, TypeUsage
from .storage import ArtifactStore

logger = logging.getLogger(__name__)

_asset_meta_adapter: TypeAdapter[Any] = TypeAdapter(AssetMeta)


def checksum_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def dump_asset_meta(meta: Any) -> str:
    return meta.model_dump_json()


def parse_asset_meta(raw: Optional[str]) -> Optional[Any]:
    """Decode an asset's stored metadata into its typed variant, or None if absent/unknown."""
    if not raw:
        return None
    try:
        return _asset_meta_adapter.validate_json(raw)
    except ValidationError:
        return None


def _raw_meta(raw: Optional[str]) -> Optional[dict[str, Any]]:
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def to_asset_out(asset: Asset) -> AssetOut:
    return AssetOut(
        id=asset.id,
        project_id=asset.project_id,
        type=asset.type,
        label=asset.label,
        r2_key=asset.r2_key,
        size_bytes=asset.size_bytes,
        checksum=asset.checksum,
        meta=_raw_meta(asset.meta_json),
        created_at=asset.created_at,
    )


def build_asset(
    project_id: str,
    asset_type: AssetType,
    label: str,
    r2_key: str,
    data: bytes,
    meta: Any = None,
) -> Asset:
    return Asset(
        project_id=project_id,
        type=asset_type,
        label=label,
        r2_key=r2_key,
        size_bytes=len(data),
        checksum=checksum_bytes(data),
        meta_json=dump_asset_meta(meta) if meta is not None else None,
    )


def create_asset(
    session: Session,
    project_id: str,
    asset_type: AssetType,
    label: str,
    r2_key: str,
    data: bytes,
    meta: Any = None,
    *,
    commit: bool = True,
) -> Asset:
    asset = build_asset(project_id, asset_type, label, r2_key, data, meta)
    session.add(asset)
    if commit:
        session.commit()
        session.refresh(asset)
    return asset


def list_assets(session: Session, project_id: str, asset_type: Optional[AssetType] = None) -> list[Asset]:
    statement = select(Asset).where(Asset.project_id == project_id)
    if asset_type is not None:
        statement = statement.where(Asset.type == asset_type)
    return list(session.exec(statement.order_by(Asset.created_at.desc())).all())


def get_asset_for_project(session: Session, project: Project, asset_id: str) -> Optional[Asset]:
    return session.exec(select(Asset).where(Asset.id == asset_id, Asset.project_id == project.id)).first()


def update_asset_meta(session: Session, asset: Asset, meta: Any, *, commit: bool = True) -> Asset:
    asset.meta_json = dump_asset_meta(meta)
    session.add(asset)
    if commit:
        session.commit()
        session.refresh(asset)
    return asset


def delete_asset(session: Session, store: ArtifactStore, asset: Asset) -> None:
    """Remove the stored object first; the row survives if the store refuses."""
    store.delete(asset.r2_key)
    session.delete(asset)
    session.commit()
    logger.info("Deleted asset %s (%s)", asset.id, asset.r2_key)


def narration_assets(session: Session, project_id: str) -> list[Asset]:
    return [
        asset
        for asset in list_assets(session, project_id, AssetType.AUDIO)
        if getattr(parse_asset_meta(asset.meta_json), "kind", None) == "narration"
    ]


def _plan_docs(session: Session, project_id: str) -> list[tuple[Asset, Any]]:
    docs = [(asset, parse_asset_meta(asset.meta_json)) for asset in list_assets(session, project_id, AssetType.DOC)]
    return [(asset, meta) for asset, meta in docs if getattr(meta, "kind", None) in ("plan", "style_bible_min")]


def deactivate_plan_docs(session: Session, project_id: str) -> int:
    """Flag existing plan documents inactive before a new planning run adds its own; the caller commits."""
    changed = 0
    for asset, meta in _plan_docs(session, project_id):
        if meta.active:
            update_asset_meta(session, asset, meta.model_copy(update={"active": False}), commit=False)
            changed += 1
    return changed


def get_active_plan_asset(session: Session, project_id: str) -> Optional[Asset]:
    plans = [(asset, meta) for asset, meta in _plan_docs(session, project_id) if meta.kind == "plan"]
    for asset, meta in plans:
        if meta.active:
            return asset
    return plans[0][0] if plans else None


def select_active_plan_asset(session: Session, project: Project, asset_id: str) -> Optional[Asset]:
    """Mark one plan DOC asset active and every other plan DOC of the project inactive."""
    plans = [(asset, meta) for asset, meta in _plan_docs(session, project.id) if meta.kind == "plan"]
    chosen = next((asset for asset, _ in plans if asset.id == asset_id), None)
    if chosen is None:
        return None
    for asset, meta in plans:
        update_asset_meta(session, asset, meta.model_copy(update={"active": asset.id == asset_id}), commit=False)
    session.commit()
    session.refresh(chosen)
    return chosen


def storage_usage(session: Session, project_id: str) -> StorageUsage:
    by_type: dict[str, TypeUsage] = {}
    total_bytes = 0
    assets = list_assets(session, project_id)
    for asset in assets:
        key = AssetType(asset.type).value
        usage = by_type.setdefault(key, TypeUsage())
        usage.count += 1
        usage.bytes += asset.size_bytes
        total_bytes += asset.size_bytes
    return StorageUsage(total_assets=len(assets), total_bytes=total_bytes, by_type=by_type)


def find_orphaned_assets(session: Session, store: ArtifactStore, project_id: str) -> list[Asset]:
    """Assets whose row exists but whose stored object is gone."""
    orphaned = [asset for asset in list_assets(session, project_id) if not store.exists(asset.r2_key)]
    if orphaned:
        logger.warning("Found %d orphaned assets for project %s", len(orphaned), project_id)
    return orphaned
