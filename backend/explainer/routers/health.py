from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..database import check_database_connection
from ..errors import ApiError, StorageError
from ..models import AssetType
from ..validation import validate_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _service_state(configured: bool, reachable: bool) -> str:
    if not configured:
        return "not_configured"
    return "operational" if reachable else "unavailable"


@router.get("/health")
def health(request: Request) -> JSONResponse:
    state = request.app.state
    database_ok = check_database_connection(state.engine)
    storage_configured = state.store.configured
    storage_ok = storage_configured and state.store.check_connection()
    llm_configured = state.planner.configured
    llm_ok = llm_configured and state.planner.check_connection()

    services = {
        "api": "operational",
        "database": "operational" if database_ok else "unavailable",
        "storage": _service_state(storage_configured, storage_ok),
        "llm": _service_state(llm_configured, llm_ok),
        "tts": "configured" if state.narrator.configured else "not_configured",
    }
    # Unconfigured providers do not degrade health; configured but unreachable ones do.
    healthy = database_ok and "unavailable" not in services.values()
    body = {
        "success": healthy,
        "data": {
            "status": "healthy" if healthy else "degraded",
            "timestamp": _utc_now(),
            "services": services,
        },
    }
    return JSONResponse(status_code=200 if healthy else 503, content=body)


@router.get("/storage/test")
def storage_round_trip(request: Request) -> dict:
    """Upload, inspect, download and delete a throwaway DOC object."""
    store = request.app.state.store
    if not store.check_connection():
        raise ApiError(500, "R2 connection test failed", {"test": "connection", "status": "failed"})

    filename = "test-file.json"
    project_id = f"test-project-{int(time.time() * 1000)}"
    payload = {
        "test": "R2 storage integration",
        "timestamp": _utc_now(),
        "message": "This is a test file for R2 storage functionality",
    }
    content = json.dumps(payload, indent=2).encode("utf-8")
    validation = validate_file(filename, content, AssetType.DOC, "application/json")
    if not validation.is_valid:
        raise ApiError(400, "File validation failed", {"test": "validation", "errors": validation.errors})

    try:
        stored = store.put(project_id, AssetType.DOC, filename, content, "application/json")
        info = store.file_info(stored.key)
        downloaded = json.loads(store.get(stored.key))
        if downloaded.get("test") != payload["test"]:
            store.delete(stored.key)
            raise ApiError(
                500,
                "Downloaded content does not match uploaded content",
                {"test": "download", "status": "failed"},
            )
        store.delete(stored.key)
    except (StorageError, ValueError) as exc:
        logger.error("Storage round trip failed: %s", exc)
        raise ApiError(500, "R2 storage test failed", str(exc)) from exc

    logger.info("Storage round trip passed for %s", stored.key)
    return {
        "success": True,
        "data": {
            "status": "all_tests_passed",
            "timestamp": _utc_now(),
            "tests": {
                name: "passed"
                for name in ("connection", "validation", "upload", "fileInfo", "download", "cleanup")
            },
            "testFile": {
                "projectId": project_id,
                "filename": filename,
                "size": len(content),
                "key": stored.key,
                "url": stored.url,
            },
            "fileInfo": {
                "size": info.size,
                "contentType": info.content_type,
                "lastModified": info.last_modified.isoformat() if info.last_modified else None,
            },
            "validationResult": {"isValid": validation.is_valid, "warnings": validation.warnings},
        },
    }
