from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Any failure talking to the object store."""


class PlanGenerationError(RuntimeError):
    pass


class NarrationError(RuntimeError):
    pass


class ProviderNotConfiguredError(RuntimeError):
    pass


class IllegalTransitionError(ValueError):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Illegal status transition {current} -> {requested}")
        self.current = current
        self.requested = requested


class StageFailed(RuntimeError):
    """Raised after a pipeline step has recorded its FAILED progress entry."""

    def __init__(self, phase: str, detail: str, cause: BaseException | None = None) -> None:
        super().__init__(f"{phase} failed: {detail}")
        self.phase = phase
        self.detail = detail
        self.cause = cause


class ApiError(Exception):
    def __init__(self, status_code: int, error: str, details: Any = None) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details


def error_envelope(error: str, details: Any = None, **extra: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        payload["details"] = details
    payload.update(extra)
    return payload


def stage_failure_status(exc: StageFailed) -> int:
    if isinstance(exc.cause, ProviderNotConfiguredError):
        return 503
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(error_envelope(exc.error, exc.details)),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": list(item.get("loc", ())), "msg": item.get("msg", ""), "type": item.get("type", "")}
            for item in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder(error_envelope("Invalid request data", details)),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(IllegalTransitionError)
    async def _illegal_transition(_request: Request, exc: IllegalTransitionError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content=error_envelope(str(exc), currentStatus=exc.current),
        )

    @app.exception_handler(StorageError)
    async def _storage_error(_request: Request, exc: StorageError) -> JSONResponse:
        logger.error("Storage failure: %s", exc)
        return JSONResponse(status_code=500, content=error_envelope("Storage failure", str(exc)))
