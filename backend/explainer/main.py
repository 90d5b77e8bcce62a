from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import Settings, get_settings
from .database import build_engine, init_db
from .errors import register_exception_handlers
from .llm import PlanGenerator
from .logging_setup import configure_logging
from .narration import NarrationClient
from .routers.assets import router as assets_router
from .routers.health import router as health_router
from .routers.jobs import router as jobs_router
from .routers.narration import router as narration_router
from .routers.plan import router as plan_router
from .routers.projects import router as projects_router
from .storage import ArtifactStore, build_store

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[ArtifactStore] = None,
    planner: Optional[PlanGenerator] = None,
    narrator: Optional[NarrationClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title=settings.app_name, version="1.0.0")

    app.state.settings = settings
    app.state.engine = build_engine(settings.database_url)
    app.state.store = store or build_store(settings)
    app.state.planner = planner or PlanGenerator.from_settings(settings)
    app.state.narrator = narrator or NarrationClient.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def on_startup() -> None:
        configure_logging(settings.log_level)
        init_db(app.state.engine)
        logger.info(
            "%s started (storage %s, llm %s, tts %s)",
            settings.app_name,
            "configured" if app.state.store.configured else "not configured",
            "configured" if app.state.planner.configured else "not configured",
            "configured" if app.state.narrator.configured else "not configured",
        )

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        app.state.narrator.close()
        app.state.planner.close()
        app.state.engine.dispose()

    register_exception_handlers(app)

    app.include_router(projects_router)
    app.include_router(plan_router)
    app.include_router(narration_router)
    app.include_router(assets_router)
    app.include_router(jobs_router)
    app.include_router(health_router)
    return app


app = create_app()
