"""Application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from api.errors import register_exception_handlers
from api.router import api_router
from core import Settings, configure_logging, settings
from db import create_engine, create_session_maker, init_models
from services import create_storage

logger = logging.getLogger(__name__)


def create_app(app_settings: Settings | None = None) -> FastAPI:
    """Build the application context once and attach it to `app.state`."""
    app_settings = app_settings or settings
    configure_logging(app_settings.log_level)

    engine = create_engine(app_settings)
    storage = create_storage(app_settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        await init_models(engine)
        logger.info(
            "Application started",
            extra={"app_env": app_settings.app_env, "storage_backend": app_settings.storage_backend},
        )
        yield
        await engine.dispose()

    application = FastAPI(title=app_settings.app_name, lifespan=lifespan)
    application.state.settings = app_settings
    application.state.engine = engine
    application.state.session_maker = create_session_maker(engine)
    application.state.storage = storage

    application.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(application)
    application.include_router(api_router)

    if app_settings.storage_backend == "local":
        application.mount(
            app_settings.upload_url_prefix,
            StaticFiles(directory=app_settings.upload_dir, check_dir=False),
            name="uploads",
        )

    @application.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return application
