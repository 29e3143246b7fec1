import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from sqlalchemy import text
from sqlalchemy.exc import ProgrammingError

from powerbrief.config import settings
from powerbrief.db.base import engine, init_db
from powerbrief.services.media_storage import MediaStorageConfigurationError
from powerbrief.services.meta_ads import MetaAdsConfigError
from powerbrief.routers import (
    ad_batches,
    ad_configurations,
    ad_drafts,
    ai,
    ai_coordinator,
    automation,
    brands,
    concepts,
    contracts,
    elevenlabs,
    meta,
    onesheet,
    scorecard,
    slack,
    ugc_creators,
    ugc_inbox,
    ugc_scripts,
    uploads,
    webhooks,
)

logger = logging.getLogger(__name__)


def _is_schema_mismatch_programming_error(exc: ProgrammingError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) == "42703":
        return True
    message = str(orig or exc).lower()
    return any(marker in message for marker in ("undefined column", "does not exist", "no such column"))


@asynccontextmanager
async def _app_lifespan(_app: FastAPI) -> AsyncIterator[None]:
    init_db()
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title="PowerBrief API",
        default_response_class=ORJSONResponse,
        lifespan=_app_lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=sorted(set(settings.BACKEND_CORS_ORIGINS)),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MediaStorageConfigurationError)
    async def media_storage_configuration_error_handler(
        _request: Request, exc: MediaStorageConfigurationError
    ) -> ORJSONResponse:
        return ORJSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(MetaAdsConfigError)
    async def meta_configuration_error_handler(_request: Request, exc: MetaAdsConfigError) -> ORJSONResponse:
        return ORJSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(ProgrammingError)
    async def programming_error_handler(_request: Request, exc: ProgrammingError) -> ORJSONResponse:
        logger.exception("Database programming error", exc_info=exc)
        if _is_schema_mismatch_programming_error(exc):
            return ORJSONResponse(
                status_code=503,
                content={"detail": "Database schema is out of date. Apply the latest migrations and redeploy."},
            )
        return ORJSONResponse(status_code=500, content={"detail": "Database query failed."})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_request: Request, exc: Exception) -> ORJSONResponse:
        logger.exception("Unhandled server exception", exc_info=exc)
        return ORJSONResponse(status_code=500, content={"detail": "Internal server error."})

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/health/db")
    def health_db() -> dict[str, str]:
        try:
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return {"db": "ok"}
        except Exception as exc:  # pragma: no cover - simple runtime check
            return {"db": f"error: {exc}"}

    app.include_router(brands.router)
    app.include_router(meta.router)
    app.include_router(ad_batches.router)
    app.include_router(ad_drafts.router)
    app.include_router(ad_configurations.router)
    app.include_router(uploads.router)
    app.include_router(slack.router)
    app.include_router(automation.router)
    app.include_router(webhooks.router)
    app.include_router(ugc_creators.router)
    app.include_router(ugc_scripts.router)
    app.include_router(ugc_inbox.router)
    app.include_router(ai_coordinator.router)
    app.include_router(ai.router)
    app.include_router(contracts.router)
    app.include_router(scorecard.router)
    app.include_router(elevenlabs.router)
    app.include_router(onesheet.router)
    app.include_router(concepts.router)

    return app


app = create_app()
