"""FastAPI application entry point."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from transit_rt.config import get_settings
from transit_rt.database import (
    check_database_connection,
    close_database,
    provision_region_tables,
)
from transit_rt.logging import (
    bind_log_context,
    clear_log_context,
    get_logger,
    setup_logging,
)
from transit_rt.routers.status import router as status_router
from transit_rt.services.ingest.worker import get_orchestrator, reset_orchestrator

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    setup_logging()
    settings = get_settings()
    logger.info(
        "Starting Transit RT Reconciler",
        sources=[source.name for source in settings.feed_sources],
    )

    if settings.create_tables:
        await provision_region_tables(source.region for source in settings.feed_sources)

    if settings.auto_start:
        orchestrator = get_orchestrator()
        await orchestrator.start()

    yield

    orchestrator = get_orchestrator()
    if orchestrator.is_running:
        await orchestrator.stop()
    reset_orchestrator()

    logger.info("Shutting down Transit RT Reconciler")
    await close_database()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Realtime transit feed reconciler - "
            "GTFS-RT and SIRI trip updates and alerts for Finnish regions"
        ),
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.environment == "development" else [],
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Request ID middleware
    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next: Any) -> Any:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        bind_log_context(request_id=request_id, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        clear_log_context()
        return response

    app.include_router(status_router)

    @app.get("/health", tags=["meta"])
    async def health_check() -> dict[str, Any]:
        """Health check endpoint returning application status."""
        settings = get_settings()
        missing_env = settings.missing_required_env()
        db_healthy = await check_database_connection()

        orchestrator_status = await get_orchestrator().get_status()
        polling_healthy = orchestrator_status["running"] or not settings.auto_start

        status = (
            "unhealthy"
            if missing_env
            else "healthy"
            if (db_healthy and polling_healthy)
            else "degraded"
        )

        issues: list[str] = []
        if missing_env:
            issues.append("Missing required environment variables: " + ", ".join(missing_env))
        if settings.auto_start and not orchestrator_status["running"]:
            issues.append("Provider orchestrator is not running")

        return {
            "service": settings.app_name,
            "status": status,
            "version": settings.app_version,
            "environment": settings.environment,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {
                "database": db_healthy,
                "polling": {
                    "running": orchestrator_status["running"],
                    "cycleCount": orchestrator_status["cycle_count"],
                    "lastCycleAt": orchestrator_status["last_cycle_at"],
                    "sources": orchestrator_status["sources"],
                },
            },
            "issues": issues,
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    return app


app = create_app()
