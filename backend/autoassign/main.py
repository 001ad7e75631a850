"""ASGI application for the auto-assignment service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import redis
from fastapi import APIRouter, FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from autoassign.api.assignments import router as assignments_router
from autoassign.api.schedules import history_router as execution_history_router
from autoassign.api.schedules import router as schedules_router
from autoassign.core.config import settings
from autoassign.core.error_handling import install_error_handling
from autoassign.core.logging import configure_logging, get_logger
from autoassign.db.session import async_engine, async_session_maker, init_db
from autoassign.schemas.health import HealthStatusResponse, ReadinessResponse
from autoassign.services.queue import ping_queue
from autoassign.services.scheduling.scheduler import reconcile_all_schedules

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

configure_logging()
logger = get_logger(__name__)

OPENAPI_TAGS = [
    {"name": "health", "description": "Liveness and readiness probes."},
    {
        "name": "auto-assignment",
        "description": (
            "Per-business matcher runs, pending proposal review, manual assignment, "
            "task lifecycle and agent configuration."
        ),
    },
    {
        "name": "execution-history",
        "description": "Read-only history of scheduled, manual and sweep assignment runs.",
    },
]


async def _restore_schedules() -> None:
    """Re-register timers for every enabled business after a restart."""
    if not settings.assignment_scheduler_enabled:
        logger.info("app.schedules.disabled")
        return
    try:
        async with async_session_maker() as session:
            summary = await reconcile_all_schedules(session)
    except redis.RedisError as exc:
        logger.warning("app.schedules.restore_failed", extra={"error": str(exc)})
        return
    logger.info("app.schedules.restored", extra=summary)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "app.lifecycle.starting",
        extra={"environment": settings.environment, "db_auto_migrate": settings.db_auto_migrate},
    )
    await init_db()
    await _restore_schedules()
    logger.info("app.lifecycle.started")
    yield
    logger.info("app.lifecycle.stopped")


def _cors_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()]


async def _database_reachable() -> bool:
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("app.readiness.database_failed")
        return False
    return True


def liveness() -> HealthStatusResponse:
    """The process is up and serving requests."""
    return HealthStatusResponse(ok=True)


async def readiness(response: Response) -> ReadinessResponse:
    database = await _database_reachable()
    if not database:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        ok=database,
        database=database,
        event_queue=ping_queue(),
    )


def create_app() -> FastAPI:
    application = FastAPI(
        title="Auto-Assignment API",
        version="0.1.0",
        lifespan=lifespan,
        openapi_tags=OPENAPI_TAGS,
    )

    origins = _cors_origins()
    if origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    logger.info("app.cors.configured", extra={"origins_count": len(origins)})

    install_error_handling(application)

    for path in ("/health", "/healthz"):
        application.add_api_route(
            path,
            liveness,
            methods=["GET"],
            tags=["health"],
            response_model=HealthStatusResponse,
            summary="Liveness Check",
        )
    application.add_api_route(
        "/readyz",
        readiness,
        methods=["GET"],
        tags=["health"],
        response_model=ReadinessResponse,
        summary="Readiness Check",
        responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
    )

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(assignments_router)
    api_v1.include_router(schedules_router)
    api_v1.include_router(execution_history_router)
    application.include_router(api_v1)
    return application


app = create_app()
