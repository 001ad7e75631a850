"""Async engine and session wiring plus Alembic startup migrations."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

from alembic.config import Config
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from autoassign import models as _models
from autoassign.core.config import settings
from autoassign.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

# Every table must be on SQLModel.metadata before create_all runs.
_MODEL_REGISTRY = _models

BACKEND_ROOT = Path(__file__).resolve().parents[2]
MIGRATIONS_DIR = BACKEND_ROOT / "migrations"


def normalize_database_url(database_url: str) -> str:
    """Route bare `postgresql://` URLs through the psycopg 3 async driver."""
    if database_url.startswith("postgresql://"):
        return "postgresql+psycopg://" + database_url.removeprefix("postgresql://")
    return database_url


def _engine_options(database_url: str) -> dict[str, Any]:
    if make_url(database_url).get_backend_name() == "sqlite":
        # Workload increments from parallel sessions wait on the file lock.
        return {"connect_args": {"timeout": 30}}
    return {"pool_pre_ping": True}


def build_engine(database_url: str) -> AsyncEngine:
    url = normalize_database_url(database_url)
    return create_async_engine(url, **_engine_options(url))


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async_engine = build_engine(settings.database_url)
async_session_maker = build_session_maker(async_engine)


def _alembic_config() -> Config:
    config = Config(str(BACKEND_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    config.attributes["configure_logger"] = False
    return config


def run_migrations() -> None:
    """Upgrade the schema to the latest Alembic revision."""
    from alembic import command

    logger.info("db.migrations.start")
    command.upgrade(_alembic_config(), "head")
    logger.info("db.migrations.complete")


async def init_db() -> None:
    """Create the schema, through Alembic when auto-migration is on."""
    has_revisions = any((MIGRATIONS_DIR / "versions").glob("*.py"))
    if settings.db_auto_migrate and has_revisions:
        await asyncio.to_thread(run_migrations)
        return
    if settings.db_auto_migrate:
        logger.warning("db.migrations.missing_revisions")

    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def _discard_open_transaction(session: AsyncSession) -> None:
    try:
        if not session.in_transaction():
            return
        await session.rollback()
    except SQLAlchemyError:
        logger.exception("db.session.rollback_failed")


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; anything left uncommitted is rolled back."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await _discard_open_transaction(session)
