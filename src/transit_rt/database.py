"""Async engine, sessions and per-region schema provisioning."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Iterable, Optional

from sqlalchemy import MetaData, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from transit_rt.config import get_settings
from transit_rt.logging import get_logger
from transit_rt.models import build_realtime_tables, build_timetable_tables

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            str(settings.database_url),
            echo=settings.debug,
            pool_pre_ping=True,
            # One connection per polling source plus the API
            pool_size=max(2, len(settings.feed_sources) + 1),
            max_overflow=5,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(), class_=AsyncSession, expire_on_commit=False, autoflush=False
        )
    return _session_factory


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """Session for one feed cycle.

    Nothing is committed here; callers open ``session.begin()`` so a cycle's
    writes land together or not at all.
    """
    async with get_session_factory()() as session:
        yield session


def region_metadata(regions: Iterable[str], include_timetable: bool = False) -> MetaData:
    """Collect the realtime (and optionally static) tables of ``regions``."""
    metadata = MetaData()
    for region in sorted(set(regions)):
        build_realtime_tables(metadata, region)
        if include_timetable:
            build_timetable_tables(metadata, region)
    return metadata


async def provision_region_tables(
    regions: Iterable[str],
    include_timetable: bool = False,
    engine: Optional[AsyncEngine] = None,
) -> list[str]:
    """Create missing per-region tables. Existing tables are left untouched.

    Returns:
        Names of the tables that are now known to exist.
    """
    metadata = region_metadata(regions, include_timetable)
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all, checkfirst=True)

    table_names = sorted(metadata.tables)
    logger.info("Region tables provisioned", tables=len(table_names))
    return table_names


async def check_database_connection() -> bool:
    """Check if database is reachable."""
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Database connection check failed", error=str(exc))
        return False
    return True


async def close_database() -> None:
    """Close database connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
