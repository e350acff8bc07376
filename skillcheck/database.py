"""Async engine and session handling for the assessment store.

The engine is created on first use so importing the pipeline (tests, the
transcription script) never needs a reachable database.
"""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from skillcheck.config.settings import settings
from skillcheck.models import Base

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Columns written by the automated review that older deployments lack.
_REVIEW_COLUMNS = (
    ("analysis", "JSONB"),
    ("reviewed_by", "VARCHAR"),
    ("review_notes", "TEXT"),
    ("reviewed_at", "TIMESTAMP WITH TIME ZONE"),
)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _schema_name() -> str | None:
    raw = (settings.database.schema_name or "").strip()
    if not raw:
        return None
    if not _IDENTIFIER.fullmatch(raw):
        logger.warning("Ignoring invalid schema name %r; using the default search_path.", raw)
        return None
    return raw


SCHEMA_NAME = _schema_name()

if SCHEMA_NAME:
    for table in Base.metadata.tables.values():
        if table.schema is None:
            table.schema = SCHEMA_NAME


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first call."""

    global _engine
    if _engine is None:
        options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
        if settings.database.serverless:
            # No pooling for serverless databases.
            options["poolclass"] = NullPool
        _engine = create_async_engine(settings.database.url, **options)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_factory


async def _set_search_path(target: Any) -> None:
    if SCHEMA_NAME:
        await target.execute(text(f'SET search_path TO "{SCHEMA_NAME}", public'))


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Yield a session bound to the configured schema."""

    async with get_session_factory()() as session:
        await _set_search_path(session)
        yield session


async def _add_review_columns(conn: Any) -> None:
    for column, column_type in _REVIEW_COLUMNS:
        await conn.execute(
            text(
                "ALTER TABLE IF EXISTS skill_assessments "
                f"ADD COLUMN IF NOT EXISTS {column} {column_type}"
            )
        )


async def init_models() -> None:
    """Create missing tables and bring older assessment tables up to date."""

    async with get_engine().begin() as conn:
        if SCHEMA_NAME:
            await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{SCHEMA_NAME}"'))
        await _set_search_path(conn)
        await conn.run_sync(Base.metadata.create_all)
        await _add_review_columns(conn)

    logger.info("Assessment tables ready (schema=%s).", SCHEMA_NAME or "default")


async def dispose_engine() -> None:
    """Release pooled connections if an engine was ever created."""

    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None


__all__ = ["dispose_engine", "get_engine", "init_models", "session_scope"]
