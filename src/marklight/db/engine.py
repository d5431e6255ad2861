"""Async database engine and session management.

Provides async SQLite connections via SQLModel and aiosqlite. The schema
is created on first use; there is nothing to migrate yet.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from marklight.config import get_settings

# Register tables on SQLModel.metadata before create_all
from marklight.db import models as _models  # noqa: F401

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


@dataclass
class _DatabaseState:
    """Internal state holder for database engine and session factory."""

    engine: AsyncEngine | None = field(default=None)
    session_factory: async_sessionmaker[AsyncSession] | None = field(default=None)


# Module-level state (initialized lazily on first session)
_state = _DatabaseState()


def get_database_url() -> str:
    """Get database URL from Settings.

    Returns:
        SQLAlchemy URL; an ``sqlite+aiosqlite`` file by default.
    """
    url = get_settings().storage.database_url
    assert url is not None  # filled in by StorageConfig
    return url


def _ensure_sqlite_parent(url: str) -> None:
    """Create the directory of an SQLite database file if missing."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database
    if not database or database == ":memory:":
        return
    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


async def init_db() -> None:
    """Initialize the engine and session factory and create missing tables."""
    url = get_database_url()
    _ensure_sqlite_parent(url)
    _state.engine = create_async_engine(url, echo=get_settings().storage.echo)

    async with _state.engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.debug("Database ready at %s", _state.engine.url.render_as_string())

    _state.session_factory = async_sessionmaker(
        _state.engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def close_db() -> None:
    """Close database connections.

    Call this on application shutdown. Disposes of the engine and clears
    module state, so the next session re-reads the settings.
    """
    if _state.engine:
        await _state.engine.dispose()
        _state.engine = None
        _state.session_factory = None


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Get an async database session.

    Yields a session that auto-commits on success and rolls back on error.
    Exceptions are logged before re-raising. The engine is created lazily
    in the current event loop on first use.

    Usage:
        async with get_session() as session:
            row = await session.get(HighlightSet, key)

    Yields:
        AsyncSession: Database session for executing queries.
    """
    if _state.session_factory is None:
        await init_db()

    session_factory = _state.session_factory
    assert session_factory is not None  # For type narrowing

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.exception("Database session error, rolling back transaction")
            await session.rollback()
            raise
