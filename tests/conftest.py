"""Shared pytest fixtures for marklight tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
import pytest_asyncio

from marklight.config import get_settings
from marklight.engine.palette import ColorPalette
from marklight.engine.persistence import PersistenceAdapter
from marklight.engine.registry import SpanRegistry
from marklight.tree.html_bridge import parse_html

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from marklight.tree.arena import RenderedTree


FOX_HTML = "<p>The quick brown fox</p>"

MULTI_BLOCK_HTML = (
    "<h1>Title</h1>"
    "<p>First <em>emphasised words</em> here.</p>"
    "<ul><li>Item one<ul><li>Nested</li></ul>tail</li></ul>"
    "<p>Last para</p>"
)


@pytest.fixture
def fox_tree() -> RenderedTree:
    """Single paragraph: ``"The quick brown fox"``."""
    return parse_html(FOX_HTML)


@pytest.fixture
def multi_block_tree() -> RenderedTree:
    """Heading, inline markup, a nested list and a trailing paragraph."""
    return parse_html(MULTI_BLOCK_HTML)


@pytest.fixture
def palette() -> ColorPalette:
    return ColorPalette()


@pytest.fixture
def fox_registry(fox_tree: RenderedTree, palette: ColorPalette) -> SpanRegistry:
    return SpanRegistry(fox_tree, palette)


@pytest.fixture
def adapter() -> PersistenceAdapter:
    """Adapter whose debounced saves never fire during a test."""
    return PersistenceAdapter(debounce_seconds=60)


@pytest_asyncio.fixture
async def sqlite_db(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> AsyncIterator[Path]:
    """Point storage at a fresh SQLite file for one test.

    Yields the database path; the engine is disposed afterwards so the
    next test re-reads its settings.
    """
    from marklight.db.engine import close_db

    db_path = tmp_path / "annotations.db"
    monkeypatch.setenv("STORAGE__DATA_DIR", str(tmp_path))
    monkeypatch.setenv("STORAGE__DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    get_settings.cache_clear()
    await close_db()
    try:
        yield db_path
    finally:
        await close_db()
        get_settings.cache_clear()
