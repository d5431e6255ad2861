"""PersistenceAdapter round trips through SQLite."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from marklight.engine.models import HighlightSpan
from marklight.engine.persistence import PersistenceAdapter
from marklight.engine.registry import SpanRegistry
from marklight.engine.restore import restore_spans
from marklight.tree.html_bridge import parse_html

if TYPE_CHECKING:
    from pathlib import Path

    from marklight.engine.palette import ColorPalette

pytestmark = pytest.mark.integration


def _span(text: str, start: int, color: str = "yellow") -> HighlightSpan:
    return HighlightSpan(id=f"id-{text}", text=text, color=color, start=start, length=len(text))


class TestRoundTrip:
    @pytest.mark.asyncio
    async def test_load_never_saved(self, sqlite_db: Path) -> None:
        assert await PersistenceAdapter(debounce_seconds=0).load("abc123") is None

    @pytest.mark.asyncio
    async def test_save_then_load(self, sqlite_db: Path) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0)
        await adapter.save("abc123", [_span("quick", 4), _span("fox", 16, "blue")])

        loaded = await adapter.load("abc123")

        assert loaded is not None
        assert [(s.text, s.color, s.start, s.length) for s in loaded] == [
            ("quick", "yellow", 4, 5),
            ("fox", "blue", 16, 3),
        ]
        assert all(not s.id.startswith("id-") for s in loaded)

    @pytest.mark.asyncio
    async def test_export_record_uses_wire_names(self, sqlite_db: Path) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0)
        saved = await adapter.save("abc123", [_span("quick", 4)])

        record = await adapter.export_record("abc123")

        assert record is not None
        dumped = record.model_dump(by_alias=True)
        assert dumped["documentKey"] == "abc123"
        assert dumped["savedAt"] == saved.saved_at
        assert dumped["spans"] == [
            {"text": "quick", "color": "yellow", "offset": 4, "length": 5}
        ]

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_db: Path) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0)
        await adapter.save("abc123", [_span("quick", 4)])

        assert await adapter.delete("abc123")
        assert await adapter.load("abc123") is None

    @pytest.mark.asyncio
    async def test_shifted_document_restores_with_offset_plus_three(
        self, sqlite_db: Path, palette: ColorPalette
    ) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0)
        await adapter.save("abc123", [_span("quick", 4)])

        saved = await adapter.load("abc123")
        assert saved is not None
        registry = SpanRegistry(parse_html("<p>HeyThe quick brown fox</p>"), palette)
        report = restore_spans(registry, saved, window=100)

        assert report.relocated == 1
        assert report.dropped == 0
        [span] = registry.all()
        assert span.start == 4 + 3
        assert span.text == "quick"


class TestDebouncedSave:
    @pytest.mark.asyncio
    async def test_dirty_document_written_after_delay(self, sqlite_db: Path) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0.05)
        spans = [_span("quick", 4)]
        adapter.register_source("abc123", lambda: spans)

        adapter.mark_dirty("abc123")
        await asyncio.sleep(0.5)

        assert not adapter.is_dirty("abc123")
        loaded = await adapter.load("abc123")
        assert loaded is not None
        assert [s.text for s in loaded] == ["quick"]

    @pytest.mark.asyncio
    async def test_persist_all_dirty_flushes(self, sqlite_db: Path) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.mark_dirty("one", [_span("quick", 4)])
        adapter.mark_dirty("two", [_span("brown", 10)])

        await adapter.persist_all_dirty()

        assert [s.text for s in await adapter.load("one") or []] == ["quick"]
        assert [s.text for s in await adapter.load("two") or []] == ["brown"]
