"""Unit tests for the debounced persistence adapter (storage mocked)."""

from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from marklight.engine.models import HighlightSpan
from marklight.engine.persistence import PersistenceAdapter, get_persistence_adapter


def _span(text: str = "quick", start: int = 4) -> HighlightSpan:
    return HighlightSpan(id="s", text=text, color="yellow", start=start, length=len(text))


class TestSaveAndLoad:
    @pytest.mark.asyncio
    async def test_save_writes_spans_verbatim(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0)
        with patch(
            "marklight.db.highlight_sets.save_highlight_set", new=AsyncMock()
        ) as save:
            record = await adapter.save("abc123", [_span()])

        key, spans, saved_at = save.await_args.args
        assert key == "abc123"
        assert spans == [{"text": "quick", "color": "yellow", "offset": 4, "length": 5}]
        assert saved_at == record.saved_at

    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0)
        with patch(
            "marklight.db.highlight_sets.get_highlight_set",
            new=AsyncMock(return_value=None),
        ):
            assert await adapter.load("abc123") is None

    @pytest.mark.asyncio
    async def test_load_returns_fresh_spans(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0)
        row = SimpleNamespace(
            document_key="abc123",
            spans=[{"text": "quick", "color": "green", "offset": 4, "length": 5}],
            saved_at=42,
        )
        with patch(
            "marklight.db.highlight_sets.get_highlight_set",
            new=AsyncMock(return_value=row),
        ):
            [span] = await adapter.load("abc123")

        assert (span.text, span.color, span.start, span.length) == ("quick", "green", 4, 5)


class TestDebouncedSaves:
    @pytest.mark.asyncio
    async def test_mark_dirty_schedules_save(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.register_source("doc", lambda: [_span()])

        adapter.mark_dirty("doc")

        assert adapter.is_dirty("doc")
        assert not adapter._pending_saves["doc"].done()
        adapter.mark_clean("doc")
        assert not adapter.is_dirty("doc")

    @pytest.mark.asyncio
    async def test_debounce_coalesces_saves(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=0.05)
        adapter.register_source("doc", lambda: [_span()])
        save = AsyncMock()

        with patch.object(adapter, "save", new=save):
            adapter.mark_dirty("doc")
            adapter.mark_dirty("doc")
            adapter.mark_dirty("doc")
            await asyncio.sleep(0.2)

        save.assert_awaited_once()
        assert not adapter.is_dirty("doc")

    @pytest.mark.asyncio
    async def test_snapshot_overrides_source(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.register_source("doc", list)
        save = AsyncMock()

        with patch.object(adapter, "save", new=save):
            adapter.mark_dirty("doc", [_span("brown", 10)])
            await adapter.force_persist("doc")

        key, spans = save.await_args.args
        assert key == "doc"
        assert [s.text for s in spans] == ["brown"]

    @pytest.mark.asyncio
    async def test_force_persist_skips_clean_documents(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.register_source("doc", lambda: [_span()])
        save = AsyncMock()

        with patch.object(adapter, "save", new=save):
            await adapter.force_persist("doc")

        save.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_persist_all_dirty(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        for key in ("a", "b"):
            adapter.register_source(key, lambda: [_span()])
            adapter.mark_dirty(key)
        save = AsyncMock()

        with patch.object(adapter, "save", new=save):
            await adapter.persist_all_dirty()

        assert sorted(call.args[0] for call in save.await_args_list) == ["a", "b"]
        assert not adapter.is_dirty("a")
        assert not adapter.is_dirty("b")

    @pytest.mark.asyncio
    async def test_failed_save_is_logged_and_stays_dirty(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.register_source("doc", lambda: [_span()])
        adapter.mark_dirty("doc")

        with (
            patch.object(adapter, "save", new=AsyncMock(side_effect=OSError("disk"))),
            caplog.at_level(logging.ERROR, logger="marklight.engine.persistence"),
        ):
            await adapter.force_persist("doc")

        assert adapter.is_dirty("doc")
        assert "Failed to persist" in caplog.text

    @pytest.mark.asyncio
    async def test_change_during_save_stays_dirty(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.register_source("doc", lambda: [_span()])
        adapter.mark_dirty("doc")

        async def edit_while_writing(*args: object) -> None:
            adapter.mark_dirty("doc")

        with patch.object(
            adapter, "save", new=AsyncMock(side_effect=edit_while_writing)
        ):
            await adapter.force_persist("doc")

        assert adapter.is_dirty("doc")
        assert "doc" in adapter._pending_saves
        adapter.mark_clean("doc")

    @pytest.mark.asyncio
    async def test_save_now_prefers_pending_snapshot(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.register_source("doc", list)
        adapter.mark_dirty("doc", [_span("brown", 10)])
        save = AsyncMock()

        with patch.object(adapter, "save", new=save):
            await adapter.save_now("doc")

        _, spans = save.await_args.args
        assert [s.text for s in spans] == ["brown"]
        assert not adapter.is_dirty("doc")

    @pytest.mark.asyncio
    async def test_save_now_keeps_changes_made_during_write(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.register_source("doc", lambda: [_span()])

        async def edit_while_writing(*args: object) -> None:
            adapter.mark_dirty("doc")

        with patch.object(
            adapter, "save", new=AsyncMock(side_effect=edit_while_writing)
        ):
            await adapter.save_now("doc")

        assert adapter.is_dirty("doc")
        adapter.mark_clean("doc")

    @pytest.mark.asyncio
    async def test_save_now_failure_stays_dirty(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.register_source("doc", lambda: [_span()])
        adapter.mark_dirty("doc")

        with (
            patch.object(adapter, "save", new=AsyncMock(side_effect=OSError("disk"))),
            pytest.raises(OSError, match="disk"),
        ):
            await adapter.save_now("doc")

        assert adapter.is_dirty("doc")

    def test_mark_dirty_without_event_loop(self) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.mark_dirty("doc")
        assert adapter.is_dirty("doc")
        assert "doc" not in adapter._pending_saves

    @pytest.mark.asyncio
    async def test_missing_source_is_skipped(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        adapter = PersistenceAdapter(debounce_seconds=60)
        adapter.mark_dirty("orphan")
        with caplog.at_level(logging.WARNING, logger="marklight.engine.persistence"):
            await adapter.force_persist("orphan")
        assert "No highlight source" in caplog.text


def test_get_persistence_adapter_is_singleton() -> None:
    assert get_persistence_adapter() is get_persistence_adapter()
