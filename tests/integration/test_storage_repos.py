"""Repository functions against a real SQLite file."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from marklight.db.colors import (
    delete_custom_color,
    list_custom_colors,
    save_custom_color,
)
from marklight.db.highlight_sets import (
    delete_highlight_set,
    get_highlight_set,
    list_highlight_sets,
    save_highlight_set,
)

if TYPE_CHECKING:
    from pathlib import Path

pytestmark = pytest.mark.integration

QUICK = {"text": "quick", "color": "yellow", "offset": 4, "length": 5}
BROWN = {"text": "brown", "color": "green", "offset": 10, "length": 5}


class TestHighlightSets:
    @pytest.mark.asyncio
    async def test_database_file_created(self, sqlite_db: Path) -> None:
        assert await get_highlight_set("nothing") is None
        assert sqlite_db.is_file()

    @pytest.mark.asyncio
    async def test_save_and_get(self, sqlite_db: Path) -> None:
        await save_highlight_set("abc123", [QUICK], 1_700_000_000_000)

        record = await get_highlight_set("abc123")

        assert record is not None
        assert record.spans == [QUICK]
        assert record.saved_at == 1_700_000_000_000

    @pytest.mark.asyncio
    async def test_save_replaces_previous_set(self, sqlite_db: Path) -> None:
        await save_highlight_set("abc123", [QUICK], 1)
        await save_highlight_set("abc123", [BROWN, QUICK], 2)

        record = await get_highlight_set("abc123")

        assert record is not None
        assert record.spans == [BROWN, QUICK]
        assert record.saved_at == 2
        assert len(await list_highlight_sets()) == 1

    @pytest.mark.asyncio
    async def test_save_empty_set(self, sqlite_db: Path) -> None:
        await save_highlight_set("abc123", [QUICK], 1)
        await save_highlight_set("abc123", [], 2)

        record = await get_highlight_set("abc123")

        assert record is not None
        assert record.spans == []

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_db: Path) -> None:
        await save_highlight_set("abc123", [QUICK], 1)

        assert await delete_highlight_set("abc123")
        assert not await delete_highlight_set("abc123")
        assert await get_highlight_set("abc123") is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, sqlite_db: Path) -> None:
        await save_highlight_set("older", [QUICK], 10)
        await save_highlight_set("newer", [BROWN], 20)

        keys = [record.document_key for record in await list_highlight_sets()]

        assert keys == ["newer", "older"]


class TestCustomColors:
    @pytest.mark.asyncio
    async def test_empty(self, sqlite_db: Path) -> None:
        assert await list_custom_colors() == {}

    @pytest.mark.asyncio
    async def test_save_upserts(self, sqlite_db: Path) -> None:
        await save_custom_color("crystal-peccary", "rgba(1, 2, 3, 0.5)")
        await save_custom_color("crystal-peccary", "rgba(4, 5, 6, 0.5)")

        assert await list_custom_colors() == {"crystal-peccary": "rgba(4, 5, 6, 0.5)"}

    @pytest.mark.asyncio
    async def test_delete(self, sqlite_db: Path) -> None:
        await save_custom_color("crystal-peccary", "rgba(1, 2, 3, 0.5)")

        assert await delete_custom_color("crystal-peccary")
        assert not await delete_custom_color("crystal-peccary")
        assert await list_custom_colors() == {}
