"""Repository for HighlightSet CRUD operations.

Provides async functions to load, save and delete the highlight set of one
document.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlmodel import select

from marklight.db.engine import get_session
from marklight.db.models import HighlightSet


async def get_highlight_set(document_key: str) -> HighlightSet | None:
    """Load the saved highlights of a document.

    Args:
        document_key: Key the document's highlights are stored under.

    Returns:
        The HighlightSet or None if the document has never been saved.
    """
    async with get_session() as session:
        result = await session.exec(
            select(HighlightSet).where(HighlightSet.document_key == document_key)
        )
        return result.first()


async def save_highlight_set(
    document_key: str,
    spans: list[dict[str, object]],
    saved_at: int,
) -> HighlightSet:
    """Save or replace the highlights of a document (upsert).

    Args:
        document_key: Key the document's highlights are stored under.
        spans: Serialised spans, written verbatim.
        saved_at: Save time in epoch milliseconds.

    Returns:
        The saved or updated HighlightSet.
    """
    async with get_session() as session:
        result = await session.exec(
            select(HighlightSet).where(HighlightSet.document_key == document_key)
        )
        record = result.first()

        if record:
            record.spans = spans
            record.saved_at = saved_at
            record.updated_at = datetime.now(UTC)
        else:
            record = HighlightSet(
                document_key=document_key,
                spans=spans,
                saved_at=saved_at,
            )
            session.add(record)

        await session.flush()
        await session.refresh(record)
        return record


async def delete_highlight_set(document_key: str) -> bool:
    """Delete the highlights of a document.

    Returns:
        True if a record was deleted, False if none existed.
    """
    async with get_session() as session:
        record = await session.get(HighlightSet, document_key)
        if record is None:
            return False
        await session.delete(record)
        await session.flush()
        return True


async def list_highlight_sets() -> list[HighlightSet]:
    """All saved highlight sets, most recently saved first."""
    async with get_session() as session:
        result = await session.exec(
            select(HighlightSet).order_by(HighlightSet.saved_at.desc())  # type: ignore[attr-defined]
        )
        return list(result.all())
