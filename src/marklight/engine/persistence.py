"""Highlight persistence with debounced database writes.

Saves a document's highlights to the local store keyed by document key,
loads them back on open, and coalesces bursts of edits into one write per
debounce interval. ``persist_all_dirty`` flushes everything pending and is
awaited on shutdown, the one point where losing unsaved highlights would
be visible to the user.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from marklight.engine.models import PersistedHighlightSet, SavedSpan

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from marklight.engine.models import HighlightSpan

logger = logging.getLogger(__name__)

type SnapshotSource = Callable[[], list[HighlightSpan]]


class PersistenceAdapter:
    """Saves and loads highlight sets, with debounced background saves.

    Attributes:
        debounce_seconds: Delay before a dirty document is written.
        _sources: document_key -> callable returning the live spans.
        _snapshots: document_key -> spans captured at ``mark_dirty`` time,
            for documents whose live spans are about to be cleared.
        _dirty: Keys with unsaved changes.
        _versions: document_key -> count of ``mark_dirty`` calls, so a save
            only settles the changes it actually wrote.
        _pending_saves: document_key -> asyncio.Task of the debounced save.
    """

    def __init__(self, debounce_seconds: float | None = None) -> None:
        if debounce_seconds is None:
            from marklight.config import get_settings

            debounce_seconds = get_settings().annotation.save_debounce_seconds
        self.debounce_seconds = debounce_seconds
        self._sources: dict[str, SnapshotSource] = {}
        self._snapshots: dict[str, list[HighlightSpan]] = {}
        self._dirty: set[str] = set()
        self._versions: dict[str, int] = {}
        self._pending_saves: dict[str, asyncio.Task[None]] = {}

    # --- Direct storage access ---

    async def save(
        self, document_key: str, spans: Sequence[HighlightSpan]
    ) -> PersistedHighlightSet:
        """Write every span of a document verbatim, replacing the old set."""
        from marklight.db.highlight_sets import save_highlight_set

        record = PersistedHighlightSet(
            document_key=document_key,
            spans=[SavedSpan.from_span(span) for span in spans],
        )
        await save_highlight_set(
            document_key,
            [span.model_dump() for span in record.spans],
            record.saved_at,
        )
        logger.debug("Saved %d highlight(s) for %s", len(record.spans), document_key)
        return record

    async def export_record(self, document_key: str) -> PersistedHighlightSet | None:
        """Return the stored record of a document, or None if never saved."""
        from marklight.db.highlight_sets import get_highlight_set

        row = await get_highlight_set(document_key)
        if row is None:
            return None
        return PersistedHighlightSet(
            document_key=row.document_key,
            spans=[SavedSpan.model_validate(span) for span in row.spans],
            saved_at=row.saved_at,
        )

    async def load(self, document_key: str) -> list[HighlightSpan] | None:
        """Load a document's saved spans (fresh ids), or None if never saved."""
        record = await self.export_record(document_key)
        if record is None:
            return None
        return [saved.to_span() for saved in record.spans]

    async def delete(self, document_key: str) -> bool:
        from marklight.db.highlight_sets import delete_highlight_set

        self.mark_clean(document_key)
        return await delete_highlight_set(document_key)

    # --- Debounced saves ---

    def register_source(self, document_key: str, source: SnapshotSource) -> None:
        """Register the callable that yields a document's live spans."""
        self._sources[document_key] = source

    def unregister_source(self, document_key: str) -> None:
        """Stop tracking a document. Dirty state is kept for the next flush."""
        self._sources.pop(document_key, None)

    def mark_dirty(
        self,
        document_key: str,
        spans: Sequence[HighlightSpan] | None = None,
    ) -> None:
        """Mark a document as having unsaved changes, schedule debounced save.

        Args:
            document_key: Document that changed.
            spans: Spans to save instead of asking the registered source,
                for callers that are about to clear the live spans.
        """
        self._dirty.add(document_key)
        self._versions[document_key] = self._versions.get(document_key, 0) + 1
        if spans is not None:
            self._snapshots[document_key] = list(spans)
        self._schedule_debounced_save(document_key)

    def is_dirty(self, document_key: str) -> bool:
        return document_key in self._dirty

    def mark_clean(self, document_key: str) -> None:
        """Forget unsaved state after the caller saved the document itself."""
        self._cancel_pending_save(document_key)
        self._dirty.discard(document_key)
        self._snapshots.pop(document_key, None)

    def _schedule_debounced_save(self, document_key: str) -> None:
        """Schedule or reschedule a debounced save."""
        self._cancel_pending_save(document_key)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(
                "No running event loop; %s stays dirty until flush", document_key
            )
            return

        async def debounced_save() -> None:
            try:
                await asyncio.sleep(self.debounce_seconds)
            except asyncio.CancelledError:
                return  # Save was superseded by a newer one
            await self._persist_document(document_key)

        self._pending_saves[document_key] = loop.create_task(debounced_save())

    def _cancel_pending_save(self, document_key: str) -> None:
        """Cancel a pending debounced save if exists."""
        task = self._pending_saves.pop(document_key, None)
        if task and not task.done():
            task.cancel()

    def _snapshot(self, document_key: str) -> list[HighlightSpan] | None:
        if document_key in self._snapshots:
            return self._snapshots[document_key]
        source = self._sources.get(document_key)
        return source() if source is not None else None

    def _settle(self, document_key: str, version: int) -> bool:
        """Clear dirty state written by a save that started at *version*.

        A ``mark_dirty`` that arrived while the write was awaited leaves
        the document dirty, with its own debounced save scheduled.
        """
        if self._versions.get(document_key, 0) != version:
            logger.debug("%s changed during save, keeping it dirty", document_key)
            return False
        self._dirty.discard(document_key)
        self._snapshots.pop(document_key, None)
        return True

    async def _persist_document(self, document_key: str) -> None:
        """Actually persist the document to the database."""
        version = self._versions.get(document_key, 0)
        spans = self._snapshot(document_key)
        if spans is None:
            logger.warning("No highlight source for %s, skipping persist", document_key)
            return

        try:
            await self.save(document_key, spans)
        except Exception:
            logger.exception("Failed to persist highlights for %s", document_key)
            return

        if self._settle(document_key, version):
            self._pending_saves.pop(document_key, None)
        logger.info("Persisted %s (%d highlights)", document_key, len(spans))

    async def save_now(self, document_key: str) -> PersistedHighlightSet:
        """Save a document immediately, pending snapshot first.

        Raises:
            Exception: Storage errors propagate; the document stays dirty.
        """
        self._cancel_pending_save(document_key)
        version = self._versions.get(document_key, 0)
        spans = self._snapshot(document_key)
        record = await self.save(document_key, spans or [])
        self._settle(document_key, version)
        return record

    async def force_persist(self, document_key: str) -> None:
        """Immediately persist a document if it has unsaved changes."""
        self._cancel_pending_save(document_key)
        if document_key in self._dirty:
            await self._persist_document(document_key)

    async def persist_all_dirty(self) -> None:
        """Persist all dirty documents (e.g., on shutdown)."""
        for document_key in list(self._dirty):
            await self.force_persist(document_key)


# Global singleton instance
_persistence_adapter: PersistenceAdapter | None = None


def get_persistence_adapter() -> PersistenceAdapter:
    """Get the global persistence adapter instance."""
    global _persistence_adapter
    if _persistence_adapter is None:
        _persistence_adapter = PersistenceAdapter()
    return _persistence_adapter
