"""Host-facing annotation engine.

``AnnotationEngine`` is the only object host UI code talks to. It wires
the selection bridge, span registry, restore and persistence together for
the currently open document, and follows the host's lifecycle:

- ``open_document`` / ``restore_for_document`` when a file is shown
- ``replace_tree`` when the host re-renders the same document
- ``leave_read_mode`` when the rendered view gives way to the editor
- ``shutdown`` before the process exits

All mutations are synchronous and run on the host's event loop. Failures
inside the engine are logged and reported through return values, never
raised into host code; only ``save_now`` lets a storage error reach the
caller that awaits it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from marklight.engine.palette import ColorPalette
from marklight.engine.persistence import get_persistence_adapter
from marklight.engine.registry import SpanRegistry
from marklight.engine.restore import RestoreReport, restore_spans
from marklight.engine.selection import SelectionBridge
from marklight.tree.arena import RenderedTree
from marklight.tree.html_bridge import to_html

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from marklight.engine.models import HighlightSpan, PersistedHighlightSet
    from marklight.engine.persistence import PersistenceAdapter
    from marklight.engine.selection import HostRange

logger = logging.getLogger(__name__)

type EventKind = Literal[
    "applied", "recolored", "removed", "cleared", "restored", "colors"
]


@dataclass(frozen=True)
class HighlightEvent:
    """Change notification delivered to ``subscribe`` listeners."""

    kind: EventKind
    document_key: str | None
    span_ids: tuple[str, ...] = ()


type HighlightListener = Callable[[HighlightEvent], None]


class AnnotationEngine:
    """Highlight annotations over the currently rendered document.

    Attributes:
        document_key: Key of the open document, None before the first open.
    """

    def __init__(
        self,
        tree: RenderedTree | None = None,
        *,
        palette: ColorPalette | None = None,
        persistence: PersistenceAdapter | None = None,
        fuzzy_window: int | None = None,
    ) -> None:
        if palette is None or fuzzy_window is None:
            from marklight.config import get_settings

            settings = get_settings().annotation
            if palette is None:
                palette = ColorPalette(default=settings.default_color)
            if fuzzy_window is None:
                fuzzy_window = settings.fuzzy_window

        self._tree = tree if tree is not None else RenderedTree()
        self._palette = palette
        self._registry = SpanRegistry(self._tree, palette)
        self._selection_bridge = SelectionBridge(self._tree)
        self._persistence = (
            persistence if persistence is not None else get_persistence_adapter()
        )
        self._fuzzy_window = fuzzy_window
        self._listeners: list[HighlightListener] = []
        self._pending_selection: tuple[int, int] | None = None
        self._busy = False
        self.document_key: str | None = None

    # --- Accessors ---

    @property
    def tree(self) -> RenderedTree:
        return self._tree

    @property
    def registry(self) -> SpanRegistry:
        return self._registry

    @property
    def palette(self) -> ColorPalette:
        return self._palette

    @property
    def pending_selection(self) -> tuple[int, int] | None:
        return self._pending_selection

    @property
    def last_touched_span_id(self) -> str | None:
        return self._registry.last_touched_span_id

    def spans(self) -> list[HighlightSpan]:
        return self._registry.all()

    def render_html(self) -> str:
        """Serialise the tree, wrappers included, for the host view."""
        return to_html(self._tree)

    def host_range_of(self, span_id: str) -> HostRange | None:
        """Host range covering a span, for placing a picker next to it."""
        span = self._registry.get(span_id)
        if span is None:
            return None
        return self._selection_bridge.to_host_selection(span.start, span.length)

    # --- Events ---

    def subscribe(self, listener: HighlightListener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: EventKind, *span_ids: str) -> None:
        event = HighlightEvent(kind, self.document_key, span_ids)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Highlight listener %r failed on %s", listener, kind)

    # --- Re-entrancy guard ---

    @contextmanager
    def _handling(self, action: str) -> Iterator[bool]:
        """Yield True if *action* may run, False if a handler is running.

        A listener or host callback that triggers another mutation while
        one is in progress gets a no-op instead of a nested mutation.
        """
        if self._busy:
            logger.debug("Dropping nested %s while a handler runs", action)
            yield False
            return
        self._busy = True
        try:
            yield True
        finally:
            self._busy = False

    def _mark_dirty(self) -> None:
        if self.document_key is not None:
            self._persistence.mark_dirty(self.document_key)

    # --- Host commands ---

    def select_range(self, host_range: HostRange | None) -> tuple[int, int] | None:
        """Record the host's current selection; the latest selection wins.

        Returns:
            The selection as ``(offset, length)``, or None if it is
            collapsed or outside the document (the pending selection is
            cleared in that case).
        """
        if host_range is None:
            self._pending_selection = None
            return None
        self._pending_selection = self._selection_bridge.from_host_selection(host_range)
        return self._pending_selection

    def apply_highlight(self, color: str | None = None) -> str | None:
        """Highlight the pending selection.

        Without a pending selection the last touched span is re-coloured
        instead.

        Returns:
            Id of the span created or re-coloured, or None.
        """
        with self._handling("apply_highlight") as allowed:
            if not allowed:
                return None
            if self._pending_selection is None:
                return self._recolor_last(color)
            start, length = self._pending_selection
            self._pending_selection = None
            span_id = self._registry.apply(start, length, color)
            if span_id is None:
                return None
            self._mark_dirty()
            self._emit("applied", span_id)
            return span_id

    def recolor(self, span_id: str, color: str | None) -> bool:
        with self._handling("recolor") as allowed:
            if not allowed or not self._registry.recolor(span_id, color):
                return False
            self._mark_dirty()
            self._emit("recolored", span_id)
            return True

    def recolor_last(self, color: str | None) -> str | None:
        """Re-colour the most recently created or re-coloured span."""
        with self._handling("recolor_last") as allowed:
            if not allowed:
                return None
            return self._recolor_last(color)

    def _recolor_last(self, color: str | None) -> str | None:
        span_id = self._registry.recolor_last(color)
        if span_id is None:
            logger.debug("No span to re-colour")
            return None
        self._mark_dirty()
        self._emit("recolored", span_id)
        return span_id

    def remove_highlight(self, span_id: str) -> bool:
        with self._handling("remove_highlight") as allowed:
            if not allowed or not self._registry.remove(span_id):
                return False
            self._mark_dirty()
            self._emit("removed", span_id)
            return True

    def clear_all(self) -> int:
        """Remove every highlight of the open document (also from storage
        on the next save)."""
        with self._handling("clear_all") as allowed:
            if not allowed:
                return 0
            removed = self._registry.clear_all()
            if removed:
                self._mark_dirty()
                self._emit("cleared")
            return removed

    # --- Lifecycle ---

    def open_document(self, document_key: str, tree: RenderedTree) -> None:
        """Show another document. Unsaved highlights of the previous one are
        queued for saving first."""
        if self.document_key is not None and self.document_key != document_key:
            if len(self._registry):
                self._persistence.mark_dirty(self.document_key, self._registry.all())
            self._persistence.unregister_source(self.document_key)
        self._attach(tree)
        self.document_key = document_key
        self._persistence.register_source(document_key, self._registry.all)
        logger.debug("Opened document %s", document_key)

    def _attach(self, tree: RenderedTree) -> None:
        self._tree = tree
        self._registry.attach(tree)
        self._selection_bridge = SelectionBridge(tree)
        self._pending_selection = None

    def replace_tree(self, tree: RenderedTree) -> RestoreReport:
        """Carry the live highlights over to a fresh render of the document."""
        snapshot = self._registry.all()
        with self._handling("replace_tree") as allowed:
            if not allowed:
                return RestoreReport()
            last_touched = self._registry.last_touched_span_id
            self._attach(tree)
            report = restore_spans(self._registry, snapshot, self._fuzzy_window)
            self._carry_last_touched(last_touched, report)
            if report.dropped:
                self._mark_dirty()
            self._emit("restored", *report.span_ids)
            return report

    def _carry_last_touched(
        self, previous: str | None, report: RestoreReport
    ) -> None:
        """Point ``last_touched_span_id`` at the restored form of *previous*.

        Restoring re-applies every span, which would otherwise leave the
        last restored span as the last touched one.
        """
        restored = report.id_map.get(previous) if previous is not None else None
        self._registry.last_touched_span_id = (
            restored if restored in self._registry else None
        )

    def leave_read_mode(self) -> int:
        """Queue the highlights for saving and strip them from the tree.

        Returns:
            Number of highlights removed.
        """
        with self._handling("leave_read_mode") as allowed:
            if not allowed:
                return 0
            snapshot = self._registry.all()
            if self.document_key is not None:
                self._persistence.mark_dirty(self.document_key, snapshot)
            removed = self._registry.clear_all()
            self._emit("cleared")
            return removed

    async def restore_for_document(
        self, document_key: str, tree: RenderedTree | None = None
    ) -> RestoreReport:
        """Load a document's saved highlights and apply them to *tree*.

        Without *tree*, saved highlights are applied to the current tree.
        Saved text that can no longer be found is dropped and logged.
        """
        await self.load_custom_colors()
        # A pending save (e.g. from leave_read_mode) must land before the read
        await self._persistence.force_persist(document_key)
        if tree is not None or document_key != self.document_key:
            self.open_document(document_key, tree if tree is not None else self._tree)

        saved = await self._persistence.load(document_key)
        if not saved:
            logger.debug("No saved highlights for %s", document_key)
            return RestoreReport()

        with self._handling("restore_for_document") as allowed:
            if not allowed:
                return RestoreReport()
            self._registry.clear_all()
            report = restore_spans(self._registry, saved, self._fuzzy_window)
            self._carry_last_touched(None, report)
            if report.dropped:
                self._mark_dirty()
            self._emit("restored", *report.span_ids)
            return report

    async def save_now(self) -> PersistedHighlightSet | None:
        """Save the open document's highlights immediately.

        Changes made while the write is in flight stay dirty and are
        saved by the next debounced save or ``shutdown``.

        Raises:
            Exception: Storage errors propagate to the caller.
        """
        if self.document_key is None:
            return None
        return await self._persistence.save_now(self.document_key)

    async def shutdown(self) -> None:
        """Flush every pending save. Await this before the process exits."""
        await self._persistence.persist_all_dirty()
        logger.info("Annotation engine shut down")

    # --- Colours ---

    async def load_custom_colors(self) -> None:
        """Merge the stored custom colours into the palette."""
        from marklight.db.colors import list_custom_colors

        stored = await list_custom_colors()
        known = self._palette.custom_colors()
        for name, rgba in stored.items():
            if name in known:
                continue
            try:
                self._palette.add_named(name, rgba)
            except ValueError:
                logger.warning("Skipping stored colour %s = %r", name, rgba)

    async def add_custom_color(self, rgba: str) -> str | None:
        """Add a custom colour to the palette and the colour table.

        Returns:
            The generated colour name, or None if *rgba* is not a colour.
        """
        from marklight.db.colors import save_custom_color

        try:
            name = self._palette.add_custom(rgba)
        except ValueError:
            logger.debug("Ignoring invalid custom colour %r", rgba)
            return None
        await save_custom_color(name, self._palette.resolve(name))
        self._emit("colors")
        return name

    async def delete_custom_color(self, name: str) -> list[str]:
        """Delete a custom colour; its highlights fall back to the default.

        Returns:
            Ids of the spans that were re-coloured.
        """
        from marklight.db.colors import delete_custom_color

        affected = self._registry.spans_with_color(name)
        if not self._palette.remove_custom(name):
            return []
        last_touched = self._registry.last_touched_span_id
        for span_id in affected:
            self._registry.recolor(span_id, self._palette.default)
        self._registry.last_touched_span_id = last_touched
        await delete_custom_color(name)
        if affected:
            self._mark_dirty()
        self._emit("colors", *affected)
        return affected
