"""In-memory model of the highlight spans over one open document.

The registry owns the spans and the wrapper nodes that display them, and
keeps one invariant: no two spans overlap. Applying a highlight that
intersects existing spans removes them and applies a single span over the
union instead, so wrappers are never nested.

One modelled special case: when exactly one span intersects the new range
and the new range lies inside it, the covering interval would equal that
span's interval. That request is a colour update, not a new span, so
clicking a colour inside an existing highlight re-colours it without
growing it.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from marklight.engine import mutator
from marklight.engine.indexer import build_index
from marklight.engine.models import HighlightSpan, new_span_id
from marklight.engine.palette import ColorPalette
from marklight.engine.segmenter import segment_by_block
from marklight.errors import WrapError
from marklight.tree.marker_constants import SPAN_ID_ATTR

if TYPE_CHECKING:
    from marklight.tree.arena import NodeId, RenderedTree

logger = logging.getLogger(__name__)


class SpanRegistry:
    """Active highlight spans of one document, bound to one rendered tree.

    Attributes:
        last_touched_span_id: Span most recently created or re-coloured.
            Updated only by ``apply`` and ``recolor``; read by
            ``recolor_last`` (re-colour without a selection).
    """

    def __init__(
        self, tree: RenderedTree, palette: ColorPalette | None = None
    ) -> None:
        self._tree = tree
        self._palette = palette if palette is not None else ColorPalette()
        self._spans: dict[str, HighlightSpan] = {}
        self._wrappers: dict[str, list[NodeId]] = {}
        self.last_touched_span_id: str | None = None

    @property
    def tree(self) -> RenderedTree:
        return self._tree

    @property
    def palette(self) -> ColorPalette:
        return self._palette

    def __len__(self) -> int:
        return len(self._spans)

    def __contains__(self, span_id: object) -> bool:
        return span_id in self._spans

    def attach(self, tree: RenderedTree) -> None:
        """Bind to a freshly rendered tree.

        Spans are dropped: their wrappers belong to the discarded tree.
        Callers snapshot ``all()`` first and restore afterwards.
        """
        self._tree = tree
        self._spans.clear()
        self._wrappers.clear()
        self.last_touched_span_id = None

    # --- Queries ---

    def get(self, span_id: str) -> HighlightSpan | None:
        span = self._spans.get(span_id)
        return replace(span) if span is not None else None

    def all(self) -> list[HighlightSpan]:
        """Snapshot of every span, ordered by start offset."""
        ordered = sorted(self._spans.values(), key=lambda s: s.start)
        return [replace(span) for span in ordered]

    def overlapping(self, start: int, end: int) -> list[HighlightSpan]:
        """Spans whose interval intersects ``[start, end)``, by start offset."""
        return sorted(
            (span for span in self._spans.values() if span.overlaps(start, end)),
            key=lambda s: s.start,
        )

    def spans_with_color(self, color: str) -> list[str]:
        return [span.id for span in self._spans.values() if span.color == color]

    def wrappers_of(self, span_id: str) -> list[NodeId]:
        """Live wrapper nodes of *span_id* in document order."""
        wrappers = self._wrappers.get(span_id, [])
        if all(self._is_live_wrapper(w, span_id) for w in wrappers):
            return list(wrappers)
        # Ids drifted; fall back to a full scan
        found = mutator.find_wrappers(self._tree, span_id)
        self._wrappers[span_id] = found
        return list(found)

    def _is_live_wrapper(self, node_id: NodeId, span_id: str) -> bool:
        if not self._tree.is_attached(node_id):
            return False
        node = self._tree.node(node_id)
        return mutator.is_wrapper(node) and node.attrs.get(SPAN_ID_ATTR) == span_id

    # --- Mutations ---

    def apply(self, start: int, length: int, color: str | None = None) -> str | None:
        """Highlight ``[start, start + length)`` and return the span id.

        Returns:
            The new span id, the id of the re-coloured span for a request
            inside a single existing span, or None when nothing was applied
            (empty or out-of-range input, or a wrap that had to be rolled
            back).
        """
        if length <= 0:
            logger.debug("Ignoring empty highlight at %d", start)
            return None
        end = start + length
        if start < 0 or end > len(build_index(self._tree)):
            logger.debug("Ignoring highlight (%d, %d) outside content", start, length)
            return None
        color = self._palette.normalise(color)

        hits = self.overlapping(start, end)
        if len(hits) == 1 and hits[0].start <= start and end <= hits[0].end:
            self.recolor(hits[0].id, color)
            return hits[0].id

        removed = [self._spans.pop(hit.id) for hit in hits]
        for hit in removed:
            self._unwrap_span(hit.id)

        union_start = min([start, *(hit.start for hit in removed)])
        union_end = max([end, *(hit.end for hit in removed)])
        index = build_index(self._tree)
        span = HighlightSpan(
            id=new_span_id(),
            text=index.slice_text(union_start, union_end - union_start),
            color=color,
            start=union_start,
            length=union_end - union_start,
        )

        if not self._wrap_span(span):
            # Fail closed: put back what the overlap merge took away
            for hit in removed:
                if self._wrap_span(hit):
                    self._spans[hit.id] = hit
            return None

        self._spans[span.id] = span
        self.last_touched_span_id = span.id
        if removed:
            logger.debug(
                "Span %s (%d, %d) absorbed %d overlapping span(s)",
                span.id,
                span.start,
                span.length,
                len(removed),
            )
        return span.id

    def remove(self, span_id: str) -> bool:
        """Remove a span and its wrappers. Unknown ids are a no-op."""
        if self._spans.pop(span_id, None) is None:
            return False
        self._unwrap_span(span_id)
        return True

    def recolor(self, span_id: str, color: str | None) -> bool:
        """Re-colour a span in place. Unknown ids are a no-op."""
        span = self._spans.get(span_id)
        if span is None:
            return False
        span.color = self._palette.normalise(color)
        css = self._palette.resolve(span.color)
        for wrapper in self.wrappers_of(span_id):
            mutator.restyle(self._tree, wrapper, color_name=span.color, color_css=css)
        self.last_touched_span_id = span_id
        return True

    def recolor_last(self, color: str | None) -> str | None:
        """Re-colour the most recently touched span, if it still exists."""
        span_id = self.last_touched_span_id
        if span_id is None or not self.recolor(span_id, color):
            return None
        return span_id

    def clear_all(self) -> int:
        """Remove every span. Returns how many were removed."""
        span_ids = list(self._spans)
        for span_id in span_ids:
            self.remove(span_id)
        return len(span_ids)

    # --- Wrapper bookkeeping ---

    def _wrap_span(self, span: HighlightSpan) -> bool:
        segments = segment_by_block(self._tree, span.start, span.length)
        if not segments:
            logger.warning(
                "Span %s (%d, %d) has no segments", span.id, span.start, span.length
            )
            return False
        css = self._palette.resolve(span.color)
        wrappers: list[NodeId] = []
        try:
            for segment in segments:
                wrappers.append(
                    mutator.wrap(
                        self._tree,
                        segment,
                        span_id=span.id,
                        color_name=span.color,
                        color_css=css,
                    )
                )
        except WrapError:
            logger.warning(
                "Span %s not applied; undoing %d of %d block wrapper(s)",
                span.id,
                len(wrappers),
                len(segments),
            )
            for wrapper in reversed(wrappers):
                self._safe_unwrap(wrapper)
            return False
        self._wrappers[span.id] = wrappers
        return True

    def _unwrap_span(self, span_id: str) -> None:
        for wrapper in self.wrappers_of(span_id):
            self._safe_unwrap(wrapper)
        self._wrappers.pop(span_id, None)

    def _safe_unwrap(self, wrapper: NodeId) -> None:
        try:
            mutator.unwrap(self._tree, wrapper)
        except WrapError:
            logger.exception("Leaving wrapper %d in place", wrapper)
