"""Re-apply saved highlights to a freshly rendered tree.

Saved spans carry a verbatim text snapshot next to their offset. The
rendered text may have changed since the save, so each span is located in
three passes before it is re-applied:

1. Exact: the text at the saved offset still equals the snapshot.
2. Window: the snapshot occurs within
   ``[offset - length - W, offset + length + W)`` of the current text, so a
   shift of up to ``length + W`` either way is found; the first occurrence
   wins.
3. Document: the snapshot occurs anywhere; the first occurrence wins.

A span found by none of them is dropped with a warning. Relocated spans
that now overlap are merged by the registry's normal ``apply`` rules, in
the saved order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from marklight.engine.indexer import build_index

if TYPE_CHECKING:
    from collections.abc import Iterable

    from marklight.engine.indexer import TextIndex
    from marklight.engine.models import HighlightSpan
    from marklight.engine.registry import SpanRegistry

logger = logging.getLogger(__name__)

DEFAULT_FUZZY_WINDOW = 100

type MatchKind = Literal["exact", "window", "document"]


@dataclass
class RestoreReport:
    """Outcome of restoring one document's saved highlights."""

    exact: int = 0
    relocated: int = 0
    dropped: int = 0
    span_ids: list[str] = field(default_factory=list)
    # saved span id -> id of the live span now holding it
    id_map: dict[str, str] = field(default_factory=dict)

    @property
    def restored(self) -> int:
        return self.exact + self.relocated

    @property
    def total(self) -> int:
        return self.restored + self.dropped


def locate_span(
    index: TextIndex,
    text: str,
    offset: int,
    length: int,
    window: int = DEFAULT_FUZZY_WINDOW,
) -> tuple[int, MatchKind] | None:
    """Find where a saved snapshot lives in the current text.

    Returns:
        ``(offset, kind)`` for the first pass that matched, or None.
    """
    if not text:
        return None
    content_length = len(index)
    if 0 <= offset and offset + length <= content_length:
        if index.slice_text(offset, length) == text:
            return offset, "exact"

    window_start = max(offset - length - window, 0)
    window_end = min(offset + length + window, content_length)
    found = index.find(text, window_start, window_end)
    if found >= 0:
        return found, "window"

    found = index.find(text)
    if found >= 0:
        return found, "document"
    return None


def restore_spans(
    registry: SpanRegistry,
    saved: Iterable[HighlightSpan],
    window: int = DEFAULT_FUZZY_WINDOW,
) -> RestoreReport:
    """Locate and re-apply *saved* spans on the registry's tree.

    The index is rebuilt for each span since every apply mutates the tree.
    """
    report = RestoreReport()
    for entry in saved:
        index = build_index(registry.tree)
        located = locate_span(index, entry.text, entry.start, entry.length, window)
        if located is None:
            report.dropped += 1
            logger.warning(
                "Dropping highlight %r (offset %d): text no longer in document",
                _preview(entry.text),
                entry.start,
            )
            continue

        offset, kind = located
        span_id = registry.apply(offset, len(entry.text), entry.color)
        if span_id is None:
            report.dropped += 1
            logger.warning(
                "Dropping highlight %r: could not be applied at %d",
                _preview(entry.text),
                offset,
            )
            continue

        if kind == "exact":
            report.exact += 1
        else:
            report.relocated += 1
            logger.info(
                "Relocated highlight %r from %d to %d (%s search)",
                _preview(entry.text),
                entry.start,
                offset,
                kind,
            )
        if span_id not in report.span_ids:
            report.span_ids.append(span_id)
        # Spans this apply absorbed now live on as span_id
        for saved_id, mapped in report.id_map.items():
            if mapped not in registry:
                report.id_map[saved_id] = span_id
        report.id_map[entry.id] = span_id

    # Overlap merges during restore retire earlier ids
    report.span_ids = [span_id for span_id in report.span_ids if span_id in registry]
    logger.info(
        "Restored %d/%d highlight(s) (%d exact, %d relocated, %d dropped)",
        report.restored,
        report.total,
        report.exact,
        report.relocated,
        report.dropped,
    )
    return report


def _preview(text: str, limit: int = 40) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."
