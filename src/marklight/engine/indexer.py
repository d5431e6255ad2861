"""Canonical flattening of a rendered tree and offset conversions.

A :class:`TextIndex` concatenates the text of every leaf under the root in
pre-order. Positions in that buffer (document offsets) are the only
coordinates the engine persists, because node ids do not survive a
re-render.

An index is a pure read of one tree generation. Any mutation of the tree
(including wrapping a highlight, which splits leaves) makes it stale, and
a stale index refuses to answer rather than return positions that point at
the wrong leaves.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from marklight.errors import OffsetError, StaleIndexError

if TYPE_CHECKING:
    from marklight.tree.arena import NodeId, RenderedTree

type Affinity = Literal["forward", "backward"]


@dataclass(frozen=True)
class TextPosition:
    """A character position inside one leaf."""

    node: NodeId
    offset: int


@dataclass(frozen=True)
class LeafSlice:
    """The part of one leaf that falls inside a document range."""

    node: NodeId
    leaf_start: int  # document offset of the leaf's first character
    start: int  # clipped range start (document offset)
    end: int  # clipped range end (document offset, exclusive)


class TextIndex:
    """Flattened text of a tree plus leaf boundary tables.

    Zero-length leaves hold no characters and are not indexed.
    """

    def __init__(self, tree: RenderedTree) -> None:
        self._tree = tree
        self._generation = tree.generation
        self._leaves: list[NodeId] = []
        self._starts: list[int] = []
        self._slots: dict[NodeId, int] = {}

        parts: list[str] = []
        cursor = 0
        for leaf in tree.leaves():
            text = tree.node(leaf).text
            if not text:
                continue
            self._slots[leaf] = len(self._leaves)
            self._leaves.append(leaf)
            self._starts.append(cursor)
            parts.append(text)
            cursor += len(text)
        self.text = "".join(parts)

    def __len__(self) -> int:
        return len(self.text)

    def is_current(self) -> bool:
        return self._tree.generation == self._generation

    def _check_current(self) -> None:
        if not self.is_current():
            msg = (
                f"Index built at generation {self._generation} used at "
                f"generation {self._tree.generation}"
            )
            raise StaleIndexError(msg)

    def _leaf_length(self, slot: int) -> int:
        end = self._starts[slot + 1] if slot + 1 < len(self._starts) else len(self.text)
        return end - self._starts[slot]

    def offset_of(self, position: TextPosition) -> int:
        """Return the document offset of *position*.

        Raises:
            OffsetError: If the leaf is not indexed or the local offset lies
                outside the leaf.
        """
        self._check_current()
        slot = self._slots.get(position.node)
        if slot is None:
            msg = f"Node {position.node} is not an indexed leaf"
            raise OffsetError(msg)
        if not 0 <= position.offset <= self._leaf_length(slot):
            msg = f"Local offset {position.offset} outside leaf {position.node}"
            raise OffsetError(msg)
        return self._starts[slot] + position.offset

    def position_at(self, offset: int, affinity: Affinity = "forward") -> TextPosition:
        """Return the leaf position holding document *offset*.

        At a boundary between two leaves, ``"forward"`` resolves to the
        start of the following leaf and ``"backward"`` to the end of the
        preceding one. The end-of-content offset resolves to the end of the
        last leaf.

        Raises:
            OffsetError: If *offset* is negative or past the end of content.
        """
        self._check_current()
        if not self._leaves or not 0 <= offset <= len(self.text):
            msg = f"Offset {offset} outside content of length {len(self.text)}"
            raise OffsetError(msg)
        if affinity == "backward" and offset > 0:
            slot = bisect_left(self._starts, offset) - 1
        else:
            slot = bisect_right(self._starts, offset) - 1
        return TextPosition(self._leaves[slot], offset - self._starts[slot])

    def slice_text(self, start: int, length: int) -> str:
        """Return the literal text of ``[start, start + length)``.

        Raises:
            OffsetError: If the range runs outside the content.
        """
        self._check_current()
        if start < 0 or length < 0 or start + length > len(self.text):
            msg = (
                f"Range ({start}, {length}) outside content "
                f"of length {len(self.text)}"
            )
            raise OffsetError(msg)
        return self.text[start : start + length]

    def find(self, needle: str, start: int = 0, end: int | None = None) -> int:
        """Return the first offset of *needle* within ``[start, end)``, or -1."""
        self._check_current()
        return self.text.find(needle, max(start, 0), end)

    def leaf_slices(self, start: int, end: int) -> list[LeafSlice]:
        """Return the leaves overlapping ``[start, end)`` in document order."""
        self._check_current()
        if start >= end:
            return []
        first = max(bisect_right(self._starts, start) - 1, 0)
        slices: list[LeafSlice] = []
        for slot in range(first, len(self._leaves)):
            leaf_start = self._starts[slot]
            if leaf_start >= end:
                break
            leaf_end = leaf_start + self._leaf_length(slot)
            if leaf_end <= start:
                continue
            slices.append(
                LeafSlice(
                    node=self._leaves[slot],
                    leaf_start=leaf_start,
                    start=max(start, leaf_start),
                    end=min(end, leaf_end),
                )
            )
        return slices


def build_index(tree: RenderedTree) -> TextIndex:
    """Flatten *tree* into a fresh :class:`TextIndex`."""
    return TextIndex(tree)
