"""Translate host selections to document offsets and back.

The host reports a selection as two points, each either inside a leaf
(character offset) or between the children of a container (child index),
the same convention as a DOM ``Range``. Only offsets cross into the
engine; host points are derived again on the way out, for placing UI such
as a colour picker, and never drive mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from marklight.engine.indexer import build_index
from marklight.errors import OffsetError

if TYPE_CHECKING:
    from marklight.tree.arena import NodeId, RenderedTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostPoint:
    """A selection endpoint: ``offset`` is a character offset for leaves
    and a child index for containers."""

    node: NodeId
    offset: int


@dataclass(frozen=True)
class HostRange:
    """A host selection. ``focus`` may precede ``anchor``."""

    anchor: HostPoint
    focus: HostPoint

    @property
    def collapsed(self) -> bool:
        return self.anchor == self.focus


class SelectionBridge:
    """Converts between host selections and ``(offset, length)`` pairs."""

    def __init__(self, tree: RenderedTree) -> None:
        self._tree = tree

    def _point_offset(self, point: HostPoint) -> int | None:
        tree = self._tree
        if point.node not in tree or not tree.is_attached(point.node):
            return None
        node = tree.node(point.node)
        if node.is_leaf:
            if not 0 <= point.offset <= len(node.text):
                return None
            return self._offset_before(point.node) + point.offset
        if not 0 <= point.offset <= len(node.children):
            return None
        if point.offset < len(node.children):
            return self._offset_before(node.children[point.offset])
        return self._offset_before(point.node) + len(tree.text_content(point.node))

    def _offset_before(self, target: NodeId) -> int:
        """Characters preceding *target* in the flattened text."""
        cursor = 0
        for node_id in self._tree.walk():
            if node_id == target:
                break
            node = self._tree.node(node_id)
            if node.is_leaf:
                cursor += len(node.text)
        return cursor

    def from_host_selection(self, host_range: HostRange) -> tuple[int, int] | None:
        """Return ``(offset, length)`` for a selection, or None.

        None for collapsed selections and for endpoints that are not
        attached nodes of this tree. Backwards selections are normalised.
        """
        anchor = self._point_offset(host_range.anchor)
        focus = self._point_offset(host_range.focus)
        if anchor is None or focus is None:
            logger.debug("Ignoring selection outside the content root: %s", host_range)
            return None
        start, end = min(anchor, focus), max(anchor, focus)
        if start == end:
            return None
        return start, end - start

    def to_host_selection(self, offset: int, length: int) -> HostRange | None:
        """Return a host range covering ``[offset, offset + length)``."""
        if length <= 0:
            return None
        index = build_index(self._tree)
        try:
            start = index.position_at(offset, "forward")
            end = index.position_at(offset + length, "backward")
        except OffsetError:
            return None
        return HostRange(
            HostPoint(start.node, start.offset), HostPoint(end.node, end.offset)
        )

    def block_of(self, offset: int) -> NodeId | None:
        """Block holding *offset*, for anchoring popups."""
        index = build_index(self._tree)
        try:
            position = index.position_at(offset, "forward")
        except OffsetError:
            return None
        return self._tree.nearest_block(position.node)
