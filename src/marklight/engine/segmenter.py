"""Split document ranges at block boundaries.

A highlight wrapper is an inline element, so it must never contain sibling
block elements. Before wrapping, a range is partitioned into one sub-range
per block it crosses; each sub-range is then wrapped on its own.

A block interrupted by a nested block (e.g. a list item holding text, then
a nested list, then more text) yields one segment per contiguous run of
leaves, so each segment can be wrapped by a single element.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from marklight.engine.indexer import build_index

if TYPE_CHECKING:
    from marklight.engine.indexer import TextIndex
    from marklight.tree.arena import NodeId, RenderedTree


@dataclass(frozen=True)
class BlockSegment:
    """A sub-range lying entirely inside one block (document offsets)."""

    block: NodeId
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


def _has_nested_block(tree: RenderedTree, block: NodeId) -> bool:
    return any(tree.node(node).is_block for node in tree.walk(block) if node != block)


def segment_by_block(
    tree: RenderedTree,
    start: int,
    length: int,
    index: TextIndex | None = None,
) -> list[BlockSegment]:
    """Partition ``[start, start + length)`` into per-block segments.

    Args:
        tree: The tree the offsets refer to.
        start: Range start (document offset).
        length: Range length in characters.
        index: An index of *tree*'s current generation, if the caller
            already has one.

    Returns:
        Segments in document order; empty for an empty or out-of-range
        input.
    """
    if index is None:
        index = build_index(tree)
    end = start + length
    if length <= 0 or start < 0 or end > len(index):
        return []

    first = index.position_at(start, "forward")
    last = index.position_at(end, "backward")
    block = tree.nearest_block(first.node)
    if block == tree.nearest_block(last.node) and not _has_nested_block(tree, block):
        return [BlockSegment(block, start, length)]

    # A nested block between the ends splits the shared block into runs,
    # so the covered leaves are grouped one by one.
    segments: list[BlockSegment] = []
    run_block: NodeId | None = None
    run_start = start
    run_end = start
    for leaf_slice in index.leaf_slices(start, end):
        block = tree.nearest_block(leaf_slice.node)
        if block != run_block:
            if run_block is not None:
                segments.append(BlockSegment(run_block, run_start, run_end - run_start))
            run_block = block
            run_start = leaf_slice.start
        run_end = leaf_slice.end
    if run_block is not None:
        segments.append(BlockSegment(run_block, run_start, run_end - run_start))
    return segments
