"""Wrap and unwrap highlight decorations in the live tree.

``wrap`` works in two steps so a wrapper boundary always lands exactly
between nodes:

1. Split. Leaves that only partially fall inside the range are split in
   two. Inline ancestors (``<em>``, ``<a>``...) that only partially fall
   inside are split as well, up to the block's direct children. Split
   fragments remember their origin.
2. Wrap. The covered direct children of the block are re-parented under a
   single ``<mark>`` wrapper.

``unwrap`` is the inverse: the wrapper is replaced by its children and
fragments that share an origin are merged back, together with contiguous
text leaves, so the tree returns to its minimal shape.

Both run inside a per-block transaction. If the tree turns out not to have
the expected shape, the block is restored to its checkpoint and a
``WrapError`` is raised for the registry to handle; a block is never left
half wrapped.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from marklight.engine.indexer import build_index
from marklight.errors import AnnotationError, StructureError, WrapError
from marklight.tree.marker_constants import (
    COLOR_ATTR,
    SPAN_ID_ATTR,
    STYLE_TEMPLATE,
    WRAPPER_CLASS,
    WRAPPER_TAG,
)

if TYPE_CHECKING:
    from marklight.engine.segmenter import BlockSegment
    from marklight.tree.arena import NodeId, RenderedNode, RenderedTree

logger = logging.getLogger(__name__)


def is_wrapper(node: RenderedNode) -> bool:
    return node.tag == WRAPPER_TAG and SPAN_ID_ATTR in node.attrs


def wrapper_attrs(span_id: str, color_name: str, color_css: str) -> dict[str, str]:
    return {
        "class": WRAPPER_CLASS,
        SPAN_ID_ATTR: span_id,
        COLOR_ATTR: color_name,
        "style": STYLE_TEMPLATE.format(color_css),
    }


def find_wrappers(tree: RenderedTree, span_id: str | None = None) -> list[NodeId]:
    """Return wrapper ids in document order, optionally for one span."""
    found: list[NodeId] = []
    for node_id in tree.walk():
        node = tree.node(node_id)
        if is_wrapper(node) and (
            span_id is None or node.attrs[SPAN_ID_ATTR] == span_id
        ):
            found.append(node_id)
    return found


# ---------------------------------------------------------------------------
# Split step
# ---------------------------------------------------------------------------


def _lift_start(tree: RenderedTree, block: NodeId, node_id: NodeId) -> NodeId:
    """Split inline ancestors so *node_id* starts a direct child of *block*."""
    current = node_id
    while True:
        parent = tree.node(current).parent
        if parent is None:
            msg = f"Node {node_id} is not inside block {block}"
            raise StructureError(msg)
        if parent == block:
            return current
        index = tree.index_in_parent(current)
        current = tree.split_container(parent, index) if index > 0 else parent


def _lift_end(tree: RenderedTree, block: NodeId, node_id: NodeId) -> NodeId:
    """Split inline ancestors so *node_id* ends a direct child of *block*."""
    current = node_id
    while True:
        parent = tree.node(current).parent
        if parent is None:
            msg = f"Node {node_id} is not inside block {block}"
            raise StructureError(msg)
        if parent == block:
            return current
        index = tree.index_in_parent(current)
        if index < len(tree.node(parent).children) - 1:
            tree.split_container(parent, index + 1)
        current = parent


def _wrap_in_block(
    tree: RenderedTree,
    segment: BlockSegment,
    attrs: dict[str, str],
) -> NodeId:
    block = segment.block
    if segment.length <= 0:
        msg = f"Empty segment in block {block}"
        raise StructureError(msg)

    index = build_index(tree)
    first = index.position_at(segment.start, "forward")
    last = index.position_at(segment.end, "backward")
    expected = index.slice_text(segment.start, segment.length)
    if (
        tree.nearest_block(first.node) != block
        or tree.nearest_block(last.node) != block
    ):
        msg = f"Segment ({segment.start}, {segment.length}) leaves block {block}"
        raise StructureError(msg)

    # Split the end first: when both ends share a leaf, the start offset
    # stays valid on the left part.
    last_leaf = last.node
    if 0 < last.offset < len(tree.node(last.node).text):
        tree.split_leaf(last.node, last.offset)
    first_leaf = first.node
    if 0 < first.offset < len(tree.node(first.node).text):
        first_leaf = tree.split_leaf(first.node, first.offset)
        if first.node == last.node:
            last_leaf = first_leaf

    first_top = _lift_start(tree, block, first_leaf)
    last_top = _lift_end(tree, block, last_leaf)
    first_index = tree.index_in_parent(first_top)
    last_index = tree.index_in_parent(last_top)
    if first_index > last_index:
        msg = f"Segment boundaries out of order in block {block}"
        raise StructureError(msg)

    wrapper = tree.wrap_children(block, first_index, last_index, WRAPPER_TAG, attrs)

    if tree.text_content(wrapper) != expected:
        msg = f"Wrapper text does not match segment ({segment.start}, {segment.length})"
        raise StructureError(msg)
    for inner in tree.walk(wrapper):
        if inner != wrapper and tree.node(inner).is_block:
            msg = f"Wrapper in block {block} would contain block {inner}"
            raise StructureError(msg)
    return wrapper


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------


def wrap(
    tree: RenderedTree,
    segment: BlockSegment,
    *,
    span_id: str,
    color_name: str,
    color_css: str,
) -> NodeId:
    """Wrap one single-block segment in a highlight wrapper.

    Returns:
        Id of the new wrapper node.

    Raises:
        WrapError: The block did not have the expected shape; it has been
            restored to its state before the call.
    """
    attrs = wrapper_attrs(span_id, color_name, color_css)
    try:
        with tree.transaction(segment.block):
            return _wrap_in_block(tree, segment, attrs)
    except AnnotationError as exc:
        logger.warning(
            "Wrap of span %s in block %d rolled back: %s", span_id, segment.block, exc
        )
        raise WrapError(str(exc), block=segment.block) from exc


def unwrap(tree: RenderedTree, wrapper: NodeId) -> None:
    """Flatten *wrapper* back into its parent and re-merge split fragments.

    Raises:
        WrapError: *wrapper* is not a highlight wrapper of this tree.
    """
    try:
        node = tree.node(wrapper)
        if not is_wrapper(node):
            msg = f"Node {wrapper} ({node.tag}) is not a highlight wrapper"
            raise StructureError(msg)
        block = tree.nearest_block(wrapper)
        with tree.transaction(block):
            parent = tree.unwrap(wrapper)
            tree.merge_fragments(parent)
    except AnnotationError as exc:
        logger.warning("Unwrap of node %d failed: %s", wrapper, exc)
        raise WrapError(str(exc)) from exc


def restyle(
    tree: RenderedTree, wrapper: NodeId, *, color_name: str, color_css: str
) -> None:
    """Change a wrapper's colour in place. No topology change."""
    node = tree.node(wrapper)
    node.attrs[COLOR_ATTR] = color_name
    node.attrs["style"] = STYLE_TEMPLATE.format(color_css)
