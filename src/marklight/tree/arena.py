"""Owned arena of rendered text nodes.

The rendering surface hands the engine a tree of structural nodes. Node
identities are not stable across re-renders, so the engine keeps its own
copy as an arena of :class:`RenderedNode` records addressed by integer id,
and the host converts that arena back to its native view (see
``html_bridge``). The engine is the only writer.

Every mutation bumps :attr:`RenderedTree.generation`; text indexes compare
against it so an index is never used after the tree changed underneath it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from marklight.errors import StructureError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

type NodeId = int

# Leaf tags. "-text" matches selectolax's tag for text nodes.
TEXT_TAG = "-text"
BR_TAG = "br"
LEAF_TAGS = frozenset((TEXT_TAG, BR_TAG))

ROOT_TAG = "root"


@dataclass
class RenderedNode:
    """One leaf or container in the arena.

    Attributes:
        node_id: Arena address.
        tag: Element name for containers, ``TEXT_TAG``/``BR_TAG`` for leaves.
        text: Text payload (leaves only).
        is_block: Whether a highlight wrapper must not straddle this node.
        attrs: Element attributes (containers only).
        children: Ordered child ids (containers only).
        parent: Parent id, None for the root and for detached nodes.
        origin: Id of the node this one was split from, if any. Fragments
            sharing an origin are merged back together by ``merge_fragments``.
    """

    node_id: NodeId
    tag: str
    text: str = ""
    is_block: bool = False
    attrs: dict[str, str] = field(default_factory=dict)
    children: list[NodeId] = field(default_factory=list)
    parent: NodeId | None = None
    origin: NodeId | None = None

    @property
    def is_leaf(self) -> bool:
        return self.tag in LEAF_TAGS

    @property
    def origin_key(self) -> NodeId:
        return self.origin if self.origin is not None else self.node_id

    def clone(self) -> RenderedNode:
        return replace(self, attrs=dict(self.attrs), children=list(self.children))


class RenderedTree:
    """Arena of rendered nodes under a single block-level root."""

    def __init__(self) -> None:
        self._nodes: dict[NodeId, RenderedNode] = {}
        self._next_id = 0
        self.generation = 0
        self.root: NodeId = self._new_node(ROOT_TAG, is_block=True).node_id

    # --- Lookup ---

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def node(self, node_id: NodeId) -> RenderedNode:
        """Return the node for *node_id*.

        Raises:
            StructureError: If the id is not part of this arena.
        """
        try:
            return self._nodes[node_id]
        except KeyError:
            msg = f"Unknown node id {node_id}"
            raise StructureError(msg) from None

    def children(self, node_id: NodeId) -> list[NodeId]:
        return list(self.node(node_id).children)

    def index_in_parent(self, node_id: NodeId) -> int:
        node = self.node(node_id)
        if node.parent is None:
            msg = f"Node {node_id} has no parent"
            raise StructureError(msg)
        return self.node(node.parent).children.index(node_id)

    def ancestors(self, node_id: NodeId) -> Iterator[NodeId]:
        """Yield ancestors of *node_id* from nearest to the root."""
        parent = self.node(node_id).parent
        while parent is not None:
            yield parent
            parent = self._nodes[parent].parent

    def is_attached(self, node_id: NodeId) -> bool:
        """Whether *node_id* exists and hangs off the root."""
        if node_id not in self._nodes:
            return False
        if node_id == self.root:
            return True
        for ancestor in self.ancestors(node_id):
            if ancestor == self.root:
                return True
        return False

    def nearest_block(self, node_id: NodeId) -> NodeId:
        """Return the nearest block container enclosing *node_id*.

        A block container is its own nearest block. The root is a block,
        so this always succeeds for attached nodes.
        """
        node = self.node(node_id)
        if not node.is_leaf and node.is_block:
            return node_id
        for ancestor in self.ancestors(node_id):
            if self._nodes[ancestor].is_block:
                return ancestor
        msg = f"Node {node_id} is not under a block container"
        raise StructureError(msg)

    def walk(self, node_id: NodeId | None = None) -> Iterator[NodeId]:
        """Yield *node_id* and its descendants in pre-order."""
        stack = [self.root if node_id is None else node_id]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self._nodes[current].children))

    def leaves(self, node_id: NodeId | None = None) -> Iterator[NodeId]:
        """Yield leaf ids under *node_id* in document order."""
        for current in self.walk(node_id):
            if self._nodes[current].is_leaf:
                yield current

    def text_content(self, node_id: NodeId | None = None) -> str:
        return "".join(self._nodes[leaf].text for leaf in self.leaves(node_id))

    # --- Construction ---

    def _new_node(
        self,
        tag: str,
        *,
        text: str = "",
        is_block: bool = False,
        attrs: dict[str, str] | None = None,
        origin: NodeId | None = None,
    ) -> RenderedNode:
        node = RenderedNode(
            node_id=self._next_id,
            tag=tag,
            text=text,
            is_block=is_block,
            attrs=dict(attrs or {}),
            origin=origin,
        )
        self._nodes[node.node_id] = node
        self._next_id += 1
        return node

    def _attach(self, node: RenderedNode, parent: NodeId, index: int | None) -> None:
        parent_node = self.node(parent)
        if parent_node.is_leaf:
            msg = f"Cannot add children to leaf {parent}"
            raise StructureError(msg)
        if index is None:
            parent_node.children.append(node.node_id)
        else:
            parent_node.children.insert(index, node.node_id)
        node.parent = parent
        self.generation += 1

    def add_leaf(
        self,
        parent: NodeId,
        text: str,
        *,
        tag: str = TEXT_TAG,
        index: int | None = None,
    ) -> NodeId:
        """Append (or insert at *index*) a text leaf under *parent*."""
        if tag not in LEAF_TAGS:
            msg = f"{tag!r} is not a leaf tag"
            raise StructureError(msg)
        node = self._new_node(tag, text=text)
        self._attach(node, parent, index)
        return node.node_id

    def add_container(
        self,
        parent: NodeId,
        tag: str,
        *,
        is_block: bool = False,
        attrs: dict[str, str] | None = None,
        index: int | None = None,
    ) -> NodeId:
        """Append (or insert at *index*) a container under *parent*."""
        if tag in LEAF_TAGS:
            msg = f"{tag!r} is a leaf tag"
            raise StructureError(msg)
        node = self._new_node(tag, is_block=is_block, attrs=attrs)
        self._attach(node, parent, index)
        return node.node_id

    def remove(self, node_id: NodeId) -> None:
        """Detach *node_id* and delete its whole subtree."""
        if node_id == self.root:
            msg = "Cannot remove the root"
            raise StructureError(msg)
        node = self.node(node_id)
        if node.parent is not None:
            self._nodes[node.parent].children.remove(node_id)
        for descendant in list(self.walk(node_id)):
            del self._nodes[descendant]
        self.generation += 1

    # --- Mutation primitives ---

    def split_leaf(self, leaf_id: NodeId, at: int) -> NodeId:
        """Split a text leaf so that ``text[at:]`` moves into a new right sibling.

        Returns:
            Id of the new right-hand leaf.

        Raises:
            StructureError: If *leaf_id* is not a text leaf or *at* is not
                strictly inside its text.
        """
        leaf = self.node(leaf_id)
        if leaf.tag != TEXT_TAG:
            msg = f"Node {leaf_id} is not a text leaf"
            raise StructureError(msg)
        if not 0 < at < len(leaf.text):
            msg = f"Split point {at} outside leaf {leaf_id} of length {len(leaf.text)}"
            raise StructureError(msg)
        if leaf.parent is None:
            msg = f"Leaf {leaf_id} is detached"
            raise StructureError(msg)

        right = self._new_node(TEXT_TAG, text=leaf.text[at:], origin=leaf.origin_key)
        leaf.text = leaf.text[:at]
        self._attach(right, leaf.parent, self.index_in_parent(leaf_id) + 1)
        return right.node_id

    def split_container(self, node_id: NodeId, index: int) -> NodeId:
        """Split an inline container before child *index*.

        Children from *index* onwards move into a new sibling container with
        the same tag and attributes, inserted right after the original.

        Returns:
            Id of the new right-hand container.
        """
        node = self.node(node_id)
        if node.is_leaf or node.is_block:
            msg = f"Node {node_id} ({node.tag}) is not an inline container"
            raise StructureError(msg)
        if not 0 < index < len(node.children):
            msg = f"Split index {index} outside container {node_id}"
            raise StructureError(msg)
        if node.parent is None:
            msg = f"Container {node_id} is detached"
            raise StructureError(msg)

        right = self._new_node(
            node.tag, is_block=False, attrs=node.attrs, origin=node.origin_key
        )
        moved = node.children[index:]
        del node.children[index:]
        right.children = moved
        for child in moved:
            self._nodes[child].parent = right.node_id
        self._attach(right, node.parent, self.index_in_parent(node_id) + 1)
        return right.node_id

    def wrap_children(
        self,
        parent: NodeId,
        first: int,
        last: int,
        tag: str,
        attrs: dict[str, str] | None = None,
    ) -> NodeId:
        """Re-parent ``children[first:last + 1]`` of *parent* under a new container.

        Returns:
            Id of the new inline container.
        """
        parent_node = self.node(parent)
        if parent_node.is_leaf:
            msg = f"Node {parent} is a leaf"
            raise StructureError(msg)
        if not 0 <= first <= last < len(parent_node.children):
            msg = f"Child range [{first}, {last}] outside node {parent}"
            raise StructureError(msg)

        wrapper = self._new_node(tag, attrs=attrs)
        moved = parent_node.children[first : last + 1]
        del parent_node.children[first : last + 1]
        wrapper.children = moved
        for child in moved:
            self._nodes[child].parent = wrapper.node_id
        self._attach(wrapper, parent, first)
        return wrapper.node_id

    def unwrap(self, node_id: NodeId) -> NodeId:
        """Replace container *node_id* by its children, in place.

        Returns:
            Id of the former parent.
        """
        node = self.node(node_id)
        if node.is_leaf or node.parent is None:
            msg = f"Node {node_id} cannot be unwrapped"
            raise StructureError(msg)
        parent = self._nodes[node.parent]
        index = parent.children.index(node_id)
        parent.children[index : index + 1] = node.children
        for child in node.children:
            self._nodes[child].parent = parent.node_id
        del self._nodes[node_id]
        self.generation += 1
        return parent.node_id

    def merge_fragments(self, node_id: NodeId) -> None:
        """Merge adjacent children of *node_id* that belong together.

        Contiguous text leaves are concatenated. Adjacent inline containers
        that were split from the same node (same origin, tag and attributes)
        are joined and their own children merged recursively.
        """
        node = self.node(node_id)
        i = 0
        changed = False
        while i < len(node.children) - 1:
            left = self._nodes[node.children[i]]
            right = self._nodes[node.children[i + 1]]
            if left.tag == TEXT_TAG and right.tag == TEXT_TAG:
                left.text += right.text
                del node.children[i + 1]
                del self._nodes[right.node_id]
                changed = True
                continue
            if self._same_fragment(left, right):
                for child in right.children:
                    self._nodes[child].parent = left.node_id
                left.children.extend(right.children)
                del node.children[i + 1]
                del self._nodes[right.node_id]
                self.merge_fragments(left.node_id)
                changed = True
                continue
            i += 1
        if changed:
            self.generation += 1

    @staticmethod
    def _same_fragment(left: RenderedNode, right: RenderedNode) -> bool:
        return (
            not left.is_leaf
            and not right.is_leaf
            and not left.is_block
            and not right.is_block
            and (left.origin is not None or right.origin is not None)
            and left.origin_key == right.origin_key
            and left.tag == right.tag
            and left.attrs == right.attrs
        )

    # --- Transactions ---

    @contextmanager
    def transaction(self, node_id: NodeId) -> Iterator[None]:
        """Checkpoint the subtree at *node_id*; restore it if the body raises.

        All mutations inside the body must stay within that subtree. Nodes
        created inside the body are discarded on rollback.
        """
        checkpoint = {nid: self._nodes[nid].clone() for nid in self.walk(node_id)}
        first_new_id = self._next_id
        try:
            yield
        except Exception:
            for nid in [n for n in self._nodes if n >= first_new_id]:
                del self._nodes[nid]
            self._nodes.update(checkpoint)
            self.generation += 1
            logger.debug(
                "Rolled back subtree %d (%d nodes)", node_id, len(checkpoint)
            )
            raise

    # --- Comparison ---

    def signature(self, node_id: NodeId | None = None) -> tuple:
        """Structural fingerprint of a subtree, ignoring leaf granularity.

        Adjacent text leaves are folded together, so two trees that differ
        only in how their text is split across leaves compare equal.
        """
        node = self.node(self.root if node_id is None else node_id)
        if node.is_leaf:
            return (node.tag, node.text)
        parts: list[tuple] = []
        for child in node.children:
            sig = self.signature(child)
            if parts and sig[0] == TEXT_TAG and parts[-1][0] == TEXT_TAG:
                parts[-1] = (TEXT_TAG, parts[-1][1] + sig[1])
            elif sig != (TEXT_TAG, ""):
                parts.append(sig)
        return (
            node.tag,
            node.is_block,
            tuple(sorted(node.attrs.items())),
            tuple(parts),
        )
