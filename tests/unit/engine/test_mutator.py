"""Unit tests for wrapping and unwrapping highlight decorations."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from marklight.engine import mutator
from marklight.engine.segmenter import BlockSegment, segment_by_block
from marklight.errors import StructureError, WrapError
from marklight.tree.html_bridge import parse_html, to_html
from marklight.tree.marker_constants import COLOR_ATTR, SPAN_ID_ATTR

if TYPE_CHECKING:
    from marklight.tree.arena import RenderedTree

CSS = "rgba(255, 235, 59, 0.45)"


def _wrap(tree: RenderedTree, segment: BlockSegment, span_id: str = "s1") -> int:
    return mutator.wrap(
        tree, segment, span_id=span_id, color_name="yellow", color_css=CSS
    )


class TestWrap:
    """wrap() splits leaves and inline ancestors, then wraps block children."""

    def test_wraps_middle_of_leaf(self, fox_tree: RenderedTree) -> None:
        p = fox_tree.children(fox_tree.root)[0]
        wrapper = _wrap(fox_tree, BlockSegment(p, 4, 5))

        assert fox_tree.text_content(wrapper) == "quick"
        assert fox_tree.node(wrapper).parent == p
        assert fox_tree.text_content() == "The quick brown fox"
        assert to_html(fox_tree) == (
            '<p>The <mark class="md-highlight" data-hl-id="s1" data-color="yellow"'
            f' style="background-color: {CSS}">quick</mark> brown fox</p>'
        )

    def test_wraps_whole_leaf_without_split(self, fox_tree: RenderedTree) -> None:
        p = fox_tree.children(fox_tree.root)[0]
        wrapper = _wrap(fox_tree, BlockSegment(p, 0, 19))
        assert fox_tree.children(p) == [wrapper]

    def test_splits_inline_ancestors(self) -> None:
        tree = parse_html("<p>a <em>bold text</em> b</p>")
        p = tree.children(tree.root)[0]

        wrapper = _wrap(tree, BlockSegment(p, 3, 6))

        assert tree.text_content(wrapper) == "old te"
        assert [tree.node(c).tag for c in tree.children(p)] == [
            "-text",
            "em",
            "mark",
            "em",
            "-text",
        ]
        inner = tree.children(wrapper)[0]
        assert tree.node(inner).tag == "em"

    def test_range_starting_inside_inline_and_ending_outside(self) -> None:
        tree = parse_html('<p>see <a href="/x">the link</a> now</p>')
        p = tree.children(tree.root)[0]

        wrapper = _wrap(tree, BlockSegment(p, 8, 8))

        assert tree.text_content(wrapper) == "link now"
        assert tree.text_content() == "see the link now"

    def test_segment_leaving_block_is_rejected(self) -> None:
        tree = parse_html("<p>one</p><p>two</p>")
        first = tree.children(tree.root)[0]
        before = tree.signature()

        with pytest.raises(WrapError) as excinfo:
            _wrap(tree, BlockSegment(first, 1, 4))

        assert excinfo.value.block == first
        assert tree.signature() == before

    def test_failure_mid_wrap_rolls_back_block(
        self, fox_tree: RenderedTree, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        p = fox_tree.children(fox_tree.root)[0]
        before = fox_tree.signature()
        node_count = len(fox_tree)

        def broken_wrap_children(*args: object, **kwargs: object) -> int:
            raise StructureError("unexpected shape")

        monkeypatch.setattr(fox_tree, "wrap_children", broken_wrap_children)

        with pytest.raises(WrapError):
            _wrap(fox_tree, BlockSegment(p, 4, 5))

        assert fox_tree.signature() == before
        assert len(fox_tree) == node_count
        assert mutator.find_wrappers(fox_tree) == []


class TestUnwrap:
    def test_unwrap_restores_leaves(self, fox_tree: RenderedTree) -> None:
        p = fox_tree.children(fox_tree.root)[0]
        before = fox_tree.signature()
        wrapper = _wrap(fox_tree, BlockSegment(p, 4, 5))

        mutator.unwrap(fox_tree, wrapper)

        assert fox_tree.signature() == before
        assert len(fox_tree.children(p)) == 1

    def test_unwrap_remerges_inline_fragments(self) -> None:
        tree = parse_html("<p>a <em>bold text</em> b</p>")
        p = tree.children(tree.root)[0]
        before = tree.signature()
        wrapper = _wrap(tree, BlockSegment(p, 3, 6))

        mutator.unwrap(tree, wrapper)

        assert tree.signature() == before
        assert [tree.node(c).tag for c in tree.children(p)] == ["-text", "em", "-text"]

    def test_unwrap_of_non_wrapper_fails(self, fox_tree: RenderedTree) -> None:
        p = fox_tree.children(fox_tree.root)[0]
        with pytest.raises(WrapError):
            mutator.unwrap(fox_tree, p)


class TestBlockSafety:
    def test_one_wrapper_per_block(self, multi_block_tree: RenderedTree) -> None:
        before = multi_block_tree.signature()
        segments = segment_by_block(multi_block_tree, 2, 55)
        wrappers = [
            _wrap(multi_block_tree, segment, span_id="span") for segment in segments
        ]

        assert len(wrappers) == len(segments)
        assert mutator.find_wrappers(multi_block_tree, "span") == wrappers
        for wrapper, segment in zip(wrappers, segments, strict=True):
            assert multi_block_tree.nearest_block(wrapper) == segment.block
            assert not any(
                multi_block_tree.node(n).is_block
                for n in multi_block_tree.walk(wrapper)
            )

        for wrapper in wrappers:
            mutator.unwrap(multi_block_tree, wrapper)
        assert multi_block_tree.signature() == before


class TestRestyle:
    def test_restyle_changes_attributes_only(self, fox_tree: RenderedTree) -> None:
        p = fox_tree.children(fox_tree.root)[0]
        wrapper = _wrap(fox_tree, BlockSegment(p, 4, 5))
        children = fox_tree.children(wrapper)

        mutator.restyle(fox_tree, wrapper, color_name="green", color_css="green")

        node = fox_tree.node(wrapper)
        assert node.attrs[COLOR_ATTR] == "green"
        assert node.attrs["style"] == "background-color: green"
        assert node.attrs[SPAN_ID_ATTR] == "s1"
        assert fox_tree.children(wrapper) == children
