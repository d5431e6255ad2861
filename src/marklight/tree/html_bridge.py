"""Translation boundary between rendered HTML and the node arena.

The host renders markdown to HTML (out of scope here) and hands that HTML
to :func:`parse_html`, which walks it with selectolax and builds a
:class:`RenderedTree`. After the engine has wrapped or unwrapped
highlights, :func:`to_html` serialises the arena back for display.

Text extraction follows the same rules the host's flattening uses, so that
document offsets agree on both sides:

- ``<br>`` becomes a one-character ``"\\n"`` leaf
- script / style / noscript / template are skipped entirely
- whitespace-only text nodes inside containers that cannot hold inline
  content (lists, tables) are indentation and are skipped; elsewhere they
  are skipped only when no inline sibling sits on either side, so the
  space between two inline elements survives
- whitespace runs (including ``\\u00a0``) collapse to a single space,
  except inside ``<pre>``
- existing highlight wrappers are transparent: their children are parsed
  into the wrapper's parent
"""

# Pattern: Functional Core (pure functions from HTML to arena and back)

from __future__ import annotations

import html as html_module
import logging
import re
from typing import Any

from selectolax.lexbor import LexborHTMLParser

from marklight.tree.arena import BR_TAG, TEXT_TAG, RenderedTree
from marklight.tree.marker_constants import SPAN_ID_ATTR, WRAPPER_TAG

logger = logging.getLogger(__name__)

# Elements a highlight wrapper must not straddle.
BLOCK_TAGS: frozenset[str] = frozenset(
    (
        "p",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "blockquote",
        "div",
        "li",
        "ul",
        "ol",
        "table",
        "thead",
        "tbody",
        "tfoot",
        "tr",
        "td",
        "th",
        "section",
        "article",
        "aside",
        "header",
        "footer",
        "nav",
        "main",
        "figure",
        "figcaption",
        "pre",
        "dl",
        "dt",
        "dd",
        "hr",
        "details",
        "summary",
    )
)

# Containers that cannot hold inline content: whitespace-only text directly
# inside them is indentation between tags and is always skipped.
_NO_INLINE_TAGS: frozenset[str] = frozenset(
    ("table", "thead", "tbody", "tfoot", "tr", "ul", "ol", "dl")
)

_STRIP_TAGS = frozenset(("script", "style", "noscript", "template"))

_VOID_TAGS = frozenset(
    ("area", "base", "col", "embed", "hr", "img", "input", "link", "meta", "wbr")
)

# Whitespace pattern matching JS /[\s]+/g, includes \u00a0 (nbsp)
_WHITESPACE_RUN = re.compile(r"[\s\u00a0]+")


def _block_edge(sibling: Any, direction: str) -> bool:
    """True if no inline content lies in *direction* before the next block.

    Comments and stripped elements are looked through.
    """
    while sibling is not None and (
        (sibling.tag != TEXT_TAG and sibling.tag.startswith("-"))
        or sibling.tag in _STRIP_TAGS
    ):
        sibling = getattr(sibling, direction)
    return sibling is None or sibling.tag in BLOCK_TAGS


def parse_html(html: str) -> RenderedTree:
    """Build a node arena from rendered HTML.

    Args:
        html: Rendered document HTML (a fragment or a full page; only the
            body's content is used).

    Returns:
        A fresh tree whose root stands for the content root.
    """
    tree = RenderedTree()
    if not html:
        return tree

    parser = LexborHTMLParser(html)
    body = parser.body
    content_root = body if body else parser.root
    if content_root is None:
        return tree

    def _walk(node: Any, parent: int, preformatted: bool) -> None:
        tag = node.tag

        # Text node: selectolax uses "-text" as the tag
        if tag == TEXT_TAG:
            text = node.text_content
            if not text:
                return
            if not preformatted:
                if _WHITESPACE_RUN.fullmatch(text) and (
                    tree.node(parent).tag in _NO_INLINE_TAGS
                    or (
                        _block_edge(node.prev, "prev")
                        and _block_edge(node.next, "next")
                    )
                ):
                    return
                text = _WHITESPACE_RUN.sub(" ", text)
            tree.add_leaf(parent, text)
            return

        # Comments and doctype nodes ("-comment", "-doctype") carry no text
        if tag.startswith("-") or tag in _STRIP_TAGS:
            return

        if tag == BR_TAG:
            tree.add_leaf(parent, "\n", tag=BR_TAG)
            return

        attrs = {key: value or "" for key, value in node.attributes.items()}

        # Wrappers from a previous session are re-created by the engine
        if tag == WRAPPER_TAG and SPAN_ID_ATTR in attrs:
            container = parent
        else:
            container = tree.add_container(
                parent, tag, is_block=tag in BLOCK_TAGS, attrs=attrs
            )

        child = node.child
        while child is not None:
            _walk(child, container, preformatted or tag == "pre")
            child = child.next

    child = content_root.child
    while child is not None:
        _walk(child, tree.root, False)
        child = child.next

    logger.debug("Parsed %d bytes of HTML into %d nodes", len(html), len(tree))
    return tree


def _format_attrs(attrs: dict[str, str]) -> str:
    return "".join(
        f' {name}="{html_module.escape(value, quote=True)}"'
        for name, value in attrs.items()
    )


def to_html(tree: RenderedTree, node_id: int | None = None) -> str:
    """Serialise a subtree (default: the whole content root) back to HTML.

    The root itself is not emitted; only its children are.
    """
    parts: list[str] = []

    def _emit(current: int) -> None:
        node = tree.node(current)
        if node.tag == TEXT_TAG:
            parts.append(html_module.escape(node.text, quote=False))
            return
        if node.tag == BR_TAG:
            parts.append("<br>")
            return
        parts.append(f"<{node.tag}{_format_attrs(node.attrs)}>")
        if node.tag in _VOID_TAGS:
            return
        for child in node.children:
            _emit(child)
        parts.append(f"</{node.tag}>")

    start = tree.root if node_id is None else node_id
    if start == tree.root:
        for child in tree.node(start).children:
            _emit(child)
    else:
        _emit(start)
    return "".join(parts)
