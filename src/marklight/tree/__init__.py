"""Rendered text tree: node arena and the HTML translation boundary."""

from marklight.tree.arena import (
    BR_TAG,
    TEXT_TAG,
    NodeId,
    RenderedNode,
    RenderedTree,
)
from marklight.tree.html_bridge import BLOCK_TAGS, parse_html, to_html

__all__ = [
    "BLOCK_TAGS",
    "BR_TAG",
    "TEXT_TAG",
    "NodeId",
    "RenderedNode",
    "RenderedTree",
    "parse_html",
    "to_html",
]
