"""Wrapper element constants for highlight decorations.

A highlight is visible as one ``<mark>`` wrapper per block it crosses.
The wrapper carries the span id and colour name so wrappers can be found
again by id, and so serialised HTML can be parsed back without losing the
wrappers' identity.

Shared between:
- tree/html_bridge.py (parsing and serialising wrappers)
- engine/mutator.py (creating, restyling and removing wrappers)
"""

from __future__ import annotations

WRAPPER_TAG = "mark"
WRAPPER_CLASS = "md-highlight"
SPAN_ID_ATTR = "data-hl-id"
COLOR_ATTR = "data-color"
STYLE_TEMPLATE = "background-color: {}"
