"""Database module for marklight.

Provides async SQLModel operations on the local SQLite store.
"""

from __future__ import annotations

from marklight.db.colors import (
    delete_custom_color,
    list_custom_colors,
    save_custom_color,
)
from marklight.db.engine import close_db, get_session, init_db
from marklight.db.highlight_sets import (
    delete_highlight_set,
    get_highlight_set,
    list_highlight_sets,
    save_highlight_set,
)
from marklight.db.models import CustomColor, HighlightSet

__all__ = [
    "CustomColor",
    "HighlightSet",
    "close_db",
    "delete_custom_color",
    "delete_highlight_set",
    "get_highlight_set",
    "get_session",
    "init_db",
    "list_custom_colors",
    "list_highlight_sets",
    "save_custom_color",
    "save_highlight_set",
]
