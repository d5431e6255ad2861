"""Highlight colour palette.

A colour reference is a plain name. Names resolve either to one of the
fixed palette entries or to a custom entry the user added; custom entries
are persisted in the global colour table (``marklight.db.colors``).

Custom names are derived deterministically from the rgba string via the
``coolname`` library, so adding the same colour twice yields the same
name on every machine (e.g. "crystal-peccary").
"""

from __future__ import annotations

import hashlib
import logging
import pathlib
import random
import re

from coolname import RandomGenerator
from coolname.loader import load_config

logger = logging.getLogger(__name__)

# Load coolname config once at module level.
_COOLNAME_CONFIG = load_config(
    pathlib.Path(__import__("coolname").__file__).parent / "data"
)

DEFAULT_COLOR = "yellow"

# Fixed palette (translucent so text stays readable in both themes)
BUILTIN_COLORS: dict[str, str] = {
    "yellow": "rgba(255, 235, 59, 0.45)",
    "green": "rgba(76, 175, 80, 0.35)",
    "blue": "rgba(33, 150, 243, 0.30)",
    "pink": "rgba(233, 30, 99, 0.30)",
    "orange": "rgba(255, 152, 0, 0.35)",
    "purple": "rgba(156, 39, 176, 0.30)",
}

_RGBA_PATTERN = re.compile(
    r"^rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*(0|1|0?\.\d+|1\.0+)\s*)?\)$"
)


def normalise_rgba(value: str) -> str:
    """Return *value* in canonical ``rgba(r, g, b, a)`` form.

    Raises:
        ValueError: If *value* is not an ``rgb()``/``rgba()`` colour with
            channels in range.
    """
    match = _RGBA_PATTERN.match(value.strip())
    if match is None:
        msg = f"Not an rgba colour: {value!r}"
        raise ValueError(msg)
    r, g, b = (int(channel) for channel in match.group(1, 2, 3))
    if max(r, g, b) > 255:
        msg = f"Colour channel out of range: {value!r}"
        raise ValueError(msg)
    alpha = match.group(4) or "1"
    return f"rgba({r}, {g}, {b}, {float(alpha):g})"


def custom_color_name(rgba: str) -> str:
    """Derive a deterministic adjective-noun slug from an rgba string.

    Seeds a ``coolname.RandomGenerator`` with a SHA-256 hash of the
    canonical rgba string.
    """
    seed = int.from_bytes(hashlib.sha256(rgba.encode()).digest()[:8])
    gen = RandomGenerator(_COOLNAME_CONFIG, random.Random(seed))  # nosec B311: deterministic slug, not crypto
    return gen.generate_slug(2)


class ColorPalette:
    """Fixed palette plus the user's custom colours.

    Attributes:
        default: Name that unknown or deleted colours fall back to.
    """

    def __init__(
        self,
        custom: dict[str, str] | None = None,
        default: str = DEFAULT_COLOR,
    ) -> None:
        self._custom: dict[str, str] = dict(custom or {})
        if default not in BUILTIN_COLORS and default not in self._custom:
            logger.warning(
                "Unknown default colour %r, using %r", default, DEFAULT_COLOR
            )
            default = DEFAULT_COLOR
        self.default = default

    def __contains__(self, name: object) -> bool:
        return name in BUILTIN_COLORS or name in self._custom

    def names(self) -> list[str]:
        return [*BUILTIN_COLORS, *self._custom]

    def custom_colors(self) -> dict[str, str]:
        return dict(self._custom)

    def is_custom(self, name: str) -> bool:
        return name in self._custom

    def normalise(self, name: str | None) -> str:
        """Return *name* if the palette knows it, else the default name."""
        if name is not None and name in self:
            return name
        logger.debug("Colour %r not in palette, using %r", name, self.default)
        return self.default

    def resolve(self, name: str | None) -> str:
        """Return the CSS colour for *name* (default colour if unknown)."""
        name = self.normalise(name)
        return BUILTIN_COLORS.get(name) or self._custom[name]

    def add_custom(self, rgba: str) -> str:
        """Add a custom colour and return its generated name.

        Adding a colour that is already present returns the existing name.

        Raises:
            ValueError: If *rgba* is not a valid colour.
        """
        canonical = normalise_rgba(rgba)
        for name, existing in self._custom.items():
            if existing == canonical:
                return name
        base = custom_color_name(canonical)
        name = base
        suffix = 2
        while name in self:
            name = f"{base}-{suffix}"
            suffix += 1
        self._custom[name] = canonical
        logger.info("Added custom colour %s = %s", name, canonical)
        return name

    def add_named(self, name: str, rgba: str) -> None:
        """Register a stored custom colour under its saved name.

        Raises:
            ValueError: If *name* is a built-in colour or *rgba* is invalid.
        """
        if name in BUILTIN_COLORS:
            msg = f"Cannot redefine built-in colour {name!r}"
            raise ValueError(msg)
        self._custom[name] = normalise_rgba(rgba)

    def remove_custom(self, name: str) -> bool:
        """Remove a custom colour. Built-in colours cannot be removed.

        Returns:
            True if the colour was found and removed.
        """
        if self._custom.pop(name, None) is None:
            return False
        if self.default == name:
            self.default = DEFAULT_COLOR
        logger.info("Removed custom colour %s", name)
        return True
