"""Repository for the global custom colour table."""

from __future__ import annotations

from sqlmodel import select

from marklight.db.engine import get_session
from marklight.db.models import CustomColor


async def list_custom_colors() -> dict[str, str]:
    """Return every custom colour as ``name -> rgba``, oldest first."""
    async with get_session() as session:
        result = await session.exec(
            select(CustomColor).order_by(CustomColor.created_at)  # type: ignore[arg-type]
        )
        return {color.name: color.rgba for color in result.all()}


async def save_custom_color(name: str, rgba: str) -> CustomColor:
    """Create or update a custom colour (upsert on name)."""
    async with get_session() as session:
        color = await session.get(CustomColor, name)
        if color:
            color.rgba = rgba
        else:
            color = CustomColor(name=name, rgba=rgba)
            session.add(color)
        await session.flush()
        await session.refresh(color)
        return color


async def delete_custom_color(name: str) -> bool:
    """Delete a custom colour.

    Returns:
        True if the colour was deleted, False if it did not exist.
    """
    async with get_session() as session:
        color = await session.get(CustomColor, name)
        if color is None:
            return False
        await session.delete(color)
        await session.flush()
        return True
