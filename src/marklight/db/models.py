"""SQLModel tables for local annotation storage.

Two tables: one highlight set per document (spans stored as a JSON list,
rewritten in full on every save) and the global custom colour table.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import BigInteger, Column, DateTime, String
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def _timestamptz_column() -> Any:
    """Create a timezone-aware, non-null timestamp column."""
    return Column(DateTime(timezone=True), nullable=False)


class HighlightSet(SQLModel, table=True):
    """Saved highlights of one document.

    Attributes:
        document_key: Hash of the document's identity (see ``document_key``).
        spans: List of ``{text, color, offset, length}`` objects, in the
            order they were saved.
        saved_at: Save time in epoch milliseconds, as exported.
        updated_at: Row write time.
    """

    __tablename__ = "highlight_set"

    document_key: str = Field(
        sa_column=Column(String(64), primary_key=True, nullable=False),
    )
    spans: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(sa.JSON(), nullable=False),
    )
    saved_at: int = Field(sa_column=Column(BigInteger, nullable=False))
    updated_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )


class CustomColor(SQLModel, table=True):
    """A user-defined highlight colour, shared by all documents.

    Attributes:
        name: Generated adjective-noun slug, the colour's identity.
        rgba: Canonical ``rgba(r, g, b, a)`` string.
    """

    __tablename__ = "custom_color"

    name: str = Field(
        sa_column=Column(String(100), primary_key=True, nullable=False),
    )
    rgba: str = Field(sa_column=Column(String(64), nullable=False))
    created_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamptz_column()
    )
