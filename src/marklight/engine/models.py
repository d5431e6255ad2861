"""Highlight span types and the persisted highlight record.

``HighlightSpan`` is the in-memory record the registry owns. The pydantic
models describe the durable record written per document:

.. code-block:: json

    {
      "documentKey": "<hash>",
      "spans": [{"text": "...", "color": "yellow", "offset": 4, "length": 5}],
      "savedAt": 1767225600000
    }
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_span_id() -> str:
    return str(uuid4())


@dataclass
class HighlightSpan:
    """One highlight over ``[start, start + length)`` of the flattened text.

    Attributes:
        id: Registry-unique span id (also stamped on every wrapper).
        text: Verbatim snapshot of the covered text when last confirmed.
        color: Colour name (see ``ColorPalette``).
        start: Document offset of the first character.
        length: Number of characters covered.
    """

    id: str
    text: str
    color: str
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length

    def overlaps(self, start: int, end: int) -> bool:
        return self.start < end and start < self.end


def document_key(identity: str | Path) -> str:
    """Return the stable key a document's highlights are stored under.

    Paths are resolved first, so the same file opened through different
    relative paths maps to one key. The key hashes the identity, never the
    content, so edits to the document keep its highlights.
    """
    if isinstance(identity, Path):
        identity = str(identity.expanduser().resolve())
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:32]


def _epoch_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


class SavedSpan(BaseModel):
    """A span as written to storage (no id, no wrapper references)."""

    text: str
    color: str
    offset: int = Field(ge=0)
    length: int = Field(gt=0)

    @classmethod
    def from_span(cls, span: HighlightSpan) -> SavedSpan:
        return cls(
            text=span.text, color=span.color, offset=span.start, length=span.length
        )

    def to_span(self) -> HighlightSpan:
        return HighlightSpan(
            id=new_span_id(),
            text=self.text,
            color=self.color,
            start=self.offset,
            length=self.length,
        )


class PersistedHighlightSet(BaseModel):
    """All highlights of one document, as exported and stored."""

    model_config = ConfigDict(populate_by_name=True)

    document_key: str = Field(alias="documentKey")
    spans: list[SavedSpan] = Field(default_factory=list)
    saved_at: int = Field(default_factory=_epoch_ms, alias="savedAt")
