"""Highlight annotation engine.

Public entry point is :class:`AnnotationEngine`; the modules below it are
usable on their own for tooling and tests.
"""

from marklight.engine.annotator import AnnotationEngine, HighlightEvent
from marklight.engine.indexer import TextIndex, TextPosition, build_index
from marklight.engine.models import (
    HighlightSpan,
    PersistedHighlightSet,
    SavedSpan,
    document_key,
)
from marklight.engine.palette import BUILTIN_COLORS, DEFAULT_COLOR, ColorPalette
from marklight.engine.persistence import PersistenceAdapter, get_persistence_adapter
from marklight.engine.registry import SpanRegistry
from marklight.engine.restore import RestoreReport, locate_span, restore_spans
from marklight.engine.segmenter import BlockSegment, segment_by_block
from marklight.engine.selection import HostPoint, HostRange, SelectionBridge

__all__ = [
    "BUILTIN_COLORS",
    "DEFAULT_COLOR",
    "AnnotationEngine",
    "BlockSegment",
    "ColorPalette",
    "HighlightEvent",
    "HighlightSpan",
    "HostPoint",
    "HostRange",
    "PersistedHighlightSet",
    "PersistenceAdapter",
    "RestoreReport",
    "SavedSpan",
    "SelectionBridge",
    "SpanRegistry",
    "TextIndex",
    "TextPosition",
    "build_index",
    "document_key",
    "get_persistence_adapter",
    "locate_span",
    "restore_spans",
    "segment_by_block",
]
