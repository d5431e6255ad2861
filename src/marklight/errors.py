"""Exception hierarchy for the annotation engine.

Only the low-level modules (tree, indexer, mutator) raise these. The
registry and the engine facade catch them, roll back, and log, so host
code never sees an annotation failure.
"""

from __future__ import annotations


class AnnotationError(Exception):
    """Base class for all annotation engine errors."""


class OffsetError(AnnotationError, ValueError):
    """A document offset or text position lies outside the indexed content."""


class StaleIndexError(AnnotationError):
    """A text index was queried after its tree was mutated or replaced."""


class StructureError(AnnotationError):
    """The tree does not have the shape an operation expects."""


class WrapError(AnnotationError):
    """Wrapping or unwrapping a highlight failed and was rolled back.

    Attributes:
        block: Id of the block whose subtree was restored.
    """

    def __init__(self, message: str, block: int | None = None) -> None:
        super().__init__(message)
        self.block = block
