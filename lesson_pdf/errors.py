"""Error taxonomy for the lesson PDF pipeline.

Row-level anomalies (missing cells, blank cells) are not errors; the
extractor drops those rows silently. Only document-level emptiness and
rendering-engine failures surface to the caller.
"""

from __future__ import annotations


class LessonPdfError(Exception):
    """Base class for pipeline errors surfaced to the HTTP layer."""


class EmptyExtractionError(LessonPdfError):
    """The payload was well-formed but no card yielded a usable row."""

    def __init__(self, message: str = "No rows extracted from provided HTML.") -> None:
        super().__init__(message)


# Name used by the normalizer contract.
EmptyDocumentError = EmptyExtractionError


class RenderFailure(LessonPdfError):
    """The rendering engine failed to produce PDF bytes.

    The message is opaque; the underlying exception is chained
    via ``__cause__`` and logged where it is caught.
    """

    def __init__(self, message: str = "PDF generation failed") -> None:
        super().__init__(message)
