from __future__ import annotations

from typing import Optional


class IngestionError(Exception):
    """Base class for errors raised while ingesting a document."""


class DocumentIngestionError(IngestionError):
    """
    Fatal to a whole ingestion run: the PDF could not be opened or the
    page-1 metadata could not be extracted. No document is stored.
    """

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or "Indexing failed. The document could not be processed."


class PageRenderError(IngestionError):
    pass


class ExtractionError(IngestionError):
    pass


class TransientExtractionError(ExtractionError):
    """Upstream hiccup worth retrying (5xx, dropped connection)."""
