from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional

from pdf_knowledge.ingestion import (
    DocumentMetadata,
    ImageDraft,
    PageExtraction,
    SectionDraft,
    TableDraft,
)
from pdf_knowledge.ingestion.errors import PageRenderError


class FakeRenderer:
    """Pretends to render: the "image" is the page number as bytes."""

    def __init__(self, page_count: int, failing_pages: Iterable[int] = ()):
        self.page_count = page_count
        self.failing_pages = set(failing_pages)
        self.rendered: List[int] = []
        self._lock = threading.Lock()

    def count_pages(self, pdf_bytes: bytes) -> int:
        return self.page_count

    def render(self, pdf_bytes: bytes, page_number: int) -> bytes:
        with self._lock:
            self.rendered.append(page_number)
        if page_number in self.failing_pages:
            raise PageRenderError(f"cannot render page {page_number}")
        return str(page_number).encode()


class FakeExtractor:
    def __init__(
        self,
        failing_pages: Iterable[int] = (),
        toc: Optional[Dict[int, List[str]]] = None,
        metadata_error: Optional[Exception] = None,
    ):
        self.failing_pages = set(failing_pages)
        self.toc = toc or {}
        self.metadata_error = metadata_error
        self.pages_seen: List[int] = []
        self._lock = threading.Lock()

    def extract_metadata(self, image: bytes) -> DocumentMetadata:
        if self.metadata_error is not None:
            raise self.metadata_error
        return DocumentMetadata(
            title="Annual Report",
            summary="A report.",
            brief_summary="Yearly results.",
            category="Financial Report",
            key_points=["Revenue grew", "Costs fell"],
        )

    def extract_page(self, image: bytes, page_number: int) -> PageExtraction:
        with self._lock:
            self.pages_seen.append(page_number)
        if page_number in self.failing_pages:
            raise RuntimeError(f"model rejected page {page_number}")
        return PageExtraction(
            sections=[SectionDraft(title=f"Section {page_number}", content=f"Body of page {page_number}")],
            tables=[TableDraft(headers=["k", "v"], rows=[["a", "1"]], summary=f"Table {page_number}")],
            images=[ImageDraft(description=f"Chart on page {page_number}", image_type="chart")],
            toc=self.toc.get(page_number, []),
        )

