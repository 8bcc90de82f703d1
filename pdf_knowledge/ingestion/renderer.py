from __future__ import annotations

import logging
import threading
from io import BytesIO
from typing import Protocol

import fitz  # PyMuPDF
from pypdf import PdfReader

from .errors import PageRenderError

logger = logging.getLogger(__name__)

# MuPDF contexts are not thread-safe; page workers render one at a time.
_MUPDF_LOCK = threading.Lock()


class PageRenderer(Protocol):
    def count_pages(self, pdf_bytes: bytes) -> int:
        ...

    def render(self, pdf_bytes: bytes, page_number: int) -> bytes:
        ...


class PyMuPdfPageRenderer:
    """
    Renders single PDF pages to JPEG for the vision model. The scale keeps
    the longest side within ``max_dimension`` so request payloads stay small
    while text remains legible.
    """

    def __init__(self, scale: float = 1.5, max_dimension: int = 2000, jpeg_quality: int = 80):
        self.scale = scale
        self.max_dimension = max_dimension
        self.jpeg_quality = jpeg_quality

    def count_pages(self, pdf_bytes: bytes) -> int:
        reader = PdfReader(BytesIO(pdf_bytes))
        return len(reader.pages)

    def render(self, pdf_bytes: bytes, page_number: int) -> bytes:
        with _MUPDF_LOCK:
            try:
                doc = fitz.open(stream=pdf_bytes, filetype="pdf")
            except Exception as exc:
                raise PageRenderError(f"Could not open PDF to render page {page_number}: {exc}") from exc
            try:
                if page_number < 1 or page_number > doc.page_count:
                    raise PageRenderError(f"Page {page_number} out of range (1..{doc.page_count})")
                page = doc.load_page(page_number - 1)
                scale = self._scale_for(page.rect.width, page.rect.height)
                pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale))
                return pix.tobytes("jpeg", jpg_quality=self.jpeg_quality)
            except PageRenderError:
                raise
            except Exception as exc:
                raise PageRenderError(f"Rendering page {page_number} failed: {exc}") from exc
            finally:
                doc.close()

    def _scale_for(self, width: float, height: float) -> float:
        longest = max(width, height)
        if longest * self.scale > self.max_dimension:
            return self.max_dimension / longest
        return self.scale
