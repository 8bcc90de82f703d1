from __future__ import annotations

import logging
import threading
import uuid
from copy import deepcopy
from datetime import datetime
from typing import Iterable, List

from .models import (
    IMAGE_TYPES,
    DocumentKnowledge,
    ImageDraft,
    ImageEntry,
    PageExtraction,
    SectionDraft,
    SectionEntry,
    TableDraft,
    TableEntry,
)

logger = logging.getLogger(__name__)


def merge_toc(existing: List[str], fragment: Iterable[str]) -> List[str]:
    """
    Set-union of toc entries, keeping the order in which entries first
    appeared.
    """
    merged = list(existing)
    seen = set(merged)
    for entry in fragment:
        if not isinstance(entry, str):
            continue
        entry = entry.strip()
        if entry and entry not in seen:
            seen.add(entry)
            merged.append(entry)
    return merged


class DocumentAggregator:
    """
    Sole writer of one document's knowledge while its ingestion run is in
    flight. Sibling pages of a batch call ``merge`` concurrently; the lock
    serialises them so no appended entry is lost.
    """

    def __init__(self, document: DocumentKnowledge):
        self._document = document
        self._lock = threading.Lock()

    @property
    def document_id(self) -> str:
        return self._document.id

    def merge(self, page_number: int, extraction: PageExtraction) -> int:
        sections = [self._section(d, page_number) for d in extraction.sections if self._valid_section(d)]
        tables = [self._table(d, page_number) for d in extraction.tables if self._valid_table(d)]
        images = [self._image(d, page_number) for d in extraction.images if self._valid_image(d)]
        skipped = (
            len(extraction.sections) + len(extraction.tables) + len(extraction.images)
            - len(sections) - len(tables) - len(images)
        )
        if skipped:
            logger.debug("Skipped %s malformed entries on page %s of %s", skipped, page_number, self.document_id)

        with self._lock:
            doc = self._document
            doc.sections.extend(sections)
            doc.tables.extend(tables)
            doc.images.extend(images)
            if extraction.toc:
                doc.toc = merge_toc(doc.toc, extraction.toc)
        return len(sections) + len(tables) + len(images)

    def snapshot(self) -> DocumentKnowledge:
        with self._lock:
            return deepcopy(self._document)

    def finalize(self) -> DocumentKnowledge:
        with self._lock:
            self._document.processed_at = datetime.utcnow()
            return deepcopy(self._document)

    def _section(self, draft: SectionDraft, page_number: int) -> SectionEntry:
        return SectionEntry(
            id=str(uuid.uuid4()),
            title=draft.title.strip(),
            content=draft.content or "",
            page_number=page_number,
            chapter=draft.chapter or None,
        )

    def _table(self, draft: TableDraft, page_number: int) -> TableEntry:
        return TableEntry(
            id=str(uuid.uuid4()),
            headers=[str(h) for h in draft.headers],
            rows=[[str(cell) for cell in row] for row in draft.rows],
            summary=draft.summary or "",
            page_number=page_number,
        )

    def _image(self, draft: ImageDraft, page_number: int) -> ImageEntry:
        image_type = draft.image_type if draft.image_type in IMAGE_TYPES else "image"
        return ImageEntry(
            id=str(uuid.uuid4()),
            description=draft.description.strip(),
            page_number=page_number,
            image_type=image_type,
        )

    def _valid_section(self, draft) -> bool:
        return isinstance(draft, SectionDraft) and isinstance(draft.title, str) and bool(draft.title.strip())

    def _valid_table(self, draft) -> bool:
        if not isinstance(draft, TableDraft):
            return False
        if not isinstance(draft.headers, list) or not isinstance(draft.rows, list):
            return False
        return all(isinstance(row, list) for row in draft.rows)

    def _valid_image(self, draft) -> bool:
        return isinstance(draft, ImageDraft) and isinstance(draft.description, str) and bool(draft.description.strip())
