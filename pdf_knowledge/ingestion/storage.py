from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class StoragePaths:
    root: Path

    def document_dir(self, document_id: str) -> Path:
        return self.root / "documents" / str(document_id)

    def original_pdf_path(self, document_id: str) -> Path:
        return self.document_dir(document_id) / "original.pdf"


class LocalDocumentStorage:
    """
    Manages the filesystem layout for uploaded PDFs so that queued jobs can
    be picked up later, possibly by another process.
    """

    def __init__(self, storage_paths: StoragePaths):
        self.paths = storage_paths

    def ensure_base_dirs(self, document_id: str) -> None:
        self.paths.document_dir(document_id).mkdir(parents=True, exist_ok=True)

    def save_original_pdf(self, document_id: str, data: bytes) -> Path:
        self.ensure_base_dirs(document_id)
        target = self.paths.original_pdf_path(document_id)
        target.write_bytes(data)
        return target

    def find_original_pdf(self, document_id: str) -> Optional[Path]:
        path = self.paths.original_pdf_path(document_id)
        return path if path.exists() else None

    def read_original_pdf(self, document_id: str) -> bytes:
        path = self.find_original_pdf(document_id)
        if path is None:
            raise FileNotFoundError(f"PDF not found for document {document_id}")
        return path.read_bytes()

    def delete_document(self, document_id: str) -> None:
        target = self.paths.document_dir(document_id)
        if target.exists():
            shutil.rmtree(target)
            logger.info("Removed stored files for document %s", document_id)
