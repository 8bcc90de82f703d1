from __future__ import annotations

import threading
from pathlib import Path
from typing import List, Protocol

from whoosh import index
from whoosh.fields import ID, NUMERIC, TEXT, Schema
from whoosh.qparser import MultifieldParser, OrGroup

from .models import DocumentKnowledge, SearchResult

SNIPPET_CHARS = 200
# Seconds a writer waits for the index lock held by another process.
WRITER_TIMEOUT = 30.0


class KnowledgeIndex(Protocol):
    def index_document(self, document: DocumentKnowledge) -> None:
        ...

    def delete_document(self, document_id: str) -> None:
        ...


class NoopIndexer:
    """
    Default indexer stub. Keeps the pipeline wired without pulling in Whoosh.
    """

    def index_document(self, document: DocumentKnowledge) -> None:
        return None

    def delete_document(self, document_id: str) -> None:
        return None


class WhooshKnowledgeIndex:
    """
    File-system backed Whoosh index with one row per extracted section, table
    and image. Re-indexing a document first deletes its existing rows.
    """

    def __init__(self, index_dir: Path):
        self.index_dir = index_dir
        self.index_dir.mkdir(parents=True, exist_ok=True)
        self.schema = Schema(
            doc_id=ID(stored=True),
            entry_id=ID(stored=True, unique=True),
            entry_type=ID(stored=True),
            file_name=ID(stored=True),
            page_number=NUMERIC(stored=True, sortable=True),
            title=TEXT(stored=True),
            text=TEXT(stored=True),
        )
        self._write_lock = threading.Lock()
        if index.exists_in(self.index_dir):
            self.ix = index.open_dir(self.index_dir)
        else:
            self.ix = index.create_in(self.index_dir, self.schema)

    def index_document(self, document: DocumentKnowledge) -> None:
        with self._write_lock:
            self._index_document(document)

    def _index_document(self, document: DocumentKnowledge) -> None:
        with self.ix.writer(timeout=WRITER_TIMEOUT) as writer:
            writer.delete_by_term("doc_id", document.id)
            for section in document.sections:
                writer.add_document(
                    doc_id=document.id,
                    entry_id=section.id,
                    entry_type="section",
                    file_name=document.file_name,
                    page_number=section.page_number,
                    title=section.title,
                    text=section.content or "",
                )
            for table in document.tables:
                cells = " ".join(" ".join(row) for row in table.rows)
                writer.add_document(
                    doc_id=document.id,
                    entry_id=table.id,
                    entry_type="table",
                    file_name=document.file_name,
                    page_number=table.page_number,
                    title=table.summary[:80] or "Table",
                    text=" ".join([table.summary, " ".join(table.headers), cells]),
                )
            for image in document.images:
                writer.add_document(
                    doc_id=document.id,
                    entry_id=image.id,
                    entry_type="image",
                    file_name=document.file_name,
                    page_number=image.page_number,
                    title=image.image_type.capitalize(),
                    text=image.description,
                )

    def delete_document(self, document_id: str) -> None:
        with self._write_lock:
            with self.ix.writer(timeout=WRITER_TIMEOUT) as writer:
                writer.delete_by_term("doc_id", document_id)

    def search(self, query_str: str, limit: int = 10) -> List[SearchResult]:
        """
        Return plain results so callers are safe after the searcher closes.
        """
        qp = MultifieldParser(["title", "text"], schema=self.schema, group=OrGroup)
        q = qp.parse(query_str)
        with self.ix.searcher() as searcher:
            hits = searcher.search(q, limit=limit)
            results = []
            for hit in hits:
                fields = hit.fields()
                results.append(
                    SearchResult(
                        doc_id=fields.get("doc_id"),
                        file_name=fields.get("file_name") or "",
                        result_type=fields.get("entry_type") or "section",
                        title=fields.get("title") or "",
                        snippet=(fields.get("text") or "")[:SNIPPET_CHARS],
                        score=float(hit.score or 0.0),
                        page_number=fields.get("page_number"),
                    )
                )
            return results
