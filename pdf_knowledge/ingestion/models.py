from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class JobPhase(str, Enum):
    PRECHECK = "precheck"
    METADATA = "metadata"
    PAGES = "pages"
    PERSISTING = "persisting"
    INDEXING = "indexing"


TERMINAL_JOB_STATES = (JobState.COMPLETED, JobState.CANCELLED, JobState.FAILED)

IMAGE_TYPES = ("image", "chart")


@dataclass
class DocumentMetadata:
    title: str
    summary: str
    brief_summary: str
    author: Optional[str] = None
    date: Optional[str] = None
    category: Optional[str] = None
    key_points: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "briefSummary": self.brief_summary,
            "author": self.author,
            "date": self.date,
            "category": self.category,
            "keyPoints": list(self.key_points),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentMetadata":
        return cls(
            title=data.get("title") or "",
            summary=data.get("summary") or "",
            brief_summary=data.get("briefSummary") or "",
            author=data.get("author"),
            date=data.get("date"),
            category=data.get("category"),
            key_points=list(data.get("keyPoints") or []),
        )


@dataclass
class SectionDraft:
    title: str
    content: str
    chapter: Optional[str] = None


@dataclass
class TableDraft:
    headers: List[str]
    rows: List[List[str]]
    summary: str


@dataclass
class ImageDraft:
    description: str
    image_type: str = "image"


@dataclass
class PageExtraction:
    """
    One page's extracted knowledge before it is stamped with ids and a page
    number by the aggregator.
    """

    sections: List[SectionDraft] = field(default_factory=list)
    tables: List[TableDraft] = field(default_factory=list)
    images: List[ImageDraft] = field(default_factory=list)
    toc: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.sections or self.tables or self.images or self.toc)


@dataclass
class SectionEntry:
    id: str
    title: str
    content: str
    page_number: int
    chapter: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"id": self.id, "title": self.title, "content": self.content, "pageNumber": self.page_number}
        if self.chapter:
            data["chapter"] = self.chapter
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SectionEntry":
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            content=data.get("content") or "",
            page_number=int(data.get("pageNumber") or 0),
            chapter=data.get("chapter"),
        )


@dataclass
class TableEntry:
    id: str
    headers: List[str]
    rows: List[List[str]]
    summary: str
    page_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "headers": list(self.headers),
            "rows": [list(r) for r in self.rows],
            "summary": self.summary,
            "pageNumber": self.page_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TableEntry":
        return cls(
            id=data["id"],
            headers=list(data.get("headers") or []),
            rows=[list(r) for r in data.get("rows") or []],
            summary=data.get("summary") or "",
            page_number=int(data.get("pageNumber") or 0),
        )


@dataclass
class ImageEntry:
    id: str
    description: str
    page_number: int
    image_type: str = "image"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "description": self.description, "pageNumber": self.page_number, "type": self.image_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageEntry":
        return cls(
            id=data["id"],
            description=data.get("description") or "",
            page_number=int(data.get("pageNumber") or 0),
            image_type=data.get("type") or "image",
        )


@dataclass
class DocumentKnowledge:
    id: str
    file_name: str
    file_size: int
    metadata: DocumentMetadata
    sections: List[SectionEntry] = field(default_factory=list)
    tables: List[TableEntry] = field(default_factory=list)
    images: List[ImageEntry] = field(default_factory=list)
    toc: List[str] = field(default_factory=list)
    processed_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """
        Opaque JSON record persisted by the document store. Keys follow the
        record format the HTTP clients already consume.
        """
        return {
            "id": self.id,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "metadata": self.metadata.to_dict(),
            "sections": [s.to_dict() for s in self.sections],
            "tables": [t.to_dict() for t in self.tables],
            "images": [i.to_dict() for i in self.images],
            "toc": list(self.toc),
            "processedAt": self.processed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentKnowledge":
        processed_at = data.get("processedAt")
        return cls(
            id=data["id"],
            file_name=data.get("fileName") or "",
            file_size=int(data.get("fileSize") or 0),
            metadata=DocumentMetadata.from_dict(data.get("metadata") or {}),
            sections=[SectionEntry.from_dict(s) for s in data.get("sections") or []],
            tables=[TableEntry.from_dict(t) for t in data.get("tables") or []],
            images=[ImageEntry.from_dict(i) for i in data.get("images") or []],
            toc=list(data.get("toc") or []),
            processed_at=datetime.fromisoformat(processed_at) if processed_at else datetime.utcnow(),
        )


@dataclass
class PageResult:
    page_number: int
    success: bool
    extraction: PageExtraction = field(default_factory=PageExtraction)
    error: Optional[str] = None

    @classmethod
    def failed(cls, page_number: int, error: str) -> "PageResult":
        return cls(page_number=page_number, success=False, extraction=PageExtraction(), error=error)


@dataclass(frozen=True)
class ProgressState:
    completed: int
    total: int

    @property
    def percent(self) -> int:
        if not self.total:
            return 0
        return round(self.completed * 100 / self.total)


@dataclass
class IngestionJobRecord:
    id: str
    document_id: str
    file_name: str
    state: JobState
    phase: JobPhase
    file_size: int = 0
    completed_pages: int = 0
    total_pages: Optional[int] = None
    failed_pages: List[int] = field(default_factory=list)
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_JOB_STATES


@dataclass
class SearchResult:
    doc_id: str
    file_name: str
    result_type: str
    title: str
    snippet: str
    score: float
    page_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "docId": self.doc_id,
            "fileName": self.file_name,
            "type": self.result_type,
            "title": self.title,
            "snippet": self.snippet,
            "score": self.score,
            "pageNumber": self.page_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SearchResult":
        page_number = data.get("pageNumber")
        return cls(
            doc_id=data.get("docId") or "",
            file_name=data.get("fileName") or "",
            result_type=data.get("type") or "section",
            title=data.get("title") or "",
            snippet=data.get("snippet") or "",
            score=float(data.get("score") or 0.0),
            page_number=int(page_number) if page_number is not None else None,
        )


@dataclass
class SearchHistoryRecord:
    id: int
    query: str
    results: List[SearchResult]
    timestamp: datetime = field(default_factory=datetime.utcnow)
