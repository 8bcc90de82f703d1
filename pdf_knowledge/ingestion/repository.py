from __future__ import annotations

import json
import threading
from copy import deepcopy
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import Column, DateTime, Enum, Integer, String, Text, create_engine, delete, select, update
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .models import (
    DocumentKnowledge,
    IngestionJobRecord,
    JobPhase,
    JobState,
    SearchHistoryRecord,
    SearchResult,
)

Base = declarative_base()

HISTORY_LIMIT = 20


class DocumentModel(Base):
    __tablename__ = "documents"
    id = Column(String, primary_key=True)
    file_name = Column(String)
    data = Column(Text)
    created_at = Column(DateTime, index=True)


class IngestionJobModel(Base):
    __tablename__ = "ingestion_jobs"
    id = Column(String, primary_key=True)
    document_id = Column(String, index=True)
    file_name = Column(String)
    file_size = Column(Integer)
    state = Column(Enum(JobState))
    phase = Column(Enum(JobPhase))
    completed_pages = Column(Integer)
    total_pages = Column(Integer)
    failed_pages = Column(Text)
    error_message = Column(String)
    started_at = Column(DateTime)
    updated_at = Column(DateTime)


class SearchHistoryModel(Base):
    __tablename__ = "search_history"
    id = Column(Integer, primary_key=True, autoincrement=True)
    query = Column(String)
    results = Column(Text)
    timestamp = Column(DateTime, index=True)


class DocumentStore:
    """
    Persistence boundary for the knowledge base. Documents are opaque records
    keyed by id and replaced whole (last write wins). Also tracks ingestion
    jobs and search history.
    """

    # Document operations
    def list_documents(self) -> List[DocumentKnowledge]:
        raise NotImplementedError

    def get_document(self, document_id: str) -> Optional[DocumentKnowledge]:
        raise NotImplementedError

    def upsert_document(self, document: DocumentKnowledge) -> None:
        raise NotImplementedError

    def delete_document(self, document_id: str) -> bool:
        raise NotImplementedError

    # Job operations
    def get_job(self, job_id: str) -> Optional[IngestionJobRecord]:
        raise NotImplementedError

    def save_job(self, job: IngestionJobRecord) -> None:
        raise NotImplementedError

    def update_job(
        self,
        job_id: str,
        state: Optional[JobState] = None,
        phase: Optional[JobPhase] = None,
        completed_pages: Optional[int] = None,
        total_pages: Optional[int] = None,
        failed_pages: Optional[List[int]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    # Search history
    def add_search_history(self, query: str, results: List[SearchResult]) -> SearchHistoryRecord:
        raise NotImplementedError

    def list_search_history(self, limit: int = HISTORY_LIMIT) -> List[SearchHistoryRecord]:
        raise NotImplementedError

    def clear_search_history(self) -> None:
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    """
    In-process store for local runs and tests. Keeps copies so callers cannot
    mutate stored state by accident. A lock guards the dicts because progress
    updates arrive from page worker threads.
    """

    def __init__(self):
        self.documents: Dict[str, DocumentKnowledge] = {}
        self.jobs: Dict[str, IngestionJobRecord] = {}
        self.history: List[SearchHistoryRecord] = []
        self._lock = threading.Lock()

    def _clone(self, obj):
        return deepcopy(obj)

    def list_documents(self) -> List[DocumentKnowledge]:
        with self._lock:
            docs = sorted(self.documents.values(), key=lambda d: d.processed_at, reverse=True)
            return [self._clone(d) for d in docs]

    def get_document(self, document_id: str) -> Optional[DocumentKnowledge]:
        with self._lock:
            doc = self.documents.get(document_id)
            return self._clone(doc) if doc else None

    def upsert_document(self, document: DocumentKnowledge) -> None:
        with self._lock:
            self.documents[document.id] = self._clone(document)

    def delete_document(self, document_id: str) -> bool:
        with self._lock:
            return self.documents.pop(document_id, None) is not None

    def get_job(self, job_id: str) -> Optional[IngestionJobRecord]:
        with self._lock:
            job = self.jobs.get(job_id)
            return self._clone(job) if job else None

    def save_job(self, job: IngestionJobRecord) -> None:
        with self._lock:
            self.jobs[job.id] = self._clone(job)

    def update_job(
        self,
        job_id: str,
        state: Optional[JobState] = None,
        phase: Optional[JobPhase] = None,
        completed_pages: Optional[int] = None,
        total_pages: Optional[int] = None,
        failed_pages: Optional[List[int]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        with self._lock:
            job = self.jobs.get(job_id)
            if not job:
                return
            if state is not None:
                job.state = state
            if phase is not None:
                job.phase = phase
            if completed_pages is not None:
                job.completed_pages = completed_pages
            if total_pages is not None:
                job.total_pages = total_pages
            if failed_pages is not None:
                job.failed_pages = list(failed_pages)
            if error_message is not None:
                job.error_message = error_message
            job.updated_at = datetime.utcnow()

    def add_search_history(self, query: str, results: List[SearchResult]) -> SearchHistoryRecord:
        with self._lock:
            record = SearchHistoryRecord(id=len(self.history) + 1, query=query, results=self._clone(results))
            self.history.append(record)
            return self._clone(record)

    def list_search_history(self, limit: int = HISTORY_LIMIT) -> List[SearchHistoryRecord]:
        with self._lock:
            return [self._clone(r) for r in reversed(self.history[-limit:])]

    def clear_search_history(self) -> None:
        with self._lock:
            self.history.clear()


class SqlAlchemyDocumentStore(DocumentStore):
    """
    SQL-backed store using SQLAlchemy. Works with SQLite/Postgres URLs.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(database_url, future=True)
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def _session(self) -> Session:
        return self.SessionLocal()

    # region Document operations
    def list_documents(self) -> List[DocumentKnowledge]:
        with self._session() as session:
            stmt = select(DocumentModel).order_by(DocumentModel.created_at.desc())
            models = session.execute(stmt).scalars().all()
            return [DocumentKnowledge.from_dict(json.loads(m.data)) for m in models]

    def get_document(self, document_id: str) -> Optional[DocumentKnowledge]:
        with self._session() as session:
            model = session.get(DocumentModel, document_id)
            if not model:
                return None
            return DocumentKnowledge.from_dict(json.loads(model.data))

    def upsert_document(self, document: DocumentKnowledge) -> None:
        with self._session() as session:
            model = DocumentModel(
                id=document.id,
                file_name=document.file_name,
                data=json.dumps(document.to_dict(), ensure_ascii=False),
                created_at=document.processed_at,
            )
            session.merge(model)
            session.commit()

    def delete_document(self, document_id: str) -> bool:
        with self._session() as session:
            result = session.execute(delete(DocumentModel).where(DocumentModel.id == document_id))
            session.commit()
            return bool(result.rowcount)

    # endregion

    # region Job operations
    def get_job(self, job_id: str) -> Optional[IngestionJobRecord]:
        with self._session() as session:
            model = session.get(IngestionJobModel, job_id)
            if not model:
                return None
            return IngestionJobRecord(
                id=model.id,
                document_id=model.document_id,
                file_name=model.file_name,
                file_size=int(model.file_size or 0),
                state=model.state,
                phase=model.phase,
                completed_pages=int(model.completed_pages or 0),
                total_pages=model.total_pages,
                failed_pages=json.loads(model.failed_pages or "[]"),
                error_message=model.error_message,
                started_at=model.started_at,
                updated_at=model.updated_at,
            )

    def save_job(self, job: IngestionJobRecord) -> None:
        with self._session() as session:
            model = IngestionJobModel(
                id=job.id,
                document_id=job.document_id,
                file_name=job.file_name,
                file_size=job.file_size,
                state=job.state,
                phase=job.phase,
                completed_pages=job.completed_pages,
                total_pages=job.total_pages,
                failed_pages=json.dumps(job.failed_pages or []),
                error_message=job.error_message,
                started_at=job.started_at,
                updated_at=job.updated_at,
            )
            session.merge(model)
            session.commit()

    def update_job(
        self,
        job_id: str,
        state: Optional[JobState] = None,
        phase: Optional[JobPhase] = None,
        completed_pages: Optional[int] = None,
        total_pages: Optional[int] = None,
        failed_pages: Optional[List[int]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        with self._session() as session:
            stmt = update(IngestionJobModel).where(IngestionJobModel.id == job_id)
            values = {}
            if state is not None:
                values["state"] = state
            if phase is not None:
                values["phase"] = phase
            if completed_pages is not None:
                values["completed_pages"] = completed_pages
            if total_pages is not None:
                values["total_pages"] = total_pages
            if failed_pages is not None:
                values["failed_pages"] = json.dumps(list(failed_pages))
            if error_message is not None:
                values["error_message"] = error_message
            if values:
                values["updated_at"] = datetime.utcnow()
                session.execute(stmt.values(**values))
                session.commit()

    # endregion

    # region Search history
    def add_search_history(self, query: str, results: List[SearchResult]) -> SearchHistoryRecord:
        with self._session() as session:
            model = SearchHistoryModel(
                query=query,
                results=json.dumps([r.to_dict() for r in results], ensure_ascii=False),
                timestamp=datetime.utcnow(),
            )
            session.add(model)
            session.commit()
            return SearchHistoryRecord(id=model.id, query=model.query, results=list(results), timestamp=model.timestamp)

    def list_search_history(self, limit: int = HISTORY_LIMIT) -> List[SearchHistoryRecord]:
        with self._session() as session:
            stmt = (
                select(SearchHistoryModel)
                .order_by(SearchHistoryModel.timestamp.desc(), SearchHistoryModel.id.desc())
                .limit(limit)
            )
            models = session.execute(stmt).scalars().all()
            return [
                SearchHistoryRecord(
                    id=m.id,
                    query=m.query,
                    results=[SearchResult.from_dict(r) for r in json.loads(m.results or "[]")],
                    timestamp=m.timestamp,
                )
                for m in models
            ]

    def clear_search_history(self) -> None:
        with self._session() as session:
            session.execute(delete(SearchHistoryModel))
            session.commit()

    # endregion
