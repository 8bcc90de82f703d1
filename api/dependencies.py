from __future__ import annotations

import os
import uuid
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import Depends

from pdf_knowledge.ingestion import (
    DEFAULT_CONCURRENCY,
    DocumentStore,
    IngestionPipeline,
    KnowledgeSearchService,
    LocalDocumentStorage,
    PyMuPdfPageRenderer,
    RQJobQueue,
    RetryPolicy,
    SqlAlchemyDocumentStore,
    StoragePaths,
    VisionKnowledgeClient,
    WhooshKnowledgeIndex,
    WorkerConfig,
)
from pdf_knowledge.ingestion.extractor import DEFAULT_MODEL


def _database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite+pysqlite:///./data/knowledge.db")


@lru_cache(maxsize=1)
def get_store() -> DocumentStore:
    return SqlAlchemyDocumentStore(_database_url())


@lru_cache(maxsize=1)
def get_storage() -> LocalDocumentStorage:
    root = Path(os.getenv("DOCUMENT_STORAGE_ROOT", "./data"))
    return LocalDocumentStorage(StoragePaths(root))


@lru_cache(maxsize=1)
def get_index() -> WhooshKnowledgeIndex:
    whoosh_dir = Path(os.getenv("WHOOSH_DIR", "./data/whoosh"))
    return WhooshKnowledgeIndex(whoosh_dir)


def _provider() -> str:
    return os.getenv("LLM_PROVIDER", "gemini").lower()


def _api_key(provider: str) -> Optional[str]:
    return os.getenv("GEMINI_API_KEY" if provider == "gemini" else "OPENAI_API_KEY")


def get_client() -> Optional[VisionKnowledgeClient]:
    """
    None when no API key is configured. Only ingestion and semantic search
    need the model; history and keyword search work without it.
    """
    provider = _provider()
    if not _api_key(provider):
        return None
    return _build_client(provider)


@lru_cache(maxsize=2)
def _build_client(provider: str) -> VisionKnowledgeClient:
    retry_policy = RetryPolicy(
        max_attempts=int(os.getenv("EXTRACTION_MAX_ATTEMPTS", "4")),
        base_delay=float(os.getenv("EXTRACTION_BASE_DELAY", "1.0")),
    )
    return VisionKnowledgeClient.from_settings(
        api_key=_api_key(provider),
        provider=provider,
        model=os.getenv("KNOWLEDGE_MODEL", DEFAULT_MODEL),
        retry_policy=retry_policy,
    )


def get_pipeline(
    store: DocumentStore = Depends(get_store),
    index: WhooshKnowledgeIndex = Depends(get_index),
    client: Optional[VisionKnowledgeClient] = Depends(get_client),
) -> Optional[IngestionPipeline]:
    if client is None:
        return None
    return IngestionPipeline(
        renderer=PyMuPdfPageRenderer(),
        extractor=client,
        store=store,
        indexer=index,
        concurrency=int(os.getenv("INGEST_CONCURRENCY", str(DEFAULT_CONCURRENCY))),
    )


def get_search_service(
    store: DocumentStore = Depends(get_store),
    index: WhooshKnowledgeIndex = Depends(get_index),
    client: Optional[VisionKnowledgeClient] = Depends(get_client),
) -> KnowledgeSearchService:
    return KnowledgeSearchService(store=store, keyword_index=index, semantic=client)


def new_document_id() -> str:
    return str(uuid.uuid4())


def build_job_id(document_id: str) -> str:
    return f"job-{document_id}"


def get_worker_config() -> WorkerConfig:
    provider = _provider()
    return WorkerConfig(
        database_url=_database_url(),
        document_storage_root=os.getenv("DOCUMENT_STORAGE_ROOT", "./data"),
        whoosh_index_dir=os.getenv("WHOOSH_DIR", "./data/whoosh"),
        api_key=_api_key(provider),
        llm_provider=provider,
        model=os.getenv("KNOWLEDGE_MODEL", DEFAULT_MODEL),
        concurrency=int(os.getenv("INGEST_CONCURRENCY", str(DEFAULT_CONCURRENCY))),
        max_attempts=int(os.getenv("EXTRACTION_MAX_ATTEMPTS", "4")),
        base_delay=float(os.getenv("EXTRACTION_BASE_DELAY", "1.0")),
    )


@lru_cache(maxsize=1)
def get_job_queue() -> Optional[RQJobQueue]:
    """
    Jobs go to RQ workers when REDIS_URL is set; otherwise the API process
    runs them itself as background tasks.
    """
    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        return None
    return RQJobQueue(redis_url)
