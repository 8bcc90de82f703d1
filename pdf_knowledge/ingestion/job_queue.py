from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from redis import Redis
from rq import Queue, Worker

from .extractor import DEFAULT_MODEL, RetryPolicy, VisionKnowledgeClient
from .indexing import WhooshKnowledgeIndex
from .pipeline import IngestionOutcome, IngestionPipeline
from .renderer import PyMuPdfPageRenderer
from .repository import SqlAlchemyDocumentStore
from .scheduler import DEFAULT_CONCURRENCY
from .storage import LocalDocumentStorage, StoragePaths


@dataclass
class WorkerConfig:
    database_url: str
    document_storage_root: str
    whoosh_index_dir: str
    api_key: Optional[str]
    llm_provider: str = "gemini"
    model: str = DEFAULT_MODEL
    concurrency: int = DEFAULT_CONCURRENCY
    max_attempts: int = 4
    base_delay: float = 1.0


def build_pipeline(config: WorkerConfig) -> IngestionPipeline:
    store = SqlAlchemyDocumentStore(config.database_url)
    client = VisionKnowledgeClient.from_settings(
        api_key=config.api_key,
        provider=config.llm_provider,
        model=config.model,
        retry_policy=RetryPolicy(max_attempts=config.max_attempts, base_delay=config.base_delay),
    )
    return IngestionPipeline(
        renderer=PyMuPdfPageRenderer(),
        extractor=client,
        store=store,
        indexer=WhooshKnowledgeIndex(Path(config.whoosh_index_dir)),
        concurrency=config.concurrency,
    )


def run_ingestion_job(job_id: str, config: WorkerConfig) -> Optional[IngestionOutcome]:
    """
    RQ task entrypoint. Creates all required components and executes an
    ingestion job.
    """
    pipeline = build_pipeline(config)
    storage = LocalDocumentStorage(StoragePaths(Path(config.document_storage_root)))
    return pipeline.run_job(job_id, storage)


class RQJobQueue:
    """
    Redis-backed job queue using RQ. The queue pushes jobs to Redis and workers
    can be started by calling `work()` in a dedicated process.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379/0", queue_name: str = "ingestion-jobs"):
        self.redis = Redis.from_url(redis_url)
        self.queue = Queue(queue_name, connection=self.redis)

    def enqueue_ingestion_job(self, job_id: str, config: WorkerConfig):
        """
        Enqueue an ingestion job. RQ job_id is set to the ingestion job id for
        idempotency. Retries belong to the extraction client, not the queue.
        """
        return self.queue.enqueue(run_ingestion_job, job_id, config, job_id=job_id, job_timeout=3600)

    def work(self):
        worker = Worker([self.queue], connection=self.redis)
        worker.work(with_scheduler=True)
