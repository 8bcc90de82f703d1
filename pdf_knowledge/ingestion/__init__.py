"""
Ingestion subsystem exports.
"""

from .aggregator import DocumentAggregator, merge_toc
from .cancellation import CancellationFlag, RepositoryCancellationFlag
from .errors import (
    DocumentIngestionError,
    ExtractionError,
    IngestionError,
    PageRenderError,
    TransientExtractionError,
)
from .export import export_filename, export_markdown, export_pdf
from .extractor import RetryPolicy, VisionKnowledgeClient
from .indexing import KnowledgeIndex, NoopIndexer, WhooshKnowledgeIndex
from .job_queue import RQJobQueue, WorkerConfig, run_ingestion_job
from .models import (
    DocumentKnowledge,
    DocumentMetadata,
    ImageDraft,
    ImageEntry,
    IngestionJobRecord,
    JobPhase,
    JobState,
    PageExtraction,
    PageResult,
    ProgressState,
    SearchHistoryRecord,
    SearchResult,
    SectionDraft,
    SectionEntry,
    TableDraft,
    TableEntry,
)
from .pipeline import IngestionOutcome, IngestionPipeline
from .progress import LoggingProgressSink, ProgressTracker, RepositoryProgressSink
from .renderer import PageRenderer, PyMuPdfPageRenderer
from .repository import DocumentStore, InMemoryDocumentStore, SqlAlchemyDocumentStore
from .scheduler import DEFAULT_CONCURRENCY, BatchScheduler, ScheduleReport, partition_batches
from .search import KnowledgeSearchService, SearchNotConfiguredError
from .storage import LocalDocumentStorage, StoragePaths

__all__ = [
    "BatchScheduler",
    "CancellationFlag",
    "DEFAULT_CONCURRENCY",
    "DocumentAggregator",
    "DocumentIngestionError",
    "DocumentKnowledge",
    "DocumentMetadata",
    "DocumentStore",
    "ExtractionError",
    "ImageDraft",
    "ImageEntry",
    "InMemoryDocumentStore",
    "IngestionError",
    "IngestionJobRecord",
    "IngestionOutcome",
    "IngestionPipeline",
    "JobPhase",
    "JobState",
    "KnowledgeIndex",
    "KnowledgeSearchService",
    "LocalDocumentStorage",
    "LoggingProgressSink",
    "NoopIndexer",
    "PageExtraction",
    "PageRenderError",
    "PageRenderer",
    "PageResult",
    "ProgressState",
    "ProgressTracker",
    "PyMuPdfPageRenderer",
    "RQJobQueue",
    "RepositoryCancellationFlag",
    "RepositoryProgressSink",
    "RetryPolicy",
    "ScheduleReport",
    "SearchHistoryRecord",
    "SearchNotConfiguredError",
    "SearchResult",
    "SectionDraft",
    "SectionEntry",
    "SqlAlchemyDocumentStore",
    "StoragePaths",
    "TableDraft",
    "TableEntry",
    "TransientExtractionError",
    "VisionKnowledgeClient",
    "WhooshKnowledgeIndex",
    "WorkerConfig",
    "export_filename",
    "export_markdown",
    "export_pdf",
    "merge_toc",
    "partition_batches",
    "run_ingestion_job",
]
