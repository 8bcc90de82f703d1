from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

from .aggregator import DocumentAggregator
from .cancellation import Cancellation, CancellationFlag, RepositoryCancellationFlag
from .errors import DocumentIngestionError
from .extractor import MetadataExtractor, PageExtractor
from .indexing import KnowledgeIndex, NoopIndexer
from .models import DocumentKnowledge, DocumentMetadata, JobPhase, JobState, PageResult, ProgressState
from .progress import CompositeProgressSink, LoggingProgressSink, ProgressSink, RepositoryProgressSink
from .renderer import PageRenderer
from .repository import DocumentStore
from .scheduler import DEFAULT_CONCURRENCY, BatchScheduler
from .storage import LocalDocumentStorage

logger = logging.getLogger(__name__)

PhaseCallback = Callable[[JobPhase], None]


class KnowledgeExtractor(PageExtractor, MetadataExtractor, Protocol):
    pass


@dataclass
class IngestionOutcome:
    document: DocumentKnowledge
    progress: ProgressState
    cancelled: bool = False
    failed_pages: List[int] = field(default_factory=list)
    persisted: bool = False


class IngestionPipeline:
    """
    Turns one PDF into a DocumentKnowledge record: page-1 metadata first,
    then every page through the batch scheduler, then persistence and
    indexing of the finalized document.

    A metadata failure aborts the run before any document exists. Page
    failures only leave that page empty. Saving and indexing are best
    effort and never undo the in-memory result.
    """

    def __init__(
        self,
        renderer: PageRenderer,
        extractor: KnowledgeExtractor,
        store: DocumentStore,
        indexer: Optional[KnowledgeIndex] = None,
        concurrency: int = DEFAULT_CONCURRENCY,
        persist_partial: bool = False,
    ):
        self.renderer = renderer
        self.extractor = extractor
        self.store = store
        self.indexer = indexer or NoopIndexer()
        self.scheduler = BatchScheduler(concurrency=concurrency)
        self.persist_partial = persist_partial

    def ingest(
        self,
        pdf_bytes: bytes,
        file_name: str,
        document_id: Optional[str] = None,
        cancellation: Optional[Cancellation] = None,
        progress: Optional[ProgressSink] = None,
        on_phase: Optional[PhaseCallback] = None,
    ) -> IngestionOutcome:
        cancellation = cancellation or CancellationFlag()
        on_phase = on_phase or (lambda phase: None)

        page_count = self._count_pages(pdf_bytes, file_name)
        on_phase(JobPhase.METADATA)
        metadata = self._extract_metadata(pdf_bytes, file_name)

        document = DocumentKnowledge(
            id=document_id or str(uuid.uuid4()),
            file_name=file_name,
            file_size=len(pdf_bytes),
            metadata=metadata,
        )
        aggregator = DocumentAggregator(document)
        logger.info("Ingesting %s (%s pages) as document %s", file_name, page_count, document.id)

        def process(page_number: int) -> PageResult:
            image = self.renderer.render(pdf_bytes, page_number)
            extraction = self.extractor.extract_page(image, page_number)
            aggregator.merge(page_number, extraction)
            return PageResult(page_number=page_number, success=True, extraction=extraction)

        on_phase(JobPhase.PAGES)
        report = self.scheduler.run(range(1, page_count + 1), process, cancellation, on_progress=progress)

        final = aggregator.finalize()
        outcome = IngestionOutcome(
            document=final,
            progress=ProgressState(completed=report.completed, total=page_count),
            cancelled=report.cancelled,
            failed_pages=report.failed_pages,
        )
        if report.failed_pages:
            logger.warning("Document %s finished with failed pages %s", final.id, report.failed_pages)

        if report.cancelled and not self.persist_partial:
            logger.info("Ingestion of %s cancelled after %s/%s pages", final.id, report.completed, page_count)
            return outcome

        on_phase(JobPhase.PERSISTING)
        outcome.persisted = self._persist(final)
        on_phase(JobPhase.INDEXING)
        self._index(final)
        return outcome

    def run_job(self, job_id: str, storage: LocalDocumentStorage) -> Optional[IngestionOutcome]:
        """
        Drive a stored ingestion job to a terminal state. Progress and
        cancellation go through the job record so API callers can observe
        and stop the run. Returns None when the job was cancelled before it
        started.
        """
        job = self.store.get_job(job_id)
        if not job:
            raise ValueError(f"Ingestion job {job_id} not found")

        cancellation = RepositoryCancellationFlag(self.store, job_id)
        if cancellation.is_set():
            logger.info("Job %s cancelled before it started", job_id)
            return None
        if job.is_terminal:
            raise ValueError(f"Ingestion job {job_id} is already {job.state.value}")

        progress = CompositeProgressSink(
            [RepositoryProgressSink(self.store, job_id), LoggingProgressSink(f"job {job_id}")]
        )
        try:
            self.store.update_job(job_id, state=JobState.RUNNING, phase=JobPhase.PRECHECK)
            pdf_bytes = storage.read_original_pdf(job.document_id)
            outcome = self.ingest(
                pdf_bytes,
                job.file_name,
                document_id=job.document_id,
                cancellation=cancellation,
                progress=progress,
                on_phase=lambda phase: self.store.update_job(job_id, phase=phase),
            )
        except DocumentIngestionError as exc:
            self.store.update_job(job_id, state=JobState.FAILED, error_message=exc.user_message)
            raise
        except Exception as exc:  # noqa: BLE001
            self.store.update_job(job_id, state=JobState.FAILED, error_message=str(exc))
            raise

        self.store.update_job(
            job_id,
            state=JobState.CANCELLED if outcome.cancelled else JobState.COMPLETED,
            completed_pages=outcome.progress.completed,
            total_pages=outcome.progress.total,
            failed_pages=outcome.failed_pages,
        )
        return outcome

    def _count_pages(self, pdf_bytes: bytes, file_name: str) -> int:
        try:
            page_count = self.renderer.count_pages(pdf_bytes)
        except Exception as exc:
            raise DocumentIngestionError(
                f"Could not read {file_name}: {exc}",
                user_message="Indexing failed. The file is not a readable PDF.",
            ) from exc
        if not page_count:
            raise DocumentIngestionError(
                f"{file_name} has no pages",
                user_message="Indexing failed. The PDF has no pages.",
            )
        return page_count

    def _extract_metadata(self, pdf_bytes: bytes, file_name: str) -> DocumentMetadata:
        try:
            first_page = self.renderer.render(pdf_bytes, 1)
            return self.extractor.extract_metadata(first_page)
        except Exception as exc:
            logger.error("Metadata extraction failed for %s: %s", file_name, exc)
            raise DocumentIngestionError(
                f"Metadata extraction failed for {file_name}: {exc}",
                user_message="Indexing failed. API or Memory limit exceeded.",
            ) from exc

    def _persist(self, document: DocumentKnowledge) -> bool:
        try:
            self.store.upsert_document(document)
        except Exception:  # noqa: BLE001
            logger.exception("Saving document %s failed; keeping in-memory result", document.id)
            return False
        return True

    def _index(self, document: DocumentKnowledge) -> None:
        try:
            self.indexer.index_document(document)
        except Exception:  # noqa: BLE001
            logger.exception("Indexing document %s failed", document.id)
