from datetime import datetime

import pytest

from pdf_knowledge.ingestion import (
    CancellationFlag,
    DocumentIngestionError,
    ExtractionError,
    IngestionJobRecord,
    IngestionPipeline,
    InMemoryDocumentStore,
    JobPhase,
    JobState,
    LocalDocumentStorage,
    StoragePaths,
)

from tests.fakes import FakeExtractor, FakeRenderer


class RecordingIndexer:
    def __init__(self):
        self.indexed = []

    def index_document(self, document):
        self.indexed.append(document.id)

    def delete_document(self, document_id):
        pass


class FailingStore(InMemoryDocumentStore):
    def upsert_document(self, document):
        raise RuntimeError("disk full")


def test_ingest_32_pages_with_failed_page_20(store):
    indexer = RecordingIndexer()
    pipeline = IngestionPipeline(
        renderer=FakeRenderer(page_count=32),
        extractor=FakeExtractor(failing_pages=[20], toc={1: ["Intro", "Results"], 2: ["Results", "Outlook"]}),
        store=store,
        indexer=indexer,
        concurrency=15,
    )
    progress = []

    outcome = pipeline.ingest(b"%PDF", "report.pdf", progress=lambda c, t: progress.append((c, t)))
    doc = outcome.document

    assert outcome.progress.completed == 32 and outcome.progress.total == 32
    assert outcome.failed_pages == [20]
    assert not outcome.cancelled
    assert outcome.persisted
    assert len(doc.sections) == 31 and len(doc.tables) == 31 and len(doc.images) == 31
    assert 20 not in {s.page_number for s in doc.sections + doc.tables + doc.images}
    assert all(s.title == f"Section {s.page_number}" for s in doc.sections)
    assert doc.toc == ["Intro", "Results", "Outlook"]
    assert doc.metadata.title == "Annual Report"
    assert doc.file_size == 4
    assert progress[-1] == (32, 32)
    assert store.get_document(doc.id).to_dict() == doc.to_dict()
    assert indexer.indexed == [doc.id]


def test_metadata_failure_aborts_without_creating_document(store):
    renderer = FakeRenderer(page_count=5)
    extractor = FakeExtractor(metadata_error=ExtractionError("quota exceeded"))
    pipeline = IngestionPipeline(renderer=renderer, extractor=extractor, store=store)

    with pytest.raises(DocumentIngestionError) as excinfo:
        pipeline.ingest(b"%PDF", "report.pdf")

    assert "quota exceeded" in str(excinfo.value)
    assert excinfo.value.user_message
    assert store.list_documents() == []
    assert extractor.pages_seen == []


def test_unreadable_pdf_is_document_level_failure(store):
    class BrokenRenderer(FakeRenderer):
        def count_pages(self, pdf_bytes):
            raise ValueError("EOF marker not found")

    pipeline = IngestionPipeline(renderer=BrokenRenderer(page_count=0), extractor=FakeExtractor(), store=store)
    with pytest.raises(DocumentIngestionError):
        pipeline.ingest(b"junk", "junk.pdf")


def test_render_failure_is_page_level(store):
    pipeline = IngestionPipeline(
        renderer=FakeRenderer(page_count=4, failing_pages=[3]),
        extractor=FakeExtractor(),
        store=store,
        concurrency=2,
    )
    outcome = pipeline.ingest(b"%PDF", "a.pdf")
    assert outcome.failed_pages == [3]
    assert sorted(s.page_number for s in outcome.document.sections) == [1, 2, 4]


def test_cancelled_run_keeps_prefix_and_is_not_persisted(store):
    flag = CancellationFlag()
    extractor = FakeExtractor()

    def progress(completed, total):
        if completed == 1:
            flag.set()

    pipeline = IngestionPipeline(renderer=FakeRenderer(page_count=32), extractor=extractor, store=store, concurrency=15)
    outcome = pipeline.ingest(b"%PDF", "big.pdf", cancellation=flag, progress=progress)

    assert outcome.cancelled
    assert outcome.progress.completed == 15 and outcome.progress.total == 32
    assert sorted(extractor.pages_seen) == list(range(1, 16))
    assert len(outcome.document.sections) == 15
    assert not outcome.persisted
    assert store.list_documents() == []


def test_cancelled_run_persists_when_configured(store):
    flag = CancellationFlag()
    flag.set()
    pipeline = IngestionPipeline(
        renderer=FakeRenderer(page_count=3), extractor=FakeExtractor(), store=store, persist_partial=True
    )
    outcome = pipeline.ingest(b"%PDF", "a.pdf", cancellation=flag)
    assert outcome.cancelled and outcome.persisted
    assert store.get_document(outcome.document.id).sections == []


def test_persistence_failure_is_best_effort():
    pipeline = IngestionPipeline(renderer=FakeRenderer(page_count=2), extractor=FakeExtractor(), store=FailingStore())
    outcome = pipeline.ingest(b"%PDF", "a.pdf")
    assert not outcome.persisted
    assert len(outcome.document.sections) == 2


def _queued_job(store, storage, document_id="doc-1"):
    storage.save_original_pdf(document_id, b"%PDF-1.7")
    job = IngestionJobRecord(
        id=f"job-{document_id}",
        document_id=document_id,
        file_name="report.pdf",
        file_size=8,
        state=JobState.QUEUED,
        phase=JobPhase.PRECHECK,
        started_at=datetime.utcnow(),
    )
    store.save_job(job)
    return job


def test_run_job_completes_and_tracks_progress(tmp_path, store):
    storage = LocalDocumentStorage(StoragePaths(tmp_path / "data"))
    job = _queued_job(store, storage)
    pipeline = IngestionPipeline(renderer=FakeRenderer(page_count=6), extractor=FakeExtractor(failing_pages=[2]), store=store, concurrency=4)

    outcome = pipeline.run_job(job.id, storage)

    updated = store.get_job(job.id)
    assert updated.state == JobState.COMPLETED
    assert updated.phase == JobPhase.INDEXING
    assert updated.completed_pages == 6 and updated.total_pages == 6
    assert updated.failed_pages == [2]
    assert outcome.document.id == "doc-1"
    assert store.get_document("doc-1") is not None


def test_run_job_records_document_level_failure(tmp_path, store):
    storage = LocalDocumentStorage(StoragePaths(tmp_path / "data"))
    job = _queued_job(store, storage)
    pipeline = IngestionPipeline(
        renderer=FakeRenderer(page_count=3),
        extractor=FakeExtractor(metadata_error=RuntimeError("500 from upstream")),
        store=store,
    )

    with pytest.raises(DocumentIngestionError):
        pipeline.run_job(job.id, storage)

    updated = store.get_job(job.id)
    assert updated.state == JobState.FAILED
    assert updated.error_message
    assert store.get_document("doc-1") is None


def test_run_job_observes_cancel_through_job_record(tmp_path, store):
    storage = LocalDocumentStorage(StoragePaths(tmp_path / "data"))
    job = _queued_job(store, storage)

    class CancellingExtractor(FakeExtractor):
        # a user hits "cancel" while the first batch is in flight
        def extract_page(self, image, page_number):
            result = super().extract_page(image, page_number)
            store.update_job(job.id, state=JobState.CANCELLED)
            return result

    pipeline = IngestionPipeline(renderer=FakeRenderer(page_count=9), extractor=CancellingExtractor(), store=store, concurrency=3)
    outcome = pipeline.run_job(job.id, storage)

    assert outcome.cancelled
    assert outcome.progress.completed == 3
    updated = store.get_job(job.id)
    assert updated.state == JobState.CANCELLED
    assert updated.completed_pages == 3


def test_run_job_cancelled_before_start_does_nothing(tmp_path, store):
    storage = LocalDocumentStorage(StoragePaths(tmp_path / "data"))
    job = _queued_job(store, storage)
    store.update_job(job.id, state=JobState.CANCELLED)
    extractor = FakeExtractor()
    pipeline = IngestionPipeline(renderer=FakeRenderer(page_count=3), extractor=extractor, store=store)

    assert pipeline.run_job(job.id, storage) is None
    assert extractor.pages_seen == []


def test_run_job_unknown_job(tmp_path, store):
    storage = LocalDocumentStorage(StoragePaths(tmp_path / "data"))
    pipeline = IngestionPipeline(renderer=FakeRenderer(page_count=1), extractor=FakeExtractor(), store=store)
    with pytest.raises(ValueError):
        pipeline.run_job("missing", storage)
