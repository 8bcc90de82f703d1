from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse, Response

from pdf_knowledge.ingestion import (
    DocumentKnowledge,
    DocumentStore,
    IngestionError,
    IngestionJobRecord,
    IngestionPipeline,
    JobPhase,
    JobState,
    LocalDocumentStorage,
    RQJobQueue,
    WhooshKnowledgeIndex,
    WorkerConfig,
    export_filename,
    export_markdown,
    export_pdf,
)

from api.dependencies import (
    build_job_id,
    get_index,
    get_job_queue,
    get_pipeline,
    get_storage,
    get_store,
    get_worker_config,
    new_document_id,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


def _summary(doc: DocumentKnowledge) -> dict:
    return {
        "id": doc.id,
        "fileName": doc.file_name,
        "fileSize": doc.file_size,
        "title": doc.metadata.title or doc.file_name,
        "category": doc.metadata.category,
        "briefSummary": doc.metadata.brief_summary,
        "sectionCount": len(doc.sections),
        "tableCount": len(doc.tables),
        "imageCount": len(doc.images),
        "processedAt": doc.processed_at.isoformat(),
    }


def _get_document(store: DocumentStore, document_id: str) -> DocumentKnowledge:
    doc = store.get_document(document_id)
    if not doc:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return doc


@router.get("")
def list_documents(store: DocumentStore = Depends(get_store)):
    return [_summary(doc) for doc in store.list_documents()]


@router.get("/{document_id}")
def get_document(document_id: str, store: DocumentStore = Depends(get_store)):
    return _get_document(store, document_id).to_dict()


@router.delete("/{document_id}")
def delete_document(
    document_id: str,
    store: DocumentStore = Depends(get_store),
    storage: LocalDocumentStorage = Depends(get_storage),
    index: WhooshKnowledgeIndex = Depends(get_index),
):
    if not store.delete_document(document_id):
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    index.delete_document(document_id)
    storage.delete_document(document_id)
    return {"success": True, "id": document_id}


@router.get("/{document_id}/export")
def export_document(document_id: str, format: str = "pdf", store: DocumentStore = Depends(get_store)):
    doc = _get_document(store, document_id)
    if format == "pdf":
        headers = {"Content-Disposition": f'attachment; filename="{export_filename(doc, "pdf")}"'}
        return Response(content=export_pdf(doc), media_type="application/pdf", headers=headers)
    if format in ("markdown", "md"):
        headers = {"Content-Disposition": f'attachment; filename="{export_filename(doc, "md")}"'}
        return PlainTextResponse(content=export_markdown(doc), media_type="text/markdown", headers=headers)
    raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")


@router.post("/upload")
async def upload_document(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    store: DocumentStore = Depends(get_store),
    storage: LocalDocumentStorage = Depends(get_storage),
    pipeline: Optional[IngestionPipeline] = Depends(get_pipeline),
    job_queue: Optional[RQJobQueue] = Depends(get_job_queue),
    worker_config: WorkerConfig = Depends(get_worker_config),
):
    if file.content_type not in ("application/pdf", "application/octet-stream"):
        raise HTTPException(status_code=400, detail="Only PDF uploads are supported")
    payload = await file.read()
    if not payload:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if job_queue is None and pipeline is None:
        raise HTTPException(status_code=503, detail="No model API key is configured for ingestion")

    document_id = new_document_id()
    storage.save_original_pdf(document_id, payload)

    job = IngestionJobRecord(
        id=build_job_id(document_id),
        document_id=document_id,
        file_name=file.filename or "upload.pdf",
        file_size=len(payload),
        state=JobState.QUEUED,
        phase=JobPhase.PRECHECK,
        started_at=datetime.utcnow(),
    )
    store.save_job(job)

    if job_queue is not None:
        job_queue.enqueue_ingestion_job(job.id, worker_config)
    else:
        background_tasks.add_task(_run_job, pipeline, storage, job.id)
    return {"document_id": document_id, "job_id": job.id}


def _run_job(pipeline: IngestionPipeline, storage: LocalDocumentStorage, job_id: str) -> None:
    # Failures are already recorded on the job; the request cycle is over.
    try:
        pipeline.run_job(job_id, storage)
    except IngestionError as exc:
        logger.error("Ingestion job %s failed: %s", job_id, exc)
    except Exception:  # noqa: BLE001
        logger.exception("Ingestion job %s crashed", job_id)
