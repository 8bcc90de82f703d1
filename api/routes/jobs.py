from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from pdf_knowledge.ingestion import DocumentStore, IngestionJobRecord, JobState, ProgressState

from api.dependencies import get_store

router = APIRouter(prefix="/jobs", tags=["jobs"])


def _job_payload(job: IngestionJobRecord) -> dict:
    progress = ProgressState(completed=job.completed_pages, total=job.total_pages or 0)
    return {
        "id": job.id,
        "document_id": job.document_id,
        "file_name": job.file_name,
        "state": job.state,
        "phase": job.phase,
        "completed_pages": progress.completed,
        "total_pages": job.total_pages,
        "percent": progress.percent,
        "failed_pages": job.failed_pages,
        "error_message": job.error_message,
    }


@router.get("/{job_id}")
def get_job(job_id: str, store: DocumentStore = Depends(get_store)):
    job = store.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _job_payload(job)


@router.post("/{job_id}/cancel")
def cancel_job(job_id: str, store: DocumentStore = Depends(get_store)):
    job = store.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    if job.is_terminal:
        raise HTTPException(status_code=409, detail=f"Job {job_id} is already {job.state.value}")

    # The running job stops before its next batch; pages in flight finish.
    store.update_job(job_id, state=JobState.CANCELLED, error_message="Cancelled by user")
    return {"status": "cancelled", "job_id": job_id, "document_id": job.document_id}
