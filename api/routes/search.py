from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from pdf_knowledge.ingestion import ExtractionError, KnowledgeSearchService, SearchNotConfiguredError

from api.dependencies import get_search_service

router = APIRouter(tags=["search"])


@router.get("/search")
def search(
    query: str,
    mode: str = "semantic",
    limit: int = 20,
    service: KnowledgeSearchService = Depends(get_search_service),
):
    try:
        results = service.search(query, mode=mode, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except SearchNotConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except ExtractionError as exc:
        raise HTTPException(status_code=502, detail=f"Search failed: {exc}")
    return {"query": query.strip(), "mode": mode, "results": [r.to_dict() for r in results]}


@router.get("/history")
def list_history(service: KnowledgeSearchService = Depends(get_search_service)):
    return [
        {
            "id": item.id,
            "query": item.query,
            "results": [r.to_dict() for r in item.results],
            "timestamp": item.timestamp.isoformat() if item.timestamp else None,
        }
        for item in service.history()
    ]


@router.delete("/history")
def clear_history(service: KnowledgeSearchService = Depends(get_search_service)):
    service.clear_history()
    return {"success": True}
