from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

from .models import DocumentKnowledge, SearchHistoryRecord, SearchResult
from .repository import HISTORY_LIMIT, DocumentStore

logger = logging.getLogger(__name__)

SEARCH_MODES = ("semantic", "keyword")


class SearchNotConfiguredError(RuntimeError):
    """The requested search mode has no backend (no API key or no index)."""


class SemanticSearcher(Protocol):
    def semantic_search(self, query: str, documents: Sequence[DocumentKnowledge]) -> List[SearchResult]:
        ...


class KeywordSearcher(Protocol):
    def search(self, query_str: str, limit: int = 10) -> List[SearchResult]:
        ...


class KnowledgeSearchService:
    """
    Natural-language search over every stored document. ``semantic`` asks the
    model to rank a trimmed view of the knowledge base; ``keyword`` queries
    the local Whoosh index. Each search is recorded in the history.
    """

    def __init__(
        self,
        store: DocumentStore,
        keyword_index: Optional[KeywordSearcher] = None,
        semantic: Optional[SemanticSearcher] = None,
    ):
        self.store = store
        self.keyword_index = keyword_index
        self.semantic = semantic

    def search(self, query: str, mode: str = "semantic", limit: int = 20) -> List[SearchResult]:
        query = (query or "").strip()
        if not query:
            raise ValueError("Query must not be empty")
        if mode not in SEARCH_MODES:
            raise ValueError(f"Unknown search mode '{mode}', expected one of {', '.join(SEARCH_MODES)}")

        if mode == "semantic":
            results = self._semantic(query)
        else:
            results = self._keyword(query, limit)

        results = sorted(results, key=lambda r: r.score, reverse=True)[:limit]
        self.store.add_search_history(query, results)
        logger.info("Search '%s' (%s) returned %s results", query, mode, len(results))
        return results

    def history(self, limit: int = HISTORY_LIMIT) -> List[SearchHistoryRecord]:
        return self.store.list_search_history(limit=limit)

    def clear_history(self) -> None:
        self.store.clear_search_history()

    def _semantic(self, query: str) -> List[SearchResult]:
        if self.semantic is None:
            raise SearchNotConfiguredError("Semantic search is not configured: no model API key")
        documents = self.store.list_documents()
        if not documents:
            return []
        return self.semantic.semantic_search(query, documents)

    def _keyword(self, query: str, limit: int) -> List[SearchResult]:
        if self.keyword_index is None:
            raise SearchNotConfiguredError("Keyword search index is not configured")
        known = {doc.id for doc in self.store.list_documents()}
        return [r for r in self.keyword_index.search(query, limit=limit) if r.doc_id in known]
