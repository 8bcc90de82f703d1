from __future__ import annotations

import base64
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

import openai
from pydantic import ValidationError
from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import ExtractionError, TransientExtractionError
from .models import (
    DocumentKnowledge,
    DocumentMetadata,
    ImageDraft,
    PageExtraction,
    SearchResult,
    SectionDraft,
    TableDraft,
)
from .schemas import (
    ImagePayload,
    MetadataPayload,
    SearchHitPayload,
    SectionPayload,
    TablePayload,
    clean_strings,
    parse_items,
)

logger = logging.getLogger(__name__)

# OpenAI-compatible endpoint exposed by the Gemini API.
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-3-flash-preview"

SEARCH_SNIPPET_CHARS = 300

METADATA_PROMPT = """This is the first page of an enterprise document.
Extract high-level document information and answer with a JSON object with the keys
title, summary, briefSummary, author, date, category, keyPoints:
1. title: the official title of the document.
2. summary: a concise executive summary (3-4 sentences).
3. briefSummary: exactly one sentence, max 120 characters, describing the document's core purpose.
4. author: the author or issuing organization (null if not visible).
5. date: the publication or revision date (null if not visible).
6. category: a logical category (e.g. Policy, Technical Manual, Financial Report, Research Paper).
7. keyPoints: 3-5 key points or objectives mentioned in the document intro."""

PAGE_PROMPT = """Analyze this PDF page (Page {page_number}) and extract structured knowledge.
Answer with a JSON object with the keys sections, tables, images, toc.

1. sections: meaningful sections or chapters, each {{"title", "content", "chapter"}}.
2. tables: each {{"headers": [...], "rows": [[...]], "summary"}}. Flatten merged cells and
   multi-level headers by repeating the merged value in every row or column it covers.
   Preserve the original text precisely. The summary describes the table's contents in detail.
3. images: images, charts or diagrams, each {{"description", "type"}} where type is "image" or "chart".
   Transcribe any text inside the visual into the description.
4. toc: table of contents entries present on this page (empty list if none).

Be precise and preserve the semantic hierarchy."""

SEARCH_PROMPT = """Given the query "{query}", find the most relevant pieces of information in this knowledge base.
Answer with a JSON object {{"results": [...]}} where every result has docId, type ("section", "table" or "image"),
title, snippet (brief), score (confidence between 0 and 1) and pageNumber when known.
Context: {context}"""


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, TransientExtractionError):
        return True
    return isinstance(
        exc,
        (openai.APIConnectionError, openai.InternalServerError, openai.RateLimitError),
    )


@dataclass
class RetryPolicy:
    """
    Exponential backoff for transient upstream errors: wait ``base_delay``,
    then double it on every further attempt.
    """

    max_attempts: int = 4
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    def retrying(self, sleep: Callable[[float], None] = time.sleep) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier, max=self.max_delay),
            retry=retry_if_exception(is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=sleep,
            reraise=True,
        )

    def delays(self) -> List[float]:
        """Waits between attempts, for logging and tests."""
        return [
            min(self.base_delay * self.multiplier ** attempt, self.max_delay)
            for attempt in range(self.max_attempts - 1)
        ]


class PageExtractor(Protocol):
    def extract_page(self, image: bytes, page_number: int) -> PageExtraction:
        ...


class MetadataExtractor(Protocol):
    def extract_metadata(self, image: bytes) -> DocumentMetadata:
        ...


class VisionKnowledgeClient:
    """
    Chat-completions client for a multimodal model behind an OpenAI-compatible
    API. Each call is wrapped in the retry policy; callers only see the final
    success or failure.
    """

    def __init__(
        self,
        client: Any,
        model: str = DEFAULT_MODEL,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.model = model
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        api_key: Optional[str],
        provider: str = "gemini",
        model: str = DEFAULT_MODEL,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "VisionKnowledgeClient":
        if not api_key:
            raise ValueError(f"API key for provider '{provider}' is not configured")
        base_url = GEMINI_BASE_URL if provider == "gemini" else None
        client = openai.OpenAI(api_key=api_key, base_url=base_url)
        return cls(client, model=model, retry_policy=retry_policy)

    def extract_metadata(self, image: bytes) -> DocumentMetadata:
        data = self._complete_json(self._image_message(METADATA_PROMPT, image))
        try:
            payload = MetadataPayload.model_validate(data)
        except ValidationError as exc:
            raise ExtractionError(f"Metadata response did not match the expected shape: {exc}") from exc
        return DocumentMetadata(
            title=payload.title,
            summary=payload.summary,
            brief_summary=payload.brief_summary,
            author=payload.author or None,
            date=payload.date or None,
            category=payload.category,
            key_points=clean_strings(payload.key_points),
        )

    def extract_page(self, image: bytes, page_number: int) -> PageExtraction:
        prompt = PAGE_PROMPT.format(page_number=page_number)
        data = self._complete_json(self._image_message(prompt, image))
        if not isinstance(data, dict):
            raise ExtractionError(f"Page {page_number} response is not a JSON object")
        return PageExtraction(
            sections=[
                SectionDraft(title=s.title, content=s.content, chapter=s.chapter)
                for s in parse_items(SectionPayload, data.get("sections"))
            ],
            tables=[
                TableDraft(headers=t.headers, rows=t.rows, summary=t.summary)
                for t in parse_items(TablePayload, data.get("tables"))
            ],
            images=[
                ImageDraft(description=i.description, image_type=i.type)
                for i in parse_items(ImagePayload, data.get("images"))
            ],
            toc=clean_strings(data.get("toc") or []),
        )

    def semantic_search(self, query: str, documents: Sequence[DocumentKnowledge]) -> List[SearchResult]:
        context = json.dumps([self._search_context(doc) for doc in documents], ensure_ascii=False)
        prompt = SEARCH_PROMPT.format(query=query, context=context)
        data = self._complete_json([{"role": "user", "content": prompt}])
        hits = data.get("results") if isinstance(data, dict) else data
        file_names = {doc.id: doc.file_name for doc in documents}
        results: List[SearchResult] = []
        for hit in parse_items(SearchHitPayload, hits):
            if hit.doc_id not in file_names:
                logger.debug("Dropping search hit for unknown document %s", hit.doc_id)
                continue
            results.append(
                SearchResult(
                    doc_id=hit.doc_id,
                    file_name=file_names[hit.doc_id],
                    result_type=hit.type,
                    title=hit.title,
                    snippet=hit.snippet,
                    score=hit.score,
                    page_number=hit.page_number,
                )
            )
        return results

    def _search_context(self, doc: DocumentKnowledge) -> Dict[str, Any]:
        return {
            "id": doc.id,
            "name": doc.file_name,
            "metadata": doc.metadata.to_dict(),
            "sections": [
                {"title": s.title, "content": s.content[:SEARCH_SNIPPET_CHARS], "pageNumber": s.page_number}
                for s in doc.sections
            ],
            "tables": [{"summary": t.summary, "pageNumber": t.page_number} for t in doc.tables],
            "images": [{"description": i.description, "pageNumber": i.page_number} for i in doc.images],
        }

    def _image_message(self, prompt: str, image: bytes) -> List[Dict[str, Any]]:
        encoded = base64.b64encode(image).decode("ascii")
        return [
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded}"}},
                    {"type": "text", "text": prompt},
                ],
            }
        ]

    def _complete_json(self, messages: List[Dict[str, Any]]) -> Any:
        retrying = self.retry_policy.retrying(sleep=self._sleep)
        try:
            response = retrying(self._create, messages)
        except openai.OpenAIError as exc:
            raise ExtractionError(f"Model request failed: {exc}") from exc
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as exc:
            raise ExtractionError("Model response has no message content") from exc
        if not content:
            raise ExtractionError("Model returned an empty response")
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise ExtractionError(f"Model response is not valid JSON: {exc}") from exc

    def _create(self, messages: List[Dict[str, Any]]):
        return self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            response_format={"type": "json_object"},
        )
