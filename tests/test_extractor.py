import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from pdf_knowledge.ingestion import (
    DocumentKnowledge,
    DocumentMetadata,
    ExtractionError,
    RetryPolicy,
    SectionEntry,
    TransientExtractionError,
    VisionKnowledgeClient,
)
from pdf_knowledge.ingestion.extractor import is_transient


class FakeCompletions:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if not isinstance(response, str):
            response = json.dumps(response)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=response))])


class FakeOpenAI:
    def __init__(self, responses):
        self.completions = FakeCompletions(responses)
        self.chat = SimpleNamespace(completions=self.completions)


def _client(responses, max_attempts=4):
    sleeps = []
    fake = FakeOpenAI(responses)
    client = VisionKnowledgeClient(
        fake,
        model="test-model",
        retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=1.0),
        sleep=sleeps.append,
    )
    return client, fake.completions, sleeps


METADATA = {
    "title": "Safety Policy",
    "summary": "Rules for the plant floor.",
    "briefSummary": "Plant safety rules.",
    "author": None,
    "date": "2024-03-01",
    "category": "Policy",
    "keyPoints": ["Wear helmets", "", "Report incidents"],
}


def test_extract_metadata_maps_payload():
    client, completions, _ = _client([METADATA])
    meta = client.extract_metadata(b"jpeg")

    assert meta.title == "Safety Policy"
    assert meta.brief_summary == "Plant safety rules."
    assert meta.author is None
    assert meta.key_points == ["Wear helmets", "Report incidents"]
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] == {"type": "json_object"}
    image_part = call["messages"][0]["content"][0]
    assert image_part["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_extract_metadata_rejects_missing_fields():
    client, _, _ = _client([{"title": "Only a title"}])
    with pytest.raises(ExtractionError):
        client.extract_metadata(b"jpeg")


def test_extract_page_drops_malformed_items():
    payload = {
        "sections": [{"title": "Scope", "content": "Applies to all staff", "chapter": "1"}, {"content": "no title"}],
        "tables": [
            {"headers": ["Year", "Revenue"], "rows": [[2023, 1.5], ["2024", "2.0"]], "summary": "Revenue by year"},
            {"headers": "oops", "rows": []},
        ],
        "images": [{"description": "Org chart", "type": "chart"}, {"type": "image"}],
        "toc": ["Scope", 3, "Definitions"],
    }
    client, _, _ = _client([payload])
    page = client.extract_page(b"jpeg", 4)

    assert [s.title for s in page.sections] == ["Scope"]
    assert page.tables[0].rows == [["2023", "1.5"], ["2024", "2.0"]]
    assert len(page.tables) == 1
    assert [(i.description, i.image_type) for i in page.images] == [("Org chart", "chart")]
    assert page.toc == ["Scope", "Definitions"]


def test_extract_page_bad_json_is_extraction_error():
    client, _, _ = _client(["not json at all"])
    with pytest.raises(ExtractionError):
        client.extract_page(b"jpeg", 1)


def test_extract_page_non_object_is_extraction_error():
    client, _, _ = _client([json.dumps(["a", "b"])])
    with pytest.raises(ExtractionError):
        client.extract_page(b"jpeg", 1)


def test_transient_errors_are_retried_with_exponential_backoff():
    client, completions, sleeps = _client(
        [
            TransientExtractionError("overloaded"),
            TransientExtractionError("overloaded"),
            TransientExtractionError("overloaded"),
            {"sections": [], "tables": [], "images": [], "toc": []},
        ]
    )
    page = client.extract_page(b"jpeg", 2)

    assert page.is_empty()
    assert len(completions.calls) == 4
    assert sleeps == [1.0, 2.0, 4.0]
    assert RetryPolicy().delays() == [1.0, 2.0, 4.0]


def test_retries_give_up_after_max_attempts():
    client, completions, sleeps = _client([TransientExtractionError("overloaded")] * 4)
    with pytest.raises(TransientExtractionError):
        client.extract_page(b"jpeg", 2)
    assert len(completions.calls) == 4
    assert len(sleeps) == 3


def test_permanent_errors_are_not_retried():
    client, completions, sleeps = _client([ExtractionError("content blocked")])
    with pytest.raises(ExtractionError):
        client.extract_page(b"jpeg", 2)
    assert len(completions.calls) == 1
    assert sleeps == []


def test_is_transient():
    request = httpx.Request("POST", "https://example.invalid/v1/chat/completions")
    assert is_transient(openai.APIConnectionError(request=request))
    assert is_transient(TransientExtractionError("x"))
    assert not is_transient(ExtractionError("x"))
    assert not is_transient(ValueError("x"))


def test_connection_errors_surface_as_extraction_error():
    request = httpx.Request("POST", "https://example.invalid/v1/chat/completions")
    client, completions, _ = _client([openai.APIConnectionError(request=request)] * 2, max_attempts=2)
    with pytest.raises(ExtractionError):
        client.extract_page(b"jpeg", 1)
    assert len(completions.calls) == 2


def test_semantic_search_drops_unknown_documents():
    doc = DocumentKnowledge(
        id="doc-1",
        file_name="policy.pdf",
        file_size=10,
        metadata=DocumentMetadata(title="Policy", summary="", brief_summary=""),
        sections=[SectionEntry(id="s1", title="Helmets", content="Wear them", page_number=3)],
    )
    hits = {
        "results": [
            {"docId": "doc-1", "type": "section", "title": "Helmets", "snippet": "Wear them", "score": 0.9, "pageNumber": 3},
            {"docId": "ghost", "type": "section", "title": "?", "snippet": "?", "score": 0.8},
            {"docId": "doc-1", "title": "missing score", "snippet": ""},
        ]
    }
    client, completions, _ = _client([hits])
    results = client.semantic_search("helmet rules", [doc])

    assert len(results) == 1
    assert results[0].file_name == "policy.pdf"
    assert results[0].page_number == 3
    prompt = completions.calls[0]["messages"][0]["content"]
    assert "helmet rules" in prompt and "doc-1" in prompt


def test_from_settings_requires_key():
    with pytest.raises(ValueError):
        VisionKnowledgeClient.from_settings(api_key=None)
