import pytest

from pdf_knowledge.ingestion import InMemoryDocumentStore


@pytest.fixture
def store():
    return InMemoryDocumentStore()
