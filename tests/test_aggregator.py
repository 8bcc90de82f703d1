from concurrent.futures import ThreadPoolExecutor

from pdf_knowledge.ingestion import (
    DocumentAggregator,
    DocumentKnowledge,
    DocumentMetadata,
    ImageDraft,
    PageExtraction,
    SectionDraft,
    TableDraft,
    merge_toc,
)


def _document() -> DocumentKnowledge:
    return DocumentKnowledge(
        id="doc-1",
        file_name="report.pdf",
        file_size=1024,
        metadata=DocumentMetadata(title="Report", summary="s", brief_summary="b"),
    )


def test_merge_toc_keeps_first_appearance_order():
    assert merge_toc(["A", "B"], ["B", "C"]) == ["A", "B", "C"]
    assert merge_toc([], ["X", "X", " ", "Y"]) == ["X", "Y"]


def test_toc_fragments_merge_across_pages():
    aggregator = DocumentAggregator(_document())
    aggregator.merge(1, PageExtraction(toc=["A", "B"]))
    aggregator.merge(2, PageExtraction(toc=["B", "C"]))
    assert aggregator.snapshot().toc == ["A", "B", "C"]


def test_merge_stamps_page_number_and_unique_ids():
    aggregator = DocumentAggregator(_document())
    added = aggregator.merge(
        7,
        PageExtraction(
            sections=[SectionDraft(title="Intro", content="Hello", chapter="1")],
            tables=[TableDraft(headers=["a"], rows=[["1"], ["2"]], summary="numbers")],
            images=[ImageDraft(description="A chart", image_type="chart"), ImageDraft(description="Logo", image_type="photo")],
        ),
    )
    doc = aggregator.finalize()

    assert added == 4
    assert [s.page_number for s in doc.sections] == [7]
    assert doc.sections[0].chapter == "1"
    assert doc.tables[0].rows == [["1"], ["2"]]
    assert [i.image_type for i in doc.images] == ["chart", "image"]
    ids = [e.id for e in doc.sections + doc.tables + doc.images]
    assert len(set(ids)) == len(ids)


def test_malformed_drafts_are_skipped():
    aggregator = DocumentAggregator(_document())
    added = aggregator.merge(
        2,
        PageExtraction(
            sections=[SectionDraft(title="  ", content="no title"), {"title": "raw dict"}],
            tables=[TableDraft(headers=["a"], rows=["not-a-row"], summary="bad")],
            images=[ImageDraft(description="")],
        ),
    )
    doc = aggregator.snapshot()
    assert added == 0
    assert doc.sections == [] and doc.tables == [] and doc.images == []


def test_concurrent_merges_lose_nothing():
    aggregator = DocumentAggregator(_document())

    def merge(page_number):
        return aggregator.merge(page_number, PageExtraction(sections=[SectionDraft(title=f"S{page_number}", content="")]))

    with ThreadPoolExecutor(max_workers=15) as executor:
        list(executor.map(merge, range(1, 16)))

    doc = aggregator.finalize()
    assert len(doc.sections) == 15
    assert len({s.id for s in doc.sections}) == 15
    assert sorted(s.page_number for s in doc.sections) == list(range(1, 16))
    assert all(s.title == f"S{s.page_number}" for s in doc.sections)


def test_snapshot_is_detached_from_live_state():
    aggregator = DocumentAggregator(_document())
    snap = aggregator.snapshot()
    aggregator.merge(1, PageExtraction(sections=[SectionDraft(title="Late", content="")]))
    assert snap.sections == []
    assert len(aggregator.snapshot().sections) == 1
