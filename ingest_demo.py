"""
Example: ingest a real PDF with the vision model + SQLite + Whoosh, then run a search.

Usage:
    GEMINI_API_KEY=... python3 ingest_demo.py --pdf /path/to/report.pdf --query "quarterly revenue"
"""

import argparse
import logging
import os
from pathlib import Path

from pdf_knowledge.ingestion import (
    DocumentIngestionError,
    IngestionPipeline,
    KnowledgeSearchService,
    LoggingProgressSink,
    PyMuPdfPageRenderer,
    RetryPolicy,
    SqlAlchemyDocumentStore,
    VisionKnowledgeClient,
    WhooshKnowledgeIndex,
)
from pdf_knowledge.ingestion.extractor import DEFAULT_MODEL


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        force=True,
    )


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--pdf", required=True, type=Path, help="Path to input PDF")
    parser.add_argument("--db", default=Path("./data/knowledge.db"), type=Path, help="SQLite DB path")
    parser.add_argument("--whoosh-dir", default=Path("./data/whoosh"), type=Path, help="Whoosh index directory")
    parser.add_argument("--provider", default=os.getenv("LLM_PROVIDER", "gemini"), choices=["gemini", "openai"])
    parser.add_argument("--model", default=os.getenv("KNOWLEDGE_MODEL", DEFAULT_MODEL))
    parser.add_argument("--concurrency", default=15, type=int, help="Pages processed in parallel per batch")
    parser.add_argument("--query", default=None, help="Optional search to run after ingestion")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    setup_logging(args.verbose)
    if not args.pdf.exists():
        raise FileNotFoundError(f"PDF not found: {args.pdf}")
    args.db.parent.mkdir(parents=True, exist_ok=True)

    key_var = "GEMINI_API_KEY" if args.provider == "gemini" else "OPENAI_API_KEY"
    client = VisionKnowledgeClient.from_settings(
        api_key=os.getenv(key_var),
        provider=args.provider,
        model=args.model,
        retry_policy=RetryPolicy(),
    )
    store = SqlAlchemyDocumentStore(f"sqlite+pysqlite:///{args.db}")
    index = WhooshKnowledgeIndex(args.whoosh_dir)
    pipeline = IngestionPipeline(
        renderer=PyMuPdfPageRenderer(),
        extractor=client,
        store=store,
        indexer=index,
        concurrency=args.concurrency,
    )

    try:
        outcome = pipeline.ingest(
            args.pdf.read_bytes(),
            args.pdf.name,
            progress=LoggingProgressSink(args.pdf.name),
        )
    except DocumentIngestionError as exc:
        print(exc.user_message)
        raise SystemExit(1)

    doc = outcome.document
    print(f"Document {doc.id}: {doc.metadata.title}")
    print(
        f"{len(doc.sections)} sections, {len(doc.tables)} tables, {len(doc.images)} images, "
        f"{outcome.progress.completed}/{outcome.progress.total} pages, failed pages: {outcome.failed_pages or 'none'}"
    )

    if args.query:
        service = KnowledgeSearchService(store, keyword_index=index, semantic=client)
        for result in service.search(args.query):
            print(f"[{result.score:.2f}] {result.file_name} p.{result.page_number} {result.title}: {result.snippet}")


if __name__ == "__main__":
    main()
