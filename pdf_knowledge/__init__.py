"""
PDF knowledge base core package.

The ingestion subsystem renders PDF pages, asks a multimodal model for the
structured knowledge on each page (sections, tables, images, toc), merges
the results into one document record under bounded page concurrency, and
stores and indexes the finished record for natural-language search.
"""
