"""Knowledge ingestion from local document directories."""

from jyoti.ingestion.ingester import (
    IngestionReport,
    KnowledgeIngester,
    chunk_text,
    detect_mode,
    read_document,
)

__all__ = [
    "IngestionReport",
    "KnowledgeIngester",
    "chunk_text",
    "detect_mode",
    "read_document",
]
