"""Knowledge ingestion: files on disk to embedded chunks in the knowledge store.

Reads ``.md``, ``.txt`` and ``.json`` files from one directory, splits them
into overlapping word windows, detects each file's knowledge mode, embeds
the chunks in batches and upserts them. Chunk ids are derived from the
source name, position and content, so re-ingesting the same files is a
no-op.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from jyoti.models import GURU_DOC_TYPE, KnowledgeChunk, KnowledgeMode
from jyoti.observability.tracing import record_counter, trace_operation

if TYPE_CHECKING:
    from jyoti.retrieval.embeddings import EmbeddingProvider
    from jyoti.retrieval.vector_store import KnowledgeStore

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".md", ".txt", ".json")
CHUNK_WORDS = 600
CHUNK_OVERLAP_WORDS = 100
BATCH_SIZE = 10

# First match wins; filename and content are both searched.
_MODE_KEYWORDS: tuple[tuple[KnowledgeMode, tuple[str, ...], tuple[str, ...]], ...] = (
    (KnowledgeMode.CAREER, ("career",), ("career",)),
    (KnowledgeMode.RELATIONSHIP, ("relationship",), ("relationship", "love")),
    (KnowledgeMode.HEALTH, ("health",), ("health",)),
    (KnowledgeMode.FINANCE, ("finance",), ("money", "finance")),
    (KnowledgeMode.REMEDY, ("remedy",), ("remedy", "mantra")),
    (KnowledgeMode.NAKSHATRA, ("nakshatra",), ("nakshatra",)),
    (KnowledgeMode.DASHA, ("dasha",), ("dasha",)),
    (KnowledgeMode.COMPATIBILITY, ("compatibility",), ("compatibility",)),
)


def detect_mode(filename: str, content: str) -> KnowledgeMode:
    """Guess a document's knowledge mode from its filename and text.

    Examples:
        >>> detect_mode("vedic_mantras.md", "Chant this mantra daily")
        <KnowledgeMode.REMEDY: 'remedy'>
        >>> detect_mode("notes.txt", "Saturn transits")
        <KnowledgeMode.GENERAL: 'general'>
    """
    lowered_name = filename.lower()
    lowered_content = content.lower()
    for mode, name_keywords, content_keywords in _MODE_KEYWORDS:
        if any(k in lowered_name for k in name_keywords) or any(
            k in lowered_content for k in content_keywords
        ):
            return mode
    return KnowledgeMode.GENERAL


def read_document(path: Path) -> str:
    """Text content of a supported file.

    JSON documents contribute their ``content`` field, else ``text``, else
    the whole document pretty-printed.

    Raises:
        ValueError: If the extension is not supported
    """
    suffix = path.suffix.lower()
    raw = path.read_text(encoding="utf-8")
    if suffix in (".md", ".txt"):
        return raw
    if suffix == ".json":
        document = json.loads(raw)
        if isinstance(document, dict):
            for key in ("content", "text"):
                value = document.get(key)
                if isinstance(value, str) and value.strip():
                    return value
        return json.dumps(document, indent=2, ensure_ascii=False)
    raise ValueError(f"Unsupported file type: {path.name}")


@dataclass(frozen=True)
class PendingChunk:
    """A chunk of document text waiting for its embedding."""

    id: str
    text: str
    mode: KnowledgeMode
    source: str
    title: str


def chunk_text(
    text: str,
    source: str,
    mode: KnowledgeMode,
    chunk_words: int = CHUNK_WORDS,
    overlap_words: int = CHUNK_OVERLAP_WORDS,
) -> list[PendingChunk]:
    """Split ``text`` into overlapping word windows.

    Args:
        text: Document text
        source: Source filename (also used for the title and id)
        mode: Knowledge mode of the document
        chunk_words: Words per chunk
        overlap_words: Words shared by consecutive chunks

    Returns:
        Chunks in document order

    Raises:
        ValueError: If the overlap is not smaller than the chunk size
    """
    if overlap_words >= chunk_words:
        raise ValueError("overlap_words must be smaller than chunk_words")

    words = text.split()
    title = Path(source).stem
    step = chunk_words - overlap_words
    chunks: list[PendingChunk] = []

    for start in range(0, len(words), step):
        window = " ".join(words[start : start + chunk_words])
        if not window:
            continue
        digest = hashlib.sha256(window.encode("utf-8")).hexdigest()[:12]
        chunks.append(
            PendingChunk(
                id=f"{source}_{start}_{digest}",
                text=window,
                mode=mode,
                source=source,
                title=title,
            )
        )
        if start + chunk_words >= len(words):
            break
    return chunks


@dataclass
class IngestionReport:
    """Counts for one ingestion run."""

    files_found: int = 0
    files_processed: int = 0
    files_failed: list[str] = field(default_factory=list)
    chunks_generated: int = 0
    chunks_stored: int = 0
    batches_failed: int = 0
    chunks_by_mode: dict[str, int] = field(default_factory=dict)


class KnowledgeIngester:
    """Embeds document chunks and upserts them into the knowledge store."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: KnowledgeStore,
        batch_size: int = BATCH_SIZE,
        chunk_words: int = CHUNK_WORDS,
        overlap_words: int = CHUNK_OVERLAP_WORDS,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.batch_size = batch_size
        self.chunk_words = chunk_words
        self.overlap_words = overlap_words

    @staticmethod
    def discover_files(source_dir: Path) -> list[Path]:
        """Supported files directly inside ``source_dir``, sorted by name."""
        return sorted(
            path
            for path in source_dir.iterdir()
            if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
        )

    def process_file(self, path: Path, mode: KnowledgeMode | None = None) -> list[PendingChunk]:
        content = read_document(path)
        detected = mode or detect_mode(path.name, content)
        chunks = chunk_text(content, path.name, detected, self.chunk_words, self.overlap_words)
        logger.info(f"  Processed {path.name}: {len(chunks)} chunks, mode: {detected.value}")
        return chunks

    async def ingest(
        self,
        source_dir: str | Path,
        mode: KnowledgeMode | str | None = None,
    ) -> IngestionReport:
        """Ingest every supported file in ``source_dir``.

        Per-file read errors and per-batch embedding or store errors are
        logged and skipped; the run continues with the rest.

        Args:
            source_dir: Directory holding the knowledge files
            mode: Force one knowledge mode instead of detecting it per file

        Returns:
            IngestionReport

        Raises:
            FileNotFoundError: If ``source_dir`` is not a directory
            InvalidModeError: If ``mode`` is not a known knowledge mode
        """
        directory = Path(source_dir)
        if not directory.is_dir():
            raise FileNotFoundError(f"Source directory not found: {directory}")
        forced_mode = KnowledgeMode.parse(mode) if mode is not None else None

        report = IngestionReport()
        files = self.discover_files(directory)
        report.files_found = len(files)
        logger.info(f"🚀 Starting knowledge ingestion from: {directory} ({len(files)} files)")

        if not files:
            logger.warning(f"⚠️ No supported files found in {directory}")
            return report

        pending: list[PendingChunk] = []
        for path in files:
            try:
                pending.extend(self.process_file(path, forced_mode))
                report.files_processed += 1
            except (OSError, UnicodeDecodeError, ValueError) as e:
                logger.error(f"❌ Error processing {path.name}: {e}")
                report.files_failed.append(path.name)

        report.chunks_generated = len(pending)
        if not pending:
            logger.warning("⚠️ No chunks generated")
            return report

        with trace_operation("ingestion.run", {"chunks": len(pending)}):
            for batch_number, start in enumerate(range(0, len(pending), self.batch_size), start=1):
                batch = pending[start : start + self.batch_size]
                try:
                    stored = await self._store_batch(batch)
                except Exception as e:
                    report.batches_failed += 1
                    logger.error(f"❌ Error storing batch {batch_number}: {type(e).__name__}: {e}")
                    record_counter("ingestion.batch_failures")
                    continue

                report.chunks_stored += stored
                for chunk in batch:
                    report.chunks_by_mode[chunk.mode.value] = (
                        report.chunks_by_mode.get(chunk.mode.value, 0) + 1
                    )
                logger.info(
                    f"  ✅ Stored batch {batch_number}: {stored}/{len(batch)} new chunks "
                    f"({start + len(batch)}/{len(pending)})"
                )

        logger.info(
            f"✨ Ingestion complete: {report.chunks_stored} new chunks from "
            f"{report.files_processed}/{report.files_found} files"
        )
        return report

    async def _store_batch(self, batch: list[PendingChunk]) -> int:
        embeddings = await self.embedder.embed_batch([chunk.text for chunk in batch])
        chunks = [
            KnowledgeChunk(
                id=chunk.id,
                content=chunk.text,
                mode=chunk.mode,
                title=chunk.title,
                source=chunk.source,
                doc_type=GURU_DOC_TYPE,
                embedding=embedding,
            )
            for chunk, embedding in zip(batch, embeddings, strict=True)
        ]
        return await self.store.upsert(chunks)
