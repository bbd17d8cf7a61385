"""Knowledge store: DuckDB table of embedded guidance chunks."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import duckdb

from jyoti.models import GURU_DOC_TYPE, KnowledgeChunk, KnowledgeMode, ScoredChunk

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)


class KnowledgeStore:
    """Vector similarity search over ``knowledge_chunks``.

    Chunks are immutable: inserting an id that already exists is a no-op.
    """

    def __init__(self, database_path: str | Path = ":memory:", dimension: int = 384) -> None:
        """Initialize knowledge store.

        Args:
            database_path: DuckDB database path (":memory:" for in-memory)
            dimension: Embedding dimension of the ``FLOAT[n]`` column
        """
        self.db_path = database_path
        self.dimension = dimension
        self.conn: duckdb.DuckDBPyConnection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Initialize database schema."""
        async with self._lock:
            if self.conn is not None:
                return
            self.conn = duckdb.connect(str(self.db_path))

            # dimension is an int, so formatting it into DDL is safe
            self.conn.execute(f"""
                CREATE TABLE IF NOT EXISTS knowledge_chunks (
                    id VARCHAR PRIMARY KEY,
                    title VARCHAR,
                    content TEXT NOT NULL,
                    source VARCHAR,
                    mode VARCHAR NOT NULL,
                    doc_type VARCHAR NOT NULL,
                    embedding FLOAT[{int(self.dimension)}] NOT NULL,
                    content_hash VARCHAR,
                    ingested_at TIMESTAMP
                )
            """)

            logger.info(f"Knowledge store initialized ({self.db_path}, dim={self.dimension})")

    def _require_conn(self) -> duckdb.DuckDBPyConnection:
        if self.conn is None:
            raise RuntimeError("Knowledge store not initialized")
        return self.conn

    async def upsert(self, chunks: Sequence[KnowledgeChunk]) -> int:
        """Insert chunks whose ids are not stored yet.

        Args:
            chunks: Chunks with embeddings of the store's dimension

        Returns:
            Number of chunks actually inserted

        Raises:
            ValueError: If a chunk's embedding has the wrong dimension
        """
        if not chunks:
            return 0

        for chunk in chunks:
            if len(chunk.embedding) != self.dimension:
                raise ValueError(
                    f"Chunk {chunk.id} has embedding dimension {len(chunk.embedding)}, "
                    f"expected {self.dimension}"
                )

        async with self._lock:
            conn = self._require_conn()
            before = conn.execute("SELECT COUNT(*) FROM knowledge_chunks").fetchone()[0]
            now = datetime.now(UTC).replace(tzinfo=None)
            conn.executemany(
                """
                INSERT OR IGNORE INTO knowledge_chunks
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    [
                        chunk.id,
                        chunk.title,
                        chunk.content,
                        chunk.source,
                        chunk.mode.value,
                        chunk.doc_type,
                        chunk.embedding,
                        self._compute_content_hash(chunk.content),
                        now,
                    ]
                    for chunk in chunks
                ],
            )
            after = conn.execute("SELECT COUNT(*) FROM knowledge_chunks").fetchone()[0]
            return after - before

    async def search(
        self,
        query_embedding: list[float],
        mode: KnowledgeMode,
        doc_type: str = GURU_DOC_TYPE,
        limit: int = 5,
    ) -> list[ScoredChunk]:
        """Top-``limit`` chunks of one mode by cosine similarity, highest first.

        Args:
            query_embedding: Query vector
            mode: Knowledge mode filter
            doc_type: Document type filter
            limit: Maximum results to return

        Returns:
            Scored chunks ordered by descending similarity
        """
        async with self._lock:
            conn = self._require_conn()
            rows = conn.execute(
                f"""
                SELECT
                    id,
                    title,
                    content,
                    source,
                    mode,
                    doc_type,
                    array_cosine_similarity(embedding, ?::FLOAT[{int(self.dimension)}]) AS score
                FROM knowledge_chunks
                WHERE mode = ? AND doc_type = ?
                ORDER BY score DESC, id
                LIMIT ?
                """,
                [query_embedding, mode.value, doc_type, limit],
            ).fetchall()

        return [
            ScoredChunk(
                chunk=KnowledgeChunk(
                    id=r[0],
                    title=r[1],
                    content=r[2],
                    source=r[3],
                    mode=KnowledgeMode(r[4]),
                    doc_type=r[5],
                ),
                score=float(r[6]) if r[6] is not None else 0.0,
            )
            for r in rows
        ]

    async def count(self, mode: KnowledgeMode | None = None) -> int:
        """Number of stored chunks, optionally for one mode."""
        async with self._lock:
            conn = self._require_conn()
            if mode is None:
                row = conn.execute("SELECT COUNT(*) FROM knowledge_chunks").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM knowledge_chunks WHERE mode = ?", [mode.value]
                ).fetchone()
            return int(row[0])

    async def count_by_mode(self) -> dict[str, int]:
        async with self._lock:
            conn = self._require_conn()
            rows = conn.execute(
                "SELECT mode, COUNT(*) FROM knowledge_chunks GROUP BY mode ORDER BY mode"
            ).fetchall()
            return {mode: int(count) for mode, count in rows}

    @staticmethod
    def _compute_content_hash(content: str) -> str:
        """Compute SHA-256 hash of content."""
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    @property
    def is_initialized(self) -> bool:
        return self.conn is not None

    async def close(self) -> None:
        """Close database connection."""
        async with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None
                logger.info("Knowledge store closed")
