"""Gateway data models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from jyoti.exceptions import InvalidModeError

GURU_DOC_TYPE = "guru"


class KnowledgeMode(str, Enum):
    """Closed set of knowledge topics a chunk or query belongs to."""

    GENERAL = "general"
    CAREER = "career"
    RELATIONSHIP = "relationship"
    HEALTH = "health"
    FINANCE = "finance"
    REMEDY = "remedy"
    NAKSHATRA = "nakshatra"
    DASHA = "dasha"
    COMPATIBILITY = "compatibility"

    @classmethod
    def parse(cls, value: str | KnowledgeMode) -> KnowledgeMode:
        """Parse a mode name, case-insensitively.

        Raises:
            InvalidModeError: If ``value`` is not a known mode

        Examples:
            >>> KnowledgeMode.parse("Career")
            <KnowledgeMode.CAREER: 'career'>
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidModeError(str(value), [mode.value for mode in cls]) from None


class KnowledgeChunk(BaseModel):
    """Ingested knowledge text with its embedding. Immutable once stored."""

    model_config = {"frozen": True}

    id: str
    content: str = Field(..., min_length=1)
    mode: KnowledgeMode
    title: str | None = None
    source: str | None = None
    doc_type: str = GURU_DOC_TYPE
    embedding: list[float] = Field(default_factory=list)


class ScoredChunk(BaseModel):
    """A retrieved chunk and its cosine similarity to the query."""

    chunk: KnowledgeChunk
    score: float


class RetrievalOutcome(BaseModel):
    """Retrieval result; ``degraded`` when the subsystem could not answer."""

    chunks: list[ScoredChunk] = Field(default_factory=list)
    degraded: bool = False
    reason: str | None = None

    @classmethod
    def degraded_result(cls, reason: str) -> RetrievalOutcome:
        return cls(chunks=[], degraded=True, reason=reason)


__all__ = [
    "GURU_DOC_TYPE",
    "KnowledgeChunk",
    "KnowledgeMode",
    "RetrievalOutcome",
    "ScoredChunk",
]
