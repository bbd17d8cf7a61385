"""Knowledge retrieval with graceful degradation.

``Retriever.retrieve`` never raises for dependency failures: a disabled
subsystem, an embedding failure, a store failure, an internal cancellation or
an open circuit all produce ``RetrievalOutcome(chunks=[], degraded=True)``.
Only an unknown mode raises, and it does so before any I/O.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from jyoti.models import GURU_DOC_TYPE, KnowledgeMode, RetrievalOutcome
from jyoti.observability.prometheus_metrics import observe_retrieval_latency
from jyoti.observability.tracing import trace_operation
from jyoti.resilience.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerError

if TYPE_CHECKING:
    from jyoti.config import RetrievalConfig
    from jyoti.models import ScoredChunk
    from jyoti.observability.security_logging import SecurityLogger
    from jyoti.retrieval.embeddings import EmbeddingProvider
    from jyoti.retrieval.vector_store import KnowledgeStore

logger = logging.getLogger(__name__)


def build_query_text(query_text: str, context_hint: str | None, hint_chars: int = 500) -> str:
    """Query text for embedding, with an optional truncated context hint."""
    if not context_hint or not context_hint.strip():
        return query_text
    return f"{query_text}\n\n{context_hint.strip()[:hint_chars]}"


class Retriever:
    """Embeds a query and searches the knowledge store under a mode filter.

    Attributes:
        enabled: When False every call returns a degraded outcome
        top_k: Default number of chunks to return
        breaker: Circuit breaker guarding the embed + search call
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        store: KnowledgeStore,
        security_logger: SecurityLogger | None = None,
        enabled: bool = True,
        top_k: int = 5,
        context_hint_chars: int = 500,
        doc_type: str = GURU_DOC_TYPE,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.security_logger = security_logger
        self.enabled = enabled
        self.top_k = top_k
        self.context_hint_chars = context_hint_chars
        self.doc_type = doc_type
        self.breaker = breaker or CircuitBreaker("retrieval")

    @classmethod
    def from_config(
        cls,
        config: RetrievalConfig,
        embedder: EmbeddingProvider,
        store: KnowledgeStore,
        security_logger: SecurityLogger | None = None,
    ) -> Retriever:
        breaker = CircuitBreaker(
            "retrieval",
            CircuitBreakerConfig(
                failure_threshold=config.failure_threshold,
                recovery_timeout=config.recovery_timeout_seconds,
            ),
        )
        return cls(
            embedder,
            store,
            security_logger=security_logger,
            enabled=config.enabled,
            top_k=config.top_k,
            context_hint_chars=config.context_hint_chars,
            doc_type=config.doc_type,
            breaker=breaker,
        )

    async def retrieve(
        self,
        query_text: str,
        mode: KnowledgeMode | str,
        top_k: int | None = None,
        context_hint: str | None = None,
        fingerprint: str | None = None,
    ) -> RetrievalOutcome:
        """Retrieve the most similar chunks for ``query_text``.

        Args:
            query_text: Sanitized user message
            mode: Knowledge mode to filter on
            top_k: Number of chunks (defaults to the configured top-K)
            context_hint: Optional short context appended to the query
            fingerprint: Caller fingerprint, for degradation events

        Returns:
            RetrievalOutcome, highest score first

        Raises:
            InvalidModeError: If ``mode`` is unknown (raised before any I/O)
        """
        mode = KnowledgeMode.parse(mode)
        limit = top_k or self.top_k

        if not self.enabled:
            return RetrievalOutcome.degraded_result("disabled")

        with observe_retrieval_latency(mode.value) as record_status:
            try:
                with trace_operation("retrieval.search", {"mode": mode.value, "top_k": limit}):
                    chunks = await self.breaker.call(
                        self._search,
                        build_query_text(query_text, context_hint, self.context_hint_chars),
                        mode,
                        limit,
                    )
            except CircuitBreakerError:
                record_status("degraded")
                return self._degrade(mode, "circuit_open", fingerprint)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if task is not None and task.cancelling():
                    raise
                record_status("degraded")
                return self._degrade(mode, "cancelled", fingerprint)
            except Exception as e:
                record_status("degraded")
                logger.warning(f"Retrieval failed for mode '{mode.value}': {type(e).__name__}: {e}")
                return self._degrade(mode, type(e).__name__, fingerprint)

        return RetrievalOutcome(chunks=chunks, degraded=False)

    async def _search(self, text: str, mode: KnowledgeMode, limit: int) -> list[ScoredChunk]:
        vector = await self.embedder.embed(text)
        return await self.store.search(vector, mode, doc_type=self.doc_type, limit=limit)

    def _degrade(self, mode: KnowledgeMode, reason: str, fingerprint: str | None) -> RetrievalOutcome:
        if self.security_logger is not None:
            self.security_logger.log_retrieval_degraded(fingerprint, mode.value, reason)
        return RetrievalOutcome.degraded_result(reason)
