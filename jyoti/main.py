"""Jyoti main entry point: component wiring and lifecycle."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from jyoti.config import JyotiConfig, get_config
from jyoti.guidance.generation import get_generation_provider
from jyoti.guidance.pipeline import GuidancePipeline
from jyoti.guidance.safety import SafetyFilter
from jyoti.observability.security_logging import get_security_logger
from jyoti.profiles import get_profile
from jyoti.retrieval.embeddings import get_embedding_provider
from jyoti.retrieval.retriever import Retriever
from jyoti.retrieval.vector_store import KnowledgeStore
from jyoti.security import build_admission_gate, build_bot_detector

if TYPE_CHECKING:
    from jyoti.guidance.generation import GenerationProvider
    from jyoti.observability.security_logging import SecurityLogger
    from jyoti.retrieval.embeddings import EmbeddingProvider
    from jyoti.security.admission import AdmissionGate
    from jyoti.security.state_store import StateStore

logger = logging.getLogger(__name__)


class GuruApplication:
    """Gateway application with lifecycle management.

    Owns every long-lived component: the admission state store, the
    knowledge store, the embedding and generation providers and the
    guidance pipeline built on top of them. Components passed to the
    constructor replace the ones the configuration would build.

    Attributes:
        config: Gateway configuration
        profile: Deployment profile (lite or standard)
        pipeline: Guidance pipeline, available after ``start()``
        admission_gate: Admission gate, available after ``start()``
    """

    def __init__(
        self,
        config: JyotiConfig | None = None,
        *,
        state_store: StateStore | None = None,
        knowledge_store: KnowledgeStore | None = None,
        embedder: EmbeddingProvider | None = None,
        generator: GenerationProvider | None = None,
        security_logger: SecurityLogger | None = None,
    ) -> None:
        self.config = config or get_config()
        self.profile = get_profile(self.config.profile, self.config.store)
        self.security_logger = security_logger or get_security_logger()

        self.state_store = state_store
        self.knowledge_store = knowledge_store
        self.embedder = embedder
        self.generator = generator

        self.retriever: Retriever | None = None
        self.admission_gate: AdmissionGate | None = None
        self.pipeline: GuidancePipeline | None = None
        self._started = False

        logger.info(f"Initialized {self.profile.profile_config.name} profile: {self.profile.profile_config.description}")

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Build and initialize every component."""
        if self._started:
            return
        logger.info("Starting Jyoti Guru gateway")

        if self.state_store is None:
            self.state_store = await self.profile.initialize_state_store()

        if self.knowledge_store is None:
            self.knowledge_store = KnowledgeStore(
                self.config.store.database_path,
                dimension=self.config.embedding.dimension,
            )
        await self.knowledge_store.initialize()

        if self.embedder is None:
            self.embedder = get_embedding_provider(self.config.embedding)
        if self.generator is None:
            self.generator = get_generation_provider(self.config.generation)

        self.admission_gate = build_admission_gate(
            self.config.admission, self.state_store, self.security_logger
        )
        self.retriever = Retriever.from_config(
            self.config.retrieval, self.embedder, self.knowledge_store, self.security_logger
        )
        self.pipeline = GuidancePipeline.from_config(
            self.config,
            retriever=self.retriever,
            generator=self.generator,
            safety_filter=SafetyFilter(
                self.security_logger,
                supportive_note_enabled=self.config.safety.supportive_note_enabled,
                enabled=self.config.safety.enabled,
            ),
            bot_detector=build_bot_detector(self.config.abuse),
            admission_gate=self.admission_gate,
            security_logger=self.security_logger,
        )

        self._started = True
        logger.info("✅ Jyoti Guru gateway started successfully")
        logger.info(f"   Profile: {self.profile.profile_config.name}")
        logger.info(f"   State store: {type(self.state_store).__name__}")
        logger.info(f"   Embeddings: {self.config.embedding.provider} ({self.config.embedding.model_name})")
        logger.info(f"   Generation: {self.config.generation.provider}")
        logger.info(f"   Retrieval: {'enabled' if self.config.retrieval.enabled else 'disabled'}")

    async def stop(self) -> None:
        """Close every component that holds a connection."""
        logger.info("Stopping Jyoti Guru gateway")
        if self.generator is not None:
            await self.generator.close()
        if self.embedder is not None:
            await self.embedder.close()
        if self.knowledge_store is not None:
            await self.knowledge_store.close()
        if self.state_store is not None:
            await self.state_store.close()
        self._started = False
        logger.info("✅ Jyoti Guru gateway shutdown complete")

    async def health(self) -> dict[str, Any]:
        """Liveness report with knowledge store and circuit breaker status."""
        knowledge: dict[str, Any] = {"initialized": False}
        if self.knowledge_store is not None and self.knowledge_store.is_initialized:
            knowledge = {
                "initialized": True,
                "chunks": await self.knowledge_store.count(),
                "by_mode": await self.knowledge_store.count_by_mode(),
            }

        return {
            "status": "healthy" if self._started else "starting",
            "profile": self.profile.profile_config.name,
            "state_store": type(self.state_store).__name__ if self.state_store else None,
            "retrieval": {
                "enabled": self.config.retrieval.enabled,
                "knowledge_store": knowledge,
                "circuit": self.retriever.breaker.get_stats_summary() if self.retriever else None,
            },
        }
