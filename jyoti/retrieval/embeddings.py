"""Pluggable embedding providers.

Providers share one capability, ``embed(text) -> list[float]``, and are chosen
at construction time from ``EmbeddingConfig.provider``:

- ``sentence-transformers``: local model, encoded in an executor thread
- ``openai``: any OpenAI-compatible ``/embeddings`` endpoint over httpx
- ``hash``: deterministic, non-semantic vectors for development and tests

Every failure is raised as ``RetrievalError`` so the retriever can degrade.
"""

from __future__ import annotations

import asyncio
import functools
import hashlib
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx
import numpy as np
import numpy.typing as npt

from jyoti.exceptions import RetrievalError

if TYPE_CHECKING:
    from jyoti.config import EmbeddingConfig

logger = logging.getLogger(__name__)


def normalize(vector: npt.ArrayLike) -> list[float]:
    """L2-normalize a vector; zero vectors are returned unchanged."""
    array = np.asarray(vector, dtype=np.float32)
    norm = np.linalg.norm(array)
    if norm > 0:
        array = array / norm
    return array.astype(np.float32).tolist()


class EmbeddingProvider(ABC):
    """Turns text into fixed-dimension vectors."""

    name: str = "base"

    def __init__(self, dimension: int) -> None:
        self.dimension = dimension

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one text.

        Raises:
            RetrievalError: If the provider cannot produce a vector
        """

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts, in order."""
        return [await self.embed(text) for text in texts]

    def _check_dimension(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimension:
            raise RetrievalError(
                "Embedding dimension mismatch",
                {"provider": self.name, "expected": self.dimension, "actual": len(vector)},
            )
        return vector

    async def close(self) -> None:
        """Release provider resources."""


class SentenceTransformerEmbedder(EmbeddingProvider):
    """Local sentence-transformers model (lazy loaded).

    Uses all-MiniLM-L6-v2 (384 dimensions) unless configured otherwise. The
    model is loaded and run in the default executor so encoding never blocks
    the event loop. Install with ``pip install jyoti-guru[local-embeddings]``.
    """

    name = "sentence-transformers"

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", dimension: int = 384) -> None:
        super().__init__(dimension)
        self.model_name = model_name
        self._model: Any = None
        self._lock = asyncio.Lock()

        logger.info(f"Embedding provider created with model: {model_name}")

    async def initialize(self) -> None:
        """Load the model once.

        Raises:
            RetrievalError: If the library is missing or the model fails to load
        """
        async with self._lock:
            if self._model is not None:
                return

            logger.info(f"Initializing embedding model: {self.model_name}")
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError as e:
                raise RetrievalError(
                    "sentence-transformers is not installed",
                    {"hint": "pip install jyoti-guru[local-embeddings]"},
                ) from e

            loop = asyncio.get_running_loop()
            try:
                self._model = await loop.run_in_executor(None, SentenceTransformer, self.model_name)
            except Exception as e:
                raise RetrievalError("Failed to load embedding model", {"model": self.model_name}) from e

            logger.info(f"✅ Embedding model loaded: {self.model_name} (dim={self.dimension})")

    async def embed(self, text: str) -> list[float]:
        vectors = await self._encode([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        return await self._encode(texts)

    async def _encode(self, texts: list[str]) -> list[list[float]]:
        await self.initialize()
        loop = asyncio.get_running_loop()
        try:
            encoded = await loop.run_in_executor(
                None,
                functools.partial(self._model.encode, texts, batch_size=32, normalize_embeddings=True),
            )
        except Exception as e:
            raise RetrievalError("Embedding model failed to encode text") from e
        return [self._check_dimension(np.asarray(row, dtype=np.float32).tolist()) for row in encoded]


class OpenAIEmbedder(EmbeddingProvider):
    """OpenAI-compatible ``/embeddings`` endpoint (OpenAI, Ollama, vLLM...)."""

    name = "openai"

    def __init__(
        self,
        model_name: str,
        dimension: int,
        base_url: str = "https://api.openai.com/v1",
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(dimension)
        self.model_name = model_name
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
        )

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = await self._client.post(
                "/embeddings",
                json={"model": self.model_name, "input": texts},
            )
            response.raise_for_status()
            data = response.json()["data"]
        except httpx.HTTPError as e:
            raise RetrievalError("Embedding endpoint request failed", {"error": type(e).__name__}) from e
        except (KeyError, TypeError, ValueError) as e:
            raise RetrievalError("Embedding endpoint returned an unexpected payload") from e

        ordered = sorted(data, key=lambda item: item.get("index", 0))
        if len(ordered) != len(texts):
            raise RetrievalError(
                "Embedding endpoint returned the wrong number of vectors",
                {"expected": len(texts), "actual": len(ordered)},
            )
        return [self._check_dimension(normalize(item["embedding"])) for item in ordered]

    async def close(self) -> None:
        await self._client.aclose()


class HashEmbedder(EmbeddingProvider):
    """Deterministic, non-semantic embeddings keyed on the text's SHA-256.

    Identical text always maps to the identical vector across processes, which
    is all development and tests need.
    """

    name = "hash"

    async def embed(self, text: str) -> list[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        rng = np.random.default_rng(seed)
        return normalize(rng.standard_normal(self.dimension))


def get_embedding_provider(config: EmbeddingConfig) -> EmbeddingProvider:
    """Build the configured embedding provider.

    Raises:
        ValueError: If the provider name is not recognized
    """
    if config.provider == "sentence-transformers":
        return SentenceTransformerEmbedder(config.model_name, config.dimension)
    if config.provider == "openai":
        return OpenAIEmbedder(
            model_name=config.model_name,
            dimension=config.dimension,
            base_url=config.base_url,
            api_key=config.api_key,
            timeout_seconds=config.timeout_seconds,
        )
    if config.provider == "hash":
        return HashEmbedder(config.dimension)
    raise ValueError(f"Unknown embedding provider: {config.provider}")
