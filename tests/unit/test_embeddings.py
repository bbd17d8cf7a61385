"""Tests for embedding providers."""

from __future__ import annotations

import json

import httpx
import numpy as np
import pytest

from jyoti.config import EmbeddingConfig
from jyoti.exceptions import RetrievalError
from jyoti.retrieval.embeddings import (
    HashEmbedder,
    OpenAIEmbedder,
    SentenceTransformerEmbedder,
    get_embedding_provider,
    normalize,
)


def openai_embedder(handler, dimension: int = 3) -> OpenAIEmbedder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://llm.test/v1")
    return OpenAIEmbedder("text-embedding-3-small", dimension, client=client)


class TestHashEmbedder:
    """Test suite for HashEmbedder."""

    @pytest.mark.asyncio
    async def test_deterministic(self) -> None:
        """Test identical text maps to the identical vector."""
        embedder = HashEmbedder(16)

        first = await embedder.embed("Saturn return")
        second = await HashEmbedder(16).embed("Saturn return")

        assert first == second
        assert len(first) == 16

    @pytest.mark.asyncio
    async def test_unit_length(self) -> None:
        """Test vectors are L2-normalized."""
        vector = await HashEmbedder(32).embed("Jupiter transit")

        assert float(np.linalg.norm(vector)) == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_different_text_differs(self) -> None:
        """Test distinct texts give distinct vectors."""
        embedder = HashEmbedder(16)

        assert await embedder.embed("career") != await embedder.embed("marriage")

    @pytest.mark.asyncio
    async def test_embed_batch_preserves_order(self) -> None:
        """Test batch embedding matches single embedding, in order."""
        embedder = HashEmbedder(8)

        batch = await embedder.embed_batch(["a", "b"])

        assert batch == [await embedder.embed("a"), await embedder.embed("b")]


class TestOpenAIEmbedder:
    """Test suite for OpenAIEmbedder."""

    @pytest.mark.asyncio
    async def test_embed_batch_orders_by_index_and_normalizes(self) -> None:
        """Test vectors come back in input order and unit length."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"index": 1, "embedding": [0.0, 0.0, 2.0]},
                        {"index": 0, "embedding": [3.0, 4.0, 0.0]},
                    ]
                },
            )

        embedder = openai_embedder(handler)
        vectors = await embedder.embed_batch(["first", "second"])
        await embedder.close()

        assert seen["path"] == "/v1/embeddings"
        assert seen["body"] == {"model": "text-embedding-3-small", "input": ["first", "second"]}
        assert vectors[0] == pytest.approx([0.6, 0.8, 0.0])
        assert vectors[1] == pytest.approx([0.0, 0.0, 1.0])

    @pytest.mark.asyncio
    async def test_http_error_raises_retrieval_error(self) -> None:
        """Test server errors surface as RetrievalError."""
        embedder = openai_embedder(lambda request: httpx.Response(503, json={"error": "busy"}))

        with pytest.raises(RetrievalError):
            await embedder.embed("hello")

    @pytest.mark.asyncio
    async def test_connection_error_raises_retrieval_error(self) -> None:
        """Test transport failures surface as RetrievalError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RetrievalError):
            await openai_embedder(handler).embed("hello")

    @pytest.mark.asyncio
    async def test_malformed_payload(self) -> None:
        """Test a payload without ``data`` is rejected."""
        embedder = openai_embedder(lambda request: httpx.Response(200, json={"object": "list"}))

        with pytest.raises(RetrievalError):
            await embedder.embed("hello")

    @pytest.mark.asyncio
    async def test_dimension_mismatch(self) -> None:
        """Test vectors of the wrong size are rejected."""
        embedder = openai_embedder(
            lambda request: httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0, 0.0]}]})
        )

        with pytest.raises(RetrievalError) as exc_info:
            await embedder.embed("hello")

        assert exc_info.value.details["expected"] == 3

    @pytest.mark.asyncio
    async def test_wrong_vector_count(self) -> None:
        """Test a response with too few vectors is rejected."""
        embedder = openai_embedder(
            lambda request: httpx.Response(200, json={"data": [{"index": 0, "embedding": [1.0, 0.0, 0.0]}]})
        )

        with pytest.raises(RetrievalError):
            await embedder.embed_batch(["one", "two"])

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self) -> None:
        """Test an empty batch short-circuits."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await openai_embedder(handler).embed_batch([]) == []


class TestProviderFactory:
    """Test suite for get_embedding_provider()."""

    def test_hash(self) -> None:
        provider = get_embedding_provider(EmbeddingConfig(provider="hash", dimension=8))

        assert isinstance(provider, HashEmbedder)
        assert provider.dimension == 8

    def test_openai(self) -> None:
        config = EmbeddingConfig(provider="openai", dimension=1536, api_key="sk-test")

        provider = get_embedding_provider(config)

        assert isinstance(provider, OpenAIEmbedder)

    def test_sentence_transformers_is_lazy(self) -> None:
        """Test the local model is not loaded at construction time."""
        provider = get_embedding_provider(EmbeddingConfig(provider="sentence-transformers"))

        assert isinstance(provider, SentenceTransformerEmbedder)
        assert provider._model is None


class TestVectorHelpers:
    """Test suite for vector helpers."""

    def test_normalize_zero_vector(self) -> None:
        assert normalize([0.0, 0.0]) == [0.0, 0.0]
