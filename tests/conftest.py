"""Pytest configuration and fixtures for Jyoti tests."""

from __future__ import annotations

import pytest

from jyoti.config import JyotiConfig
from jyoti.observability.security_logging import InMemoryEventSink, SecurityLogger
from jyoti.retrieval.embeddings import HashEmbedder
from jyoti.retrieval.vector_store import KnowledgeStore
from jyoti.security.state_store import InMemoryStateStore

TEST_DIMENSION = 16


@pytest.fixture(scope="session", autouse=True)
def setup_telemetry():
    """Setup OpenTelemetry once for the whole test session.

    Global providers can only be installed once per process, so the app
    lifespan in integration tests reuses this configuration.
    """
    from jyoti.observability.tracing import setup_telemetry

    setup_telemetry(
        service_name="jyoti-test",
        enable_console_export=False,
        otlp_endpoint=None,
    )
    yield


@pytest.fixture
def event_sink() -> InMemoryEventSink:
    return InMemoryEventSink()


@pytest.fixture
def security_logger(event_sink: InMemoryEventSink) -> SecurityLogger:
    """Security logger that records every event into ``event_sink``."""
    return SecurityLogger(sinks=[event_sink])


@pytest.fixture
def state_store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def embedder() -> HashEmbedder:
    return HashEmbedder(TEST_DIMENSION)


@pytest.fixture
async def knowledge_store():
    """Initialized in-memory knowledge store, closed after the test."""
    store = KnowledgeStore(":memory:", dimension=TEST_DIMENSION)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def test_config() -> JyotiConfig:
    """Offline configuration: hash embeddings, template generation, lite profile."""
    return JyotiConfig(
        profile="lite",
        environment="test",
        embedding={"provider": "hash", "dimension": TEST_DIMENSION},
        generation={"provider": "template"},
        store={"database_path": ":memory:"},
    )
