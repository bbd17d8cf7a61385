"""Prometheus metrics collection and export for the Guru gateway.

Example usage:

    ```python
    from jyoti.observability.prometheus_metrics import (
        observe_retrieval_latency,
        record_admission,
        record_safety_outcome,
    )

    record_admission(scope="chat", outcome="allowed")

    with observe_retrieval_latency(mode="career") as record_status:
        outcome = await retriever.retrieve(query, "career")
        record_status("degraded" if outcome.degraded else "ok")
    ```

Metrics exposed:
    - jyoti_admission_decisions_total: Gate decisions by scope and outcome
    - jyoti_classification_rejections_total: Suspicious/bot rejections
    - jyoti_retrieval_requests_total: Retrievals by mode and status
    - jyoti_retrieval_latency_milliseconds: Embed + search latency by mode
    - jyoti_generation_latency_seconds: Generation latency by provider
    - jyoti_safety_outcomes_total: Safety filter outcomes
    - jyoti_stream_terminations_total: Streaming terminal states
    - jyoti_errors_total: Error count by component and type
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock
from typing import Callable, Literal

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

# Singleton registry for all gateway metrics
_registry: CollectorRegistry | None = None
_registry_lock = Lock()


def get_metrics_registry() -> CollectorRegistry:
    """Get or create the singleton Prometheus metrics registry.

    Returns:
        The shared CollectorRegistry for all gateway metrics.
    """
    global _registry

    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = CollectorRegistry()
                logger.info("Created Prometheus metrics registry")

    return _registry


# ============================================================================
# Admission
# ============================================================================

admission_decisions: Counter = Counter(
    name="jyoti_admission_decisions_total",
    documentation="Admission gate decisions by scope and outcome",
    labelnames=["scope", "outcome"],
    registry=get_metrics_registry(),
)

classification_rejections: Counter = Counter(
    name="jyoti_classification_rejections_total",
    documentation="Requests rejected by the suspicious-content or bot classifiers",
    labelnames=["kind"],
    registry=get_metrics_registry(),
)


def record_admission(
    scope: str,
    outcome: Literal["allowed", "cooldown", "rate_limited", "payload_too_large"],
) -> None:
    """Record one admission decision."""
    admission_decisions.labels(scope=scope, outcome=outcome).inc()


def record_classification_rejection(kind: Literal["suspicious", "bot"]) -> None:
    """Record a request rejected after classification."""
    classification_rejections.labels(kind=kind).inc()


# ============================================================================
# Retrieval
# ============================================================================

retrieval_requests: Counter = Counter(
    name="jyoti_retrieval_requests_total",
    documentation="Retrieval calls by knowledge mode and status",
    labelnames=["mode", "status"],
    registry=get_metrics_registry(),
)

retrieval_latency: Histogram = Histogram(
    name="jyoti_retrieval_latency_milliseconds",
    documentation="Embedding plus vector search latency in milliseconds",
    labelnames=["mode"],
    buckets=(5.0, 10.0, 25.0, 50.0, 100.0, 250.0, 500.0, 1000.0, 2500.0, 5000.0),
    registry=get_metrics_registry(),
)


@contextmanager
def observe_retrieval_latency(mode: str) -> Iterator[Callable[[str], None]]:
    """Context manager for measuring retrieval latency.

    Yields:
        A function to call with the final status (``ok`` or ``degraded``)

    Example:
        ```python
        with observe_retrieval_latency("career") as record_status:
            record_status("ok")
        ```
    """
    start_time = time.perf_counter()
    status = "ok"

    def record_status(value: str) -> None:
        nonlocal status
        status = value

    try:
        yield record_status
    finally:
        retrieval_latency.labels(mode=mode).observe((time.perf_counter() - start_time) * 1000)
        retrieval_requests.labels(mode=mode, status=status).inc()


# ============================================================================
# Generation, safety and streaming
# ============================================================================

generation_latency: Histogram = Histogram(
    name="jyoti_generation_latency_seconds",
    documentation="Generation provider latency in seconds",
    labelnames=["provider", "status"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0),
    registry=get_metrics_registry(),
)

safety_outcomes: Counter = Counter(
    name="jyoti_safety_outcomes_total",
    documentation="Post-generation safety filter outcomes",
    labelnames=["outcome"],
    registry=get_metrics_registry(),
)

stream_terminations: Counter = Counter(
    name="jyoti_stream_terminations_total",
    documentation="Streaming deliveries by terminal state",
    labelnames=["state"],
    registry=get_metrics_registry(),
)


@contextmanager
def observe_generation_latency(provider: str) -> Iterator[None]:
    """Measure a generation call; failures are labelled ``error``."""
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        generation_latency.labels(provider=provider, status=status).observe(
            time.perf_counter() - start_time
        )


def record_safety_outcome(outcome: str) -> None:
    """Record one safety filter verdict."""
    safety_outcomes.labels(outcome=outcome).inc()


def record_stream_termination(state: str) -> None:
    """Record the terminal state of a streaming delivery."""
    stream_terminations.labels(state=state).inc()


# ============================================================================
# Errors
# ============================================================================

error_total: Counter = Counter(
    name="jyoti_errors_total",
    documentation="Errors by component and type",
    labelnames=["component", "error_type"],
    registry=get_metrics_registry(),
)


def increment_errors(component: str, error_type: str) -> None:
    """Increment the error counter.

    Args:
        component: Component that failed (retrieval, generation, pipeline)
        error_type: Exception class name or short error category
    """
    error_total.labels(component=component, error_type=error_type).inc()


# ============================================================================
# Exposition
# ============================================================================


def generate_metrics() -> bytes:
    """Render the registry in Prometheus text exposition format."""
    return generate_latest(get_metrics_registry())


def get_sample_value(name: str, labels: dict[str, str] | None = None) -> float:
    """Current value of one sample, 0.0 when it was never recorded."""
    value = get_metrics_registry().get_sample_value(name, labels or {})
    return value if value is not None else 0.0


__all__ = [
    "admission_decisions",
    "classification_rejections",
    "error_total",
    "generate_metrics",
    "generation_latency",
    "get_metrics_registry",
    "get_sample_value",
    "increment_errors",
    "observe_generation_latency",
    "observe_retrieval_latency",
    "record_admission",
    "record_classification_rejection",
    "record_safety_outcome",
    "record_stream_termination",
    "retrieval_latency",
    "retrieval_requests",
    "safety_outcomes",
    "stream_terminations",
]
