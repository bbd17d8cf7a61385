"""OpenTelemetry setup for the Guru gateway.

Spans wrap the pipeline stages (retrieval, generation, ingestion) and
OpenTelemetry instruments count security events and circuit transitions.
Spans go to an OTLP collector when an endpoint is configured; instruments
are bridged to Prometheus through ``PrometheusMetricReader``.

Every helper here works before ``setup_telemetry`` runs: it falls back to
the global providers, which are no-ops until configured.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.asyncio import AsyncioInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

_SCOPE = "jyoti"

AttributeValue = str | int | float | bool

_tracer: trace.Tracer | None = None
_meter: metrics.Meter | None = None


def setup_telemetry(
    service_name: str = "jyoti-guru",
    environment: str = "development",
    otlp_endpoint: str | None = None,
    enable_console_export: bool = False,
    sample_rate: float = 1.0,
) -> tuple[trace.Tracer, metrics.Meter]:
    """Install the gateway's tracer and meter providers.

    OpenTelemetry allows one global provider per process, so only the first
    call configures anything; later calls return the existing pair.

    Args:
        service_name: ``service.name`` resource attribute
        environment: ``deployment.environment`` resource attribute
        otlp_endpoint: OTLP gRPC collector (e.g. http://localhost:4317); spans are
            not exported when omitted
        enable_console_export: Also print finished spans to stdout
        sample_rate: Fraction of traces kept (0.0 to 1.0)

    Returns:
        Tuple of (tracer, meter)
    """
    global _tracer, _meter

    if _tracer is not None and _meter is not None:
        return _tracer, _meter

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "jyoti",
            "deployment.environment": environment,
        }
    )

    tracer_provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(sample_rate))
    if otlp_endpoint:
        tracer_provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
        logger.info(f"✅ OTLP span export enabled: {otlp_endpoint}")
    if enable_console_export:
        tracer_provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(tracer_provider)

    meter_provider = MeterProvider(resource=resource, metric_readers=[PrometheusMetricReader()])
    metrics.set_meter_provider(meter_provider)

    instrumentor = AsyncioInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        instrumentor.instrument()

    _tracer = trace.get_tracer(_SCOPE)
    _meter = metrics.get_meter(_SCOPE)
    logger.info(f"✅ Telemetry initialized: {service_name} ({environment}, sampling {sample_rate:.0%})")
    return _tracer, _meter


def get_tracer() -> trace.Tracer:
    return _tracer or trace.get_tracer(_SCOPE)


def get_meter() -> metrics.Meter:
    return _meter or metrics.get_meter(_SCOPE)


@contextmanager
def trace_operation(
    operation_name: str,
    attributes: dict[str, AttributeValue] | None = None,
) -> Iterator[trace.Span]:
    """Run the enclosed block inside a span named ``operation_name``.

    Exceptions are recorded on the span and re-raised.

    Example:
        with trace_operation("retrieval.search", {"mode": mode.value}):
            chunks = await store.search(vector, mode)
    """
    with get_tracer().start_as_current_span(operation_name, attributes=attributes or {}) as span:
        try:
            yield span
        except Exception as e:
            span.record_exception(e)
            span.set_status(trace.StatusCode.ERROR, type(e).__name__)
            raise
        span.set_status(trace.StatusCode.OK)


def add_span_attributes(attributes: dict[str, AttributeValue]) -> None:
    """Attach attributes to the active span, if it is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attributes(attributes)


def record_counter(name: str, value: int = 1, attributes: dict[str, str] | None = None) -> None:
    """Add ``value`` to the OpenTelemetry counter ``name``."""
    get_meter().create_counter(name, description=f"Counter for {name}").add(value, attributes or {})


def record_histogram(name: str, value: float, attributes: dict[str, str] | None = None) -> None:
    """Record one observation on the OpenTelemetry histogram ``name``."""
    get_meter().create_histogram(name, description=f"Histogram for {name}").record(
        value, attributes or {}
    )
