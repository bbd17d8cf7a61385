"""Observability module for tracing, metrics and security events."""

from jyoti.observability.tracing import (
    add_span_attributes,
    get_meter,
    get_tracer,
    record_counter,
    record_histogram,
    setup_telemetry,
    trace_operation,
)

__all__ = [
    "add_span_attributes",
    "get_meter",
    "get_tracer",
    "record_counter",
    "record_histogram",
    "setup_telemetry",
    "trace_operation",
]
