"""Tests for Prometheus metrics."""

from __future__ import annotations

import pytest

from jyoti.observability.prometheus_metrics import (
    generate_metrics,
    get_metrics_registry,
    get_sample_value,
    increment_errors,
    observe_generation_latency,
    observe_retrieval_latency,
    record_admission,
    record_classification_rejection,
    record_safety_outcome,
    record_stream_termination,
)


class TestPrometheusMetrics:
    """Test suite for gateway metrics."""

    def test_registry_singleton(self) -> None:
        assert get_metrics_registry() is get_metrics_registry()

    def test_record_admission(self) -> None:
        labels = {"scope": "metrics-test", "outcome": "rate_limited"}
        before = get_sample_value("jyoti_admission_decisions_total", labels)

        record_admission("metrics-test", "rate_limited")
        record_admission("metrics-test", "rate_limited")

        assert get_sample_value("jyoti_admission_decisions_total", labels) == before + 2

    def test_counters_by_label(self) -> None:
        before_bot = get_sample_value("jyoti_classification_rejections_total", {"kind": "bot"})
        before_sanitized = get_sample_value("jyoti_safety_outcomes_total", {"outcome": "sanitized"})
        before_cancelled = get_sample_value("jyoti_stream_terminations_total", {"state": "cancelled"})

        record_classification_rejection("bot")
        record_safety_outcome("sanitized")
        record_stream_termination("cancelled")

        assert get_sample_value("jyoti_classification_rejections_total", {"kind": "bot"}) == before_bot + 1
        assert get_sample_value("jyoti_safety_outcomes_total", {"outcome": "sanitized"}) == before_sanitized + 1
        assert (
            get_sample_value("jyoti_stream_terminations_total", {"state": "cancelled"})
            == before_cancelled + 1
        )

    def test_unrecorded_sample_is_zero(self) -> None:
        assert get_sample_value("jyoti_errors_total", {"component": "none", "error_type": "none"}) == 0.0

    def test_observe_retrieval_latency(self) -> None:
        labels = {"mode": "dasha", "status": "degraded"}
        before = get_sample_value("jyoti_retrieval_requests_total", labels)
        before_count = get_sample_value("jyoti_retrieval_latency_milliseconds_count", {"mode": "dasha"})

        with observe_retrieval_latency("dasha") as record_status:
            record_status("degraded")

        assert get_sample_value("jyoti_retrieval_requests_total", labels) == before + 1
        assert (
            get_sample_value("jyoti_retrieval_latency_milliseconds_count", {"mode": "dasha"})
            == before_count + 1
        )

    def test_observe_generation_latency_labels_errors(self) -> None:
        labels = {"provider": "metrics-test", "status": "error"}
        before = get_sample_value("jyoti_generation_latency_seconds_count", labels)

        with pytest.raises(RuntimeError):
            with observe_generation_latency("metrics-test"):
                raise RuntimeError("boom")

        assert get_sample_value("jyoti_generation_latency_seconds_count", labels) == before + 1

    def test_generate_metrics(self) -> None:
        increment_errors("pipeline", "MetricsTestError")

        output = generate_metrics().decode("utf-8")

        assert "jyoti_errors_total" in output
        assert 'error_type="MetricsTestError"' in output
        assert "jyoti_stream_terminations_total" in output
