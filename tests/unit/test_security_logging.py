"""Tests for structured security logging."""

from __future__ import annotations

import json
import logging

import pytest

from jyoti.observability.security_logging import (
    InMemoryEventSink,
    SecurityEventType,
    SecurityLogger,
    Severity,
    get_security_logger,
)


class TestSecurityLogger:
    """Test suite for SecurityLogger."""

    def test_emits_json_line(self, caplog: pytest.LogCaptureFixture) -> None:
        security = SecurityLogger(logger=logging.getLogger("security.audit"))

        with caplog.at_level(logging.INFO, logger="security.audit"):
            security.log_rate_limit_exceeded("fp-1", "chat", 20, 60000, 15000)

        record = caplog.records[-1]
        payload = json.loads(record.getMessage())
        assert record.levelno == logging.INFO
        assert payload["event_type"] == "rate_limit_exceeded"
        assert payload["severity"] == "medium"
        assert payload["fingerprint"] == "fp-1"
        assert payload["retry_after_ms"] == 15000
        assert "timestamp" in payload

    def test_high_severity_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        security = SecurityLogger(logger=logging.getLogger("security.audit"))

        with caplog.at_level(logging.INFO, logger="security.audit"):
            security.log_suspicious_content("fp-1", "prompt_injection", 42)

        assert caplog.records[-1].levelno == logging.WARNING

    def test_sinks_receive_events(self, security_logger: SecurityLogger, event_sink: InMemoryEventSink) -> None:
        extra = InMemoryEventSink()
        security_logger.add_sink(extra)

        security_logger.log_bot_detected("fp-2", "burst", 60000)

        assert len(event_sink) == 1
        assert len(extra) == 1
        event = event_sink.events[0]
        assert event.event_type is SecurityEventType.BOT_DETECTED
        assert event.severity is Severity.HIGH
        assert event.detail == {"reason": "burst", "cooldown_ms": 60000}

    def test_suspicious_content_never_records_text(
        self, security_logger: SecurityLogger, event_sink: InMemoryEventSink
    ) -> None:
        security_logger.log_suspicious_content("fp-1", "code_injection", 128)

        assert event_sink.events[0].detail == {"reason": "code_injection", "text_length": 128}

    @pytest.mark.parametrize(
        ("state", "event_type"),
        [
            ("timed_out", SecurityEventType.STREAM_TIMEOUT),
            ("errored", SecurityEventType.STREAM_ERROR),
        ],
    )
    def test_stream_terminated_event_type(
        self,
        security_logger: SecurityLogger,
        event_sink: InMemoryEventSink,
        state: str,
        event_type: SecurityEventType,
    ) -> None:
        security_logger.log_stream_terminated("fp-1", state, 120, 30000)

        assert event_sink.of_type(event_type)[0].detail == {
            "state": state,
            "emitted_chars": 120,
            "elapsed_ms": 30000,
        }


class TestInMemoryEventSink:
    def test_bounded(self) -> None:
        sink = InMemoryEventSink(max_events=2)
        security = SecurityLogger(sinks=[sink])

        for index in range(3):
            security.log_admitted(f"fp-{index}", "chat", 10)

        assert [event.fingerprint for event in sink.events] == ["fp-1", "fp-2"]

    def test_of_type(self, security_logger: SecurityLogger, event_sink: InMemoryEventSink) -> None:
        security_logger.log_admitted("fp", "chat", 19)
        security_logger.log_cooldown_hit("fp", "chat", 5000)

        assert len(event_sink.of_type(SecurityEventType.COOLDOWN_ACTIVE)) == 1
        assert event_sink.of_type(SecurityEventType.OUTPUT_UNSAFE) == []


def test_get_security_logger_singleton() -> None:
    assert get_security_logger() is get_security_logger()
