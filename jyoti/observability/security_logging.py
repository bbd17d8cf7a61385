"""Structured security logging for SIEM integration.

Every admission, classification and safety decision produces a
``SecurityEvent``. Events are written as one JSON line on the ``security``
logger, counted through OpenTelemetry and fanned out to any registered sinks
(for example the append-only ``InMemoryEventSink`` used for audits and tests).
"""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol

from jyoti.observability.tracing import record_counter

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    """Security event severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SecurityEventType(str, Enum):
    """Kinds of security events emitted by the gateway."""

    ADMITTED = "admitted"
    COOLDOWN_ACTIVE = "cooldown_active"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    VALIDATION_FAILURE = "validation_failure"
    SUSPICIOUS_CONTENT = "suspicious_content"
    BOT_DETECTED = "bot_detected"
    RETRIEVAL_DEGRADED = "retrieval_degraded"
    OUTPUT_SANITIZED = "output_sanitized"
    OUTPUT_UNSAFE = "output_unsafe"
    STREAM_TIMEOUT = "stream_timeout"
    STREAM_ERROR = "stream_error"
    PIPELINE_ERROR = "pipeline_error"


@dataclass(frozen=True)
class SecurityEvent:
    """One append-only security record."""

    event_type: SecurityEventType
    severity: Severity
    fingerprint: str | None
    detail: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "event_type": self.event_type.value,
            "fingerprint": self.fingerprint,
            **self.detail,
        }


class EventSink(Protocol):
    """Receiver of security events."""

    def record(self, event: SecurityEvent) -> None: ...


class InMemoryEventSink:
    """Bounded, append-only event buffer."""

    def __init__(self, max_events: int = 10_000) -> None:
        self._events: deque[SecurityEvent] = deque(maxlen=max_events)

    def record(self, event: SecurityEvent) -> None:
        self._events.append(event)

    @property
    def events(self) -> list[SecurityEvent]:
        return list(self._events)

    def of_type(self, event_type: SecurityEventType) -> list[SecurityEvent]:
        return [event for event in self._events if event.event_type is event_type]

    def __len__(self) -> int:
        return len(self._events)


class SecurityLogger:
    """Structured security event logger.

    Logs security-relevant events in JSON format for SIEM consumption.
    All events include severity, timestamp, fingerprint and structured detail.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        sinks: list[EventSink] | None = None,
    ) -> None:
        """Initialize security logger.

        Args:
            logger: Logger instance (defaults to 'security' logger)
            sinks: Additional receivers for every emitted event
        """
        self.logger = logger or logging.getLogger("security")
        self.sinks: list[EventSink] = list(sinks or [])

    def add_sink(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    def emit(
        self,
        event_type: SecurityEventType,
        severity: Severity,
        fingerprint: str | None,
        **detail: Any,
    ) -> SecurityEvent:
        """Log security event in structured JSON format.

        Args:
            event_type: Type of security event
            severity: Severity level
            fingerprint: Caller fingerprint, when known
            **detail: Additional event context

        Returns:
            The emitted event
        """
        event = SecurityEvent(
            event_type=event_type,
            severity=severity,
            fingerprint=fingerprint,
            detail=detail,
        )

        # Log as JSON for SIEM parsing
        level = logging.WARNING if severity is Severity.HIGH else logging.INFO
        self.logger.log(level, json.dumps(event.to_dict(), default=str))

        record_counter(
            f"security.{event_type.value}",
            1,
            {"severity": severity.value},
        )

        for sink in self.sinks:
            sink.record(event)

        return event

    def log_admitted(self, fingerprint: str, scope: str, remaining: int) -> None:
        self.emit(
            SecurityEventType.ADMITTED,
            Severity.LOW,
            fingerprint,
            scope=scope,
            remaining=remaining,
        )

    def log_cooldown_hit(self, fingerprint: str, scope: str, remaining_ms: int) -> None:
        """Log a request refused because the caller is cooling down.

        Args:
            fingerprint: Caller fingerprint
            scope: Request scope
            remaining_ms: Milliseconds left in the cooldown
        """
        self.emit(
            SecurityEventType.COOLDOWN_ACTIVE,
            Severity.LOW,
            fingerprint,
            scope=scope,
            remaining_ms=remaining_ms,
        )

    def log_rate_limit_exceeded(
        self,
        fingerprint: str,
        scope: str,
        limit: int,
        window_ms: int,
        retry_after_ms: int,
    ) -> None:
        """Log a fixed-window budget violation.

        Args:
            fingerprint: Caller fingerprint
            scope: Request scope
            limit: Requests allowed per window
            window_ms: Window length in milliseconds
            retry_after_ms: Milliseconds until the window resets
        """
        self.emit(
            SecurityEventType.RATE_LIMIT_EXCEEDED,
            Severity.MEDIUM,
            fingerprint,
            scope=scope,
            limit=limit,
            window_ms=window_ms,
            retry_after_ms=retry_after_ms,
        )

    def log_payload_too_large(self, fingerprint: str, size: int, max_size: int) -> None:
        self.emit(
            SecurityEventType.PAYLOAD_TOO_LARGE,
            Severity.MEDIUM,
            fingerprint,
            size=size,
            max_size=max_size,
        )

    def log_validation_failure(self, fingerprint: str | None, errors: list[str]) -> None:
        self.emit(
            SecurityEventType.VALIDATION_FAILURE,
            Severity.LOW,
            fingerprint,
            errors=errors,
        )

    def log_suspicious_content(self, fingerprint: str, reason: str, text_length: int) -> None:
        """Log input rejected by the suspicious-content classifier.

        Only the reason and the input length are recorded, never the text.
        """
        self.emit(
            SecurityEventType.SUSPICIOUS_CONTENT,
            Severity.HIGH,
            fingerprint,
            reason=reason,
            text_length=text_length,
        )

    def log_bot_detected(self, fingerprint: str, reason: str, cooldown_ms: int) -> None:
        self.emit(
            SecurityEventType.BOT_DETECTED,
            Severity.HIGH,
            fingerprint,
            reason=reason,
            cooldown_ms=cooldown_ms,
        )

    def log_retrieval_degraded(self, fingerprint: str | None, mode: str, reason: str) -> None:
        self.emit(
            SecurityEventType.RETRIEVAL_DEGRADED,
            Severity.LOW,
            fingerprint,
            mode=mode,
            reason=reason,
        )

    def log_output_sanitized(self, fingerprint: str | None, triggers: list[str]) -> None:
        self.emit(
            SecurityEventType.OUTPUT_SANITIZED,
            Severity.LOW,
            fingerprint,
            triggers=triggers,
        )

    def log_output_unsafe(self, fingerprint: str | None, reason: str) -> None:
        """Log generated output withheld by the safety filter."""
        self.emit(
            SecurityEventType.OUTPUT_UNSAFE,
            Severity.HIGH,
            fingerprint,
            reason=reason,
        )

    def log_stream_terminated(
        self,
        fingerprint: str | None,
        state: str,
        emitted_chars: int,
        elapsed_ms: int,
    ) -> None:
        """Log a stream that ended by deadline or error."""
        event_type = (
            SecurityEventType.STREAM_TIMEOUT if state == "timed_out" else SecurityEventType.STREAM_ERROR
        )
        self.emit(
            event_type,
            Severity.MEDIUM,
            fingerprint,
            state=state,
            emitted_chars=emitted_chars,
            elapsed_ms=elapsed_ms,
        )

    def log_pipeline_error(self, fingerprint: str | None, component: str, error_type: str) -> None:
        self.emit(
            SecurityEventType.PIPELINE_ERROR,
            Severity.MEDIUM,
            fingerprint,
            component=component,
            error_type=error_type,
        )


# Global security logger instance
_security_logger: SecurityLogger | None = None


def get_security_logger() -> SecurityLogger:
    """Get global security logger instance.

    Returns:
        SecurityLogger singleton
    """
    global _security_logger
    if _security_logger is None:
        _security_logger = SecurityLogger()
    return _security_logger


__all__ = [
    "EventSink",
    "InMemoryEventSink",
    "SecurityEvent",
    "SecurityEventType",
    "SecurityLogger",
    "Severity",
    "get_security_logger",
]
