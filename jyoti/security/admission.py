"""Admission gate: payload ceiling, cooldown and fixed-window rate limiting.

Checks run in a fixed order and stop at the first rejection:

1. payload size against the byte ceiling
2. cooldown (an active cooldown never touches the rate-limit counter)
3. fixed-window rate limit for ``(fingerprint, scope)``

Every decision is written to the security log and counted in Prometheus.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Literal

from jyoti.observability.prometheus_metrics import record_admission
from jyoti.security.cooldown import CooldownStore, cooldown_message

if TYPE_CHECKING:
    from jyoti.observability.security_logging import SecurityLogger
    from jyoti.security.rate_limit import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

AdmissionReason = Literal["cooldown", "rate_limited", "payload_too_large"]


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of one admission check.

    Attributes:
        allowed: Whether the request may proceed
        retry_after_ms: Wait hint for rejected requests
        reason: Rejection reason
        message: Caller-facing explanation for rejected requests
        headers: Rate-limit headers to attach to the response
    """

    allowed: bool
    retry_after_ms: int | None = None
    reason: AdmissionReason | None = None
    message: str | None = None
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def status_code(self) -> int:
        if self.allowed:
            return 200
        return 413 if self.reason == "payload_too_large" else 429


def epoch_ms() -> int:
    return int(time.time() * 1000)


class AdmissionGate:
    """Decides whether a request may enter the pipeline."""

    def __init__(
        self,
        cooldowns: CooldownStore,
        limiter: FixedWindowRateLimiter,
        security_logger: SecurityLogger,
        max_payload_bytes: int = 500_000,
        pacing_cooldown_ms: int = 0,
        bot_cooldown_ms: int = 60_000,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.cooldowns = cooldowns
        self.limiter = limiter
        self.security_logger = security_logger
        self.max_payload_bytes = max_payload_bytes
        self.pacing_cooldown_ms = pacing_cooldown_ms
        self.bot_cooldown_ms = bot_cooldown_ms
        self.clock = clock

    def check_payload(self, fingerprint: str, scope: str, payload_size: int) -> AdmissionDecision | None:
        """Reject bodies above the ceiling; None when the size is acceptable."""
        if payload_size <= self.max_payload_bytes:
            return None

        self.security_logger.log_payload_too_large(fingerprint, payload_size, self.max_payload_bytes)
        record_admission(scope, "payload_too_large")
        return AdmissionDecision(
            allowed=False,
            reason="payload_too_large",
            message="Request too large",
        )

    async def admit(self, fingerprint: str, scope: str, payload_size: int) -> AdmissionDecision:
        """Run the admission checks for one request.

        Args:
            fingerprint: Caller fingerprint
            scope: Request scope (``chat``, ...)
            payload_size: Declared or actual body size in bytes

        Returns:
            AdmissionDecision; rejected decisions carry a retry hint where one applies
        """
        rejected = self.check_payload(fingerprint, scope, payload_size)
        if rejected is not None:
            return rejected

        now_ms = self.clock()

        cooldown = await self.cooldowns.check(fingerprint, now_ms)
        if cooldown.active:
            self.security_logger.log_cooldown_hit(fingerprint, scope, cooldown.remaining_ms)
            record_admission(scope, "cooldown")
            return AdmissionDecision(
                allowed=False,
                retry_after_ms=cooldown.remaining_ms,
                reason="cooldown",
                message=cooldown_message(cooldown.remaining_ms),
                headers={"Retry-After": str(max(1, math.ceil(cooldown.remaining_ms / 1000)))},
            )

        result = await self.limiter.hit(fingerprint, scope, now_ms)
        if not result.allowed:
            rule = self.limiter.rule_for(scope)
            self.security_logger.log_rate_limit_exceeded(
                fingerprint, scope, rule.limit, rule.window_ms, result.retry_after_ms
            )
            record_admission(scope, "rate_limited")
            return AdmissionDecision(
                allowed=False,
                retry_after_ms=result.retry_after_ms,
                reason="rate_limited",
                message="Too many requests. Please slow down.",
                headers=result.headers(),
            )

        if self.pacing_cooldown_ms > 0:
            await self.cooldowns.set(fingerprint, self.pacing_cooldown_ms, now_ms)

        self.security_logger.log_admitted(fingerprint, scope, result.remaining)
        record_admission(scope, "allowed")
        return AdmissionDecision(allowed=True, headers=result.headers())

    async def punish(self, fingerprint: str, reason: str) -> int:
        """Put a fingerprint judged to be a bot into the punitive cooldown.

        Returns:
            Effective cooldown end in epoch milliseconds
        """
        until = await self.cooldowns.set(fingerprint, self.bot_cooldown_ms, self.clock())
        self.security_logger.log_bot_detected(fingerprint, reason, self.bot_cooldown_ms)
        return until
