"""Request admission, input sanitization and abuse detection."""

from __future__ import annotations

from typing import TYPE_CHECKING

from jyoti.security.abuse import AbuseSignal, BotDetector
from jyoti.security.admission import AdmissionDecision, AdmissionGate
from jyoti.security.cooldown import CooldownStore
from jyoti.security.fingerprint import extract_client_ip, generate_fingerprint
from jyoti.security.rate_limit import FixedWindowRateLimiter, RateLimitRule
from jyoti.security.sanitizer import classify_suspicious, sanitize
from jyoti.security.state_store import InMemoryStateStore, RedisStateStore, StateStore

if TYPE_CHECKING:
    from jyoti.config import AbuseConfig, AdmissionConfig
    from jyoti.observability.security_logging import SecurityLogger


def build_admission_gate(
    config: AdmissionConfig,
    store: StateStore,
    security_logger: SecurityLogger,
) -> AdmissionGate:
    """Wire an ``AdmissionGate`` from configuration."""
    rules = {
        scope: RateLimitRule(limit=limit.limit, window_ms=int(limit.window_seconds * 1000))
        for scope, limit in config.scopes.items()
    }
    default_rule = RateLimitRule(
        limit=config.default_scope.limit,
        window_ms=int(config.default_scope.window_seconds * 1000),
    )
    return AdmissionGate(
        cooldowns=CooldownStore(store),
        limiter=FixedWindowRateLimiter(store, rules, default_rule),
        security_logger=security_logger,
        max_payload_bytes=config.max_payload_bytes,
        pacing_cooldown_ms=config.pacing_cooldown_ms,
        bot_cooldown_ms=config.bot_cooldown_ms,
    )


def build_bot_detector(config: AbuseConfig) -> BotDetector:
    """Wire a ``BotDetector`` from configuration."""
    return BotDetector(
        burst_limit=config.burst_limit,
        burst_window_ms=config.burst_window_ms,
        repeat_limit=config.repeat_limit,
        history_horizon_ms=config.history_horizon_ms,
        cadence_min_intervals=config.cadence_min_intervals,
        cadence_max_spread_ms=config.cadence_max_spread_ms,
        max_tracked_fingerprints=config.max_tracked_fingerprints,
    )


__all__ = [
    "AbuseSignal",
    "AdmissionDecision",
    "AdmissionGate",
    "BotDetector",
    "CooldownStore",
    "FixedWindowRateLimiter",
    "InMemoryStateStore",
    "RateLimitRule",
    "RedisStateStore",
    "StateStore",
    "build_admission_gate",
    "build_bot_detector",
    "classify_suspicious",
    "extract_client_ip",
    "generate_fingerprint",
    "sanitize",
]
