"""Fixed-window rate limiting per (fingerprint, scope).

Windows are counted with an atomic increment-and-compare in the state store,
so the count inside one window never exceeds the limit. Expired windows
restart lazily on the next request.

Known limitation: a caller can spend a full budget at the end of one window
and another at the start of the next.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from jyoti.security.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    """Budget for one scope."""

    limit: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate-limit check.

    Attributes:
        allowed: Whether the request fits in the current window
        limit: Requests allowed per window
        remaining: Requests left in the current window
        reset_at_ms: Epoch milliseconds when the window resets
        retry_after_ms: Milliseconds to wait (0 when allowed)
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int
    retry_after_ms: int

    def headers(self) -> dict[str, str]:
        """Standard ``X-RateLimit-*`` response headers."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at_ms / 1000)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(max(1, math.ceil(self.retry_after_ms / 1000)))
        return headers


class FixedWindowRateLimiter:
    """Fixed-window limiter keyed by ``(fingerprint, scope)``.

    Examples:
        >>> limiter = FixedWindowRateLimiter(InMemoryStateStore(), {"chat": RateLimitRule(20, 60_000)})
        >>> result = await limiter.hit("fp", "chat", now_ms=0)
        >>> result.remaining
        19
    """

    def __init__(
        self,
        store: StateStore,
        rules: dict[str, RateLimitRule],
        default_rule: RateLimitRule | None = None,
    ) -> None:
        self.store = store
        self.rules = dict(rules)
        self.default_rule = default_rule or RateLimitRule(limit=20, window_ms=60_000)

    def rule_for(self, scope: str) -> RateLimitRule:
        return self.rules.get(scope, self.default_rule)

    async def hit(self, fingerprint: str, scope: str, now_ms: int) -> RateLimitResult:
        """Count one request and report whether it fits.

        Args:
            fingerprint: Caller fingerprint
            scope: Request scope (``chat``, ...)
            now_ms: Current epoch milliseconds

        Returns:
            RateLimitResult for this request
        """
        rule = self.rule_for(scope)
        check = await self.store.increment_window(
            f"ratelimit:{scope}:{fingerprint}",
            rule.limit,
            rule.window_ms,
            now_ms,
        )
        reset_at_ms = check.window_start_ms + rule.window_ms
        retry_after_ms = 0 if check.allowed else max(1, reset_at_ms - now_ms)

        if not check.allowed:
            logger.debug(f"Rate limit hit for scope '{scope}' ({check.count}/{rule.limit})")

        return RateLimitResult(
            allowed=check.allowed,
            limit=rule.limit,
            remaining=max(0, rule.limit - check.count),
            reset_at_ms=reset_at_ms,
            retry_after_ms=retry_after_ms,
        )
