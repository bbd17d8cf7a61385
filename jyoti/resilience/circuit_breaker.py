"""Circuit breaker guarding the retrieval dependency.

Failed calls are never retried. After ``failure_threshold`` consecutive
failures the circuit opens and rejects calls for ``recovery_timeout``
seconds, then lets trial calls through (half-open). A rejected call costs
nothing, so a dead vector store or embedding API degrades retrieval at once
instead of once per request timeout.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from jyoti.observability.tracing import record_counter

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Rejecting calls until the recovery timeout passes
    HALF_OPEN = "half_open"  # Trial calls allowed


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5
    success_threshold: int = 1  # Half-open successes before closing
    recovery_timeout: float = 30.0  # Seconds the circuit stays open
    call_timeout: float | None = None  # None defers to the client's own timeout


@dataclass
class CircuitBreakerStats:
    """Counters reported on the health endpoint."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    last_failure_time: datetime | None = None
    last_state_change: datetime = field(default_factory=lambda: datetime.now(UTC))
    consecutive_failures: int = 0
    consecutive_successes: int = 0


class CircuitBreakerError(Exception):
    """Raised when an open circuit rejects a call."""

    def __init__(self, message: str, state: CircuitState) -> None:
        super().__init__(message)
        self.state = state


class CircuitBreaker:
    """Consecutive-failure circuit breaker for one downstream service.

    The recovery timeout runs on ``clock`` (monotonic by default) from the
    moment the circuit opened; wall-clock timestamps in the stats are for
    reporting only.
    """

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            service_name: Name of the protected service
            config: Circuit breaker configuration
            clock: Monotonic clock in seconds
        """
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self.clock = clock
        self._state = CircuitState.CLOSED
        self._stats = CircuitBreakerStats()
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()

        logger.info(
            f"Circuit breaker created for '{service_name}' "
            f"(failure_threshold={self.config.failure_threshold}, "
            f"recovery_timeout={self.config.recovery_timeout}s)"
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        return self._stats

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await ``func(*args, **kwargs)`` unless the circuit is open.

        Returns:
            Whatever ``func`` returns

        Raises:
            CircuitBreakerError: If the circuit is open
            TimeoutError: If ``call_timeout`` is set and the call exceeds it
            Exception: Anything ``func`` raises, after it is counted
        """
        await self._admit()

        try:
            if self.config.call_timeout is None:
                result = await func(*args, **kwargs)
            else:
                result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.config.call_timeout)
        except TimeoutError:
            logger.warning(f"⏱️ '{self.service_name}' call exceeded {self.config.call_timeout}s")
            await self._on_failure()
            raise
        except Exception as e:
            logger.error(f"❌ '{self.service_name}' call failed: {type(e).__name__}: {e}")
            await self._on_failure()
            raise

        await self._on_success()
        return result

    async def _admit(self) -> None:
        async with self._lock:
            if self._state is not CircuitState.OPEN:
                return
            if self._recovery_elapsed():
                self._move_to(CircuitState.HALF_OPEN)
                return
            self._stats.rejected_calls += 1
            raise CircuitBreakerError(f"Circuit '{self.service_name}' is open", self._state)

    async def _on_success(self) -> None:
        async with self._lock:
            stats = self._stats
            stats.total_calls += 1
            stats.successful_calls += 1
            stats.consecutive_failures = 0
            if self._state is CircuitState.HALF_OPEN:
                stats.consecutive_successes += 1
                if stats.consecutive_successes >= self.config.success_threshold:
                    self._move_to(CircuitState.CLOSED)

    async def _on_failure(self) -> None:
        async with self._lock:
            stats = self._stats
            stats.total_calls += 1
            stats.failed_calls += 1
            stats.consecutive_failures += 1
            stats.consecutive_successes = 0
            stats.last_failure_time = datetime.now(UTC)

            tripped = stats.consecutive_failures >= self.config.failure_threshold
            if self._state is CircuitState.HALF_OPEN or (
                self._state is CircuitState.CLOSED and tripped
            ):
                self._move_to(CircuitState.OPEN)

    def _recovery_elapsed(self) -> bool:
        if self._opened_at is None:
            return True
        return self.clock() - self._opened_at >= self.config.recovery_timeout

    def _move_to(self, state: CircuitState) -> None:
        previous = self._state
        self._state = state
        self._stats.last_state_change = datetime.now(UTC)
        if state is CircuitState.OPEN:
            self._opened_at = self.clock()
            logger.error(
                f"🔴 Circuit '{self.service_name}' OPEN after "
                f"{self._stats.consecutive_failures} consecutive failures"
            )
        elif state is CircuitState.HALF_OPEN:
            self._stats.consecutive_successes = 0
            logger.info(f"⚡ Circuit '{self.service_name}' HALF_OPEN, allowing trial calls")
        else:
            self._opened_at = None
            logger.info(f"✅ Circuit '{self.service_name}' CLOSED (service recovered)")
        record_counter(
            "circuit_breaker.transitions",
            1,
            {"service": self.service_name, "from": previous.value, "to": state.value},
        )

    def get_stats_summary(self) -> dict[str, Any]:
        """Statistics snapshot for health reporting."""
        stats = self._stats
        return {
            "service_name": self.service_name,
            "state": self._state.value,
            "total_calls": stats.total_calls,
            "successful_calls": stats.successful_calls,
            "failed_calls": stats.failed_calls,
            "rejected_calls": stats.rejected_calls,
            "consecutive_failures": stats.consecutive_failures,
            "last_failure_time": stats.last_failure_time.isoformat() if stats.last_failure_time else None,
            "last_state_change": stats.last_state_change.isoformat(),
        }
