"""Keyed state for rate-limit windows and cooldowns.

Each operation is atomic per key. ``InMemoryStateStore`` serializes work on a
key with its own ``asyncio.Lock``; ``RedisStateStore`` runs every operation
as a single Lua script so concurrent gateway processes share state.

The in-memory store is process-local: running several workers without Redis
gives each worker its own budget.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowCheck:
    """Result of one fixed-window increment-and-compare.

    Attributes:
        allowed: Whether the increment fit inside the limit
        count: Requests counted in the current window (never above the limit)
        window_start_ms: When the current window opened
    """

    allowed: bool
    count: int
    window_start_ms: int


class StateStore(ABC):
    """Atomic per-key counters and deadlines."""

    @abstractmethod
    async def increment_window(
        self,
        key: str,
        limit: int,
        window_ms: int,
        now_ms: int,
    ) -> WindowCheck:
        """Count one request against the fixed window stored at ``key``.

        An absent or expired window restarts at ``now_ms`` with count 1. A
        full window is left untouched and reported as not allowed.
        """

    @abstractmethod
    async def get(self, key: str, now_ms: int) -> int | None:
        """Stored integer at ``key``, or None when absent or expired."""

    @abstractmethod
    async def set_max(self, key: str, value: int, ttl_ms: int, now_ms: int) -> int:
        """Store ``max(current, value)`` and return the stored value.

        Never lowers an unexpired value.
        """

    async def close(self) -> None:
        """Release backend resources."""


class InMemoryStateStore(StateStore):
    """Process-local store with one lock per key.

    Expired entries are reset lazily on their next access, and every
    ``sweep_interval`` operations the maps are pruned of expired entries and
    their locks, so keys that never come back do not accumulate.
    """

    def __init__(self, sweep_interval: int = 1024) -> None:
        if sweep_interval < 1:
            raise ValueError("sweep_interval must be positive")
        self.sweep_interval = sweep_interval
        # key -> (count, window_start_ms, expires_at_ms)
        self._windows: dict[str, tuple[int, int, int]] = {}
        self._values: dict[str, tuple[int, int]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._operations = 0

    def prune_expired(self, now_ms: int) -> int:
        """Drop expired windows, values and the locks of keys left with no state.

        Returns:
            Number of keys removed
        """
        expired_windows = [k for k, entry in self._windows.items() if now_ms >= entry[2]]
        for key in expired_windows:
            del self._windows[key]
        expired_values = [k for k, entry in self._values.items() if now_ms >= entry[1]]
        for key in expired_values:
            del self._values[key]

        # Critical sections never await, so no lock is held or waited on here
        idle = [k for k in self._locks if k not in self._windows and k not in self._values]
        for key in idle:
            del self._locks[key]

        removed = len(expired_windows) + len(expired_values)
        if removed:
            logger.debug(f"Pruned {removed} expired state entries ({len(self)} left)")
        return removed

    def _lock_for(self, key: str, now_ms: int) -> asyncio.Lock:
        self._operations += 1
        if self._operations >= self.sweep_interval:
            self._operations = 0
            self.prune_expired(now_ms)
        # setdefault runs without yielding, so the registry needs no lock of its own
        return self._locks.setdefault(key, asyncio.Lock())

    async def increment_window(
        self,
        key: str,
        limit: int,
        window_ms: int,
        now_ms: int,
    ) -> WindowCheck:
        async with self._lock_for(key, now_ms):
            count, window_start, _ = self._windows.get(key, (0, now_ms, now_ms))
            if count == 0 or now_ms - window_start >= window_ms:
                self._windows[key] = (1, now_ms, now_ms + window_ms)
                return WindowCheck(allowed=True, count=1, window_start_ms=now_ms)

            if count < limit:
                self._windows[key] = (count + 1, window_start, window_start + window_ms)
                return WindowCheck(allowed=True, count=count + 1, window_start_ms=window_start)

            return WindowCheck(allowed=False, count=count, window_start_ms=window_start)

    async def get(self, key: str, now_ms: int) -> int | None:
        async with self._lock_for(key, now_ms):
            entry = self._values.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if now_ms >= expires_at:
                del self._values[key]
                return None
            return value

    async def set_max(self, key: str, value: int, ttl_ms: int, now_ms: int) -> int:
        async with self._lock_for(key, now_ms):
            entry = self._values.get(key)
            if entry is not None and now_ms < entry[1] and entry[0] >= value:
                return entry[0]
            self._values[key] = (value, now_ms + ttl_ms)
            return value

    def __len__(self) -> int:
        return len(self._windows) + len(self._values)


_INCREMENT_WINDOW_SCRIPT = """
local data = redis.call('HMGET', KEYS[1], 'count', 'start')
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local count = tonumber(data[1])
local start = tonumber(data[2])
if (not count) or (not start) or (now - start >= window) then
  redis.call('HSET', KEYS[1], 'count', 1, 'start', now)
  redis.call('PEXPIRE', KEYS[1], window)
  return {1, 1, now}
end
if count < limit then
  count = redis.call('HINCRBY', KEYS[1], 'count', 1)
  return {1, count, start}
end
return {0, count, start}
"""

_SET_MAX_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]))
local value = tonumber(ARGV[1])
if current and current >= value then
  return current
end
redis.call('SET', KEYS[1], value, 'PX', ARGV[2])
return value
"""


class RedisStateStore(StateStore):
    """Shared store backed by Redis; each operation is one Lua script.

    Redis TTLs expire keys, so ``now_ms`` only matters for window math.
    """

    def __init__(self, client: Redis, key_prefix: str = "jyoti:") -> None:
        self._client = client
        self._prefix = key_prefix
        self._increment = client.register_script(_INCREMENT_WINDOW_SCRIPT)
        self._set_max = client.register_script(_SET_MAX_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def increment_window(
        self,
        key: str,
        limit: int,
        window_ms: int,
        now_ms: int,
    ) -> WindowCheck:
        allowed, count, start = await self._increment(
            keys=[self._key(key)], args=[limit, window_ms, now_ms]
        )
        return WindowCheck(allowed=bool(allowed), count=int(count), window_start_ms=int(start))

    async def get(self, key: str, now_ms: int) -> int | None:
        value = await self._client.get(self._key(key))
        return int(value) if value is not None else None

    async def set_max(self, key: str, value: int, ttl_ms: int, now_ms: int) -> int:
        stored = await self._set_max(keys=[self._key(key)], args=[value, max(ttl_ms, 1)])
        return int(stored)

    async def close(self) -> None:
        await self._client.aclose()
        logger.info("Redis state store closed")
