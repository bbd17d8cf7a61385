"""Tests for the keyed admission state stores."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from jyoti.security.state_store import InMemoryStateStore, RedisStateStore, WindowCheck


class TestInMemoryIncrementWindow:
    """Test suite for fixed-window counting."""

    @pytest.mark.asyncio
    async def test_first_hit_opens_window(self, state_store: InMemoryStateStore) -> None:
        """Test first increment starts a window at count 1."""
        check = await state_store.increment_window("k", limit=3, window_ms=1000, now_ms=5000)

        assert check == WindowCheck(allowed=True, count=1, window_start_ms=5000)

    @pytest.mark.asyncio
    async def test_count_never_exceeds_limit(self, state_store: InMemoryStateStore) -> None:
        """Test hits past the limit are rejected without incrementing."""
        results = [
            await state_store.increment_window("k", limit=3, window_ms=1000, now_ms=100 + i)
            for i in range(5)
        ]

        assert [r.allowed for r in results] == [True, True, True, False, False]
        assert [r.count for r in results] == [1, 2, 3, 3, 3]

    @pytest.mark.asyncio
    async def test_expired_window_resets_lazily(self, state_store: InMemoryStateStore) -> None:
        """Test a hit after the window restarts the count at 1."""
        for i in range(3):
            await state_store.increment_window("k", limit=3, window_ms=1000, now_ms=i)

        check = await state_store.increment_window("k", limit=3, window_ms=1000, now_ms=1000)

        assert check.allowed is True
        assert check.count == 1
        assert check.window_start_ms == 1000

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, state_store: InMemoryStateStore) -> None:
        """Test windows for different keys do not interact."""
        await state_store.increment_window("a", limit=1, window_ms=1000, now_ms=0)

        check = await state_store.increment_window("b", limit=1, window_ms=1000, now_ms=0)

        assert check.allowed is True

    @pytest.mark.asyncio
    async def test_concurrent_hits_are_atomic(self, state_store: InMemoryStateStore) -> None:
        """Test concurrent increments admit exactly ``limit`` requests."""
        results = await asyncio.gather(
            *(state_store.increment_window("k", limit=20, window_ms=60_000, now_ms=0) for _ in range(50))
        )

        assert sum(1 for r in results if r.allowed) == 20


class TestInMemorySetMax:
    """Test suite for extend-only values (cooldowns)."""

    @pytest.mark.asyncio
    async def test_get_missing_key(self, state_store: InMemoryStateStore) -> None:
        """Test missing keys read as None."""
        assert await state_store.get("missing", now_ms=0) is None

    @pytest.mark.asyncio
    async def test_set_and_get(self, state_store: InMemoryStateStore) -> None:
        """Test stored values are readable until they expire."""
        await state_store.set_max("c", 5000, ttl_ms=5000, now_ms=0)

        assert await state_store.get("c", now_ms=4999) == 5000
        assert await state_store.get("c", now_ms=5000) is None

    @pytest.mark.asyncio
    async def test_never_shortens(self, state_store: InMemoryStateStore) -> None:
        """Test a smaller value does not replace a larger active one."""
        await state_store.set_max("c", 60_000, ttl_ms=60_000, now_ms=0)

        effective = await state_store.set_max("c", 5000, ttl_ms=5000, now_ms=0)

        assert effective == 60_000
        assert await state_store.get("c", now_ms=10_000) == 60_000

    @pytest.mark.asyncio
    async def test_extends(self, state_store: InMemoryStateStore) -> None:
        """Test a larger value replaces a smaller one."""
        await state_store.set_max("c", 5000, ttl_ms=5000, now_ms=0)

        effective = await state_store.set_max("c", 60_000, ttl_ms=60_000, now_ms=0)

        assert effective == 60_000

    @pytest.mark.asyncio
    async def test_expired_value_is_replaced(self, state_store: InMemoryStateStore) -> None:
        """Test an expired value no longer blocks smaller writes."""
        await state_store.set_max("c", 10_000, ttl_ms=10_000, now_ms=0)

        effective = await state_store.set_max("c", 12_000, ttl_ms=1000, now_ms=11_000)

        assert effective == 12_000


class TestInMemoryPruning:
    """Test suite for dropping state of keys that never come back."""

    @pytest.mark.asyncio
    async def test_prune_expired(self, state_store: InMemoryStateStore) -> None:
        """Test expired windows, values and their locks are dropped."""
        for index in range(100):
            await state_store.increment_window(f"ip:{index}", limit=5, window_ms=1000, now_ms=0)
        await state_store.set_max("cooldown", 5000, ttl_ms=5000, now_ms=0)
        await state_store.set_max("short", 500, ttl_ms=500, now_ms=0)

        removed = state_store.prune_expired(now_ms=1000)

        assert removed == 101
        assert len(state_store) == 1
        assert list(state_store._locks) == ["cooldown"]
        assert await state_store.get("cooldown", now_ms=1000) == 5000

    @pytest.mark.asyncio
    async def test_live_window_survives(self, state_store: InMemoryStateStore) -> None:
        await state_store.increment_window("k", limit=2, window_ms=1000, now_ms=0)
        await state_store.increment_window("k", limit=2, window_ms=1000, now_ms=10)

        assert state_store.prune_expired(now_ms=999) == 0
        check = await state_store.increment_window("k", limit=2, window_ms=1000, now_ms=999)
        assert check.allowed is False

    @pytest.mark.asyncio
    async def test_sweeps_every_interval(self) -> None:
        """Test rotating keys do not grow the store without bound."""
        store = InMemoryStateStore(sweep_interval=10)

        for index in range(1000):
            await store.increment_window(f"ip:{index}", limit=5, window_ms=100, now_ms=index * 50)

        assert len(store) <= 12
        assert len(store._locks) <= 12

    def test_invalid_interval(self) -> None:
        with pytest.raises(ValueError):
            InMemoryStateStore(sweep_interval=0)


class TestRedisStateStore:
    """Test suite for the Redis-backed store (scripts mocked)."""

    @pytest.fixture
    def redis_client(self) -> MagicMock:
        client = MagicMock()
        client.increment_script = AsyncMock(return_value=[1, 2, 1000])
        client.set_max_script = AsyncMock(return_value=9000)
        client.register_script.side_effect = [client.increment_script, client.set_max_script]
        client.get = AsyncMock(return_value="9000")
        client.aclose = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_increment_window_uses_prefixed_key(self, redis_client: MagicMock) -> None:
        """Test the window script is called with the prefixed key and arguments."""
        store = RedisStateStore(redis_client, key_prefix="test:")

        check = await store.increment_window("ratelimit:chat:fp", limit=20, window_ms=60_000, now_ms=1500)

        assert check == WindowCheck(allowed=True, count=2, window_start_ms=1000)
        redis_client.increment_script.assert_awaited_once_with(
            keys=["test:ratelimit:chat:fp"], args=[20, 60_000, 1500]
        )

    @pytest.mark.asyncio
    async def test_get_parses_integer(self, redis_client: MagicMock) -> None:
        """Test stored strings are returned as integers."""
        store = RedisStateStore(redis_client, key_prefix="test:")

        assert await store.get("cooldown:fp", now_ms=0) == 9000
        redis_client.get.assert_awaited_once_with("test:cooldown:fp")

    @pytest.mark.asyncio
    async def test_close(self, redis_client: MagicMock) -> None:
        """Test closing the store closes the client."""
        store = RedisStateStore(redis_client)

        await store.close()

        redis_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_set_max_passes_ttl(self, redis_client: MagicMock) -> None:
        """Test the set-max script receives the value and a positive TTL."""
        store = RedisStateStore(redis_client, key_prefix="test:")

        effective = await store.set_max("cooldown:fp", 9000, ttl_ms=0, now_ms=0)

        assert effective == 9000
        redis_client.set_max_script.assert_awaited_once_with(keys=["test:cooldown:fp"], args=[9000, 1])
