"""Tests for deployment profiles."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from jyoti.config import StoreConfig
from jyoti.profiles import get_profile, list_profiles
from jyoti.profiles.lite import LiteProfile
from jyoti.profiles.standard import StandardProfile
from jyoti.security.state_store import InMemoryStateStore, RedisStateStore


class TestProfileRegistry:
    def test_list_profiles(self) -> None:
        assert list_profiles() == ["lite", "standard"]

    def test_get_profile(self) -> None:
        assert isinstance(get_profile("lite", StoreConfig()), LiteProfile)
        assert isinstance(get_profile("STANDARD", StoreConfig()), StandardProfile)

    def test_unknown_profile(self) -> None:
        with pytest.raises(ValueError, match="Unknown profile: cloud"):
            get_profile("cloud", StoreConfig())


class TestLiteProfile:
    @pytest.mark.asyncio
    async def test_in_memory_state(self) -> None:
        profile = LiteProfile(StoreConfig())

        store = await profile.initialize_state_store()

        assert isinstance(store, InMemoryStateStore)
        assert profile.requires_external_services is False
        assert profile.profile_config.redis_enabled is False
        assert repr(profile) == "Profile(name=lite, services_required=False)"


class TestStandardProfile:
    @pytest.mark.asyncio
    async def test_redis_state_when_reachable(self) -> None:
        config = StoreConfig(redis_host="redis.internal", redis_port=6380, key_prefix="guru:")

        with patch("jyoti.profiles.standard.Redis") as redis_cls:
            client = MagicMock()
            client.ping = AsyncMock(return_value=True)
            redis_cls.return_value = client

            store = await StandardProfile(config).initialize_state_store()

        assert isinstance(store, RedisStateStore)
        assert redis_cls.call_args.kwargs["host"] == "redis.internal"
        assert redis_cls.call_args.kwargs["port"] == 6380

    @pytest.mark.asyncio
    async def test_falls_back_when_redis_unreachable(self) -> None:
        with patch("jyoti.profiles.standard.Redis") as redis_cls:
            client = MagicMock()
            client.ping = AsyncMock(side_effect=RedisConnectionError("refused"))
            client.aclose = AsyncMock()
            redis_cls.return_value = client

            store = await StandardProfile(StoreConfig()).initialize_state_store()

        assert isinstance(store, InMemoryStateStore)
        client.aclose.assert_awaited_once()

    def test_requires_external_services(self) -> None:
        assert StandardProfile(StoreConfig()).requires_external_services is True
