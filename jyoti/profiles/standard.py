"""Standard profile: Redis-backed admission state shared across workers."""

from __future__ import annotations

import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from jyoti.profiles.base import BaseProfile, ProfileConfig
from jyoti.security.state_store import InMemoryStateStore, RedisStateStore, StateStore

logger = logging.getLogger(__name__)


class StandardProfile(BaseProfile):
    """Standard profile for multi-worker production deployments.

    Standard profile characteristics:
    - Rate-limit windows and cooldowns live in Redis, so every worker
      enforces the same budgets
    - Each state operation is a single atomic Lua script per key

    Graceful degradation:
    - Falls back to the in-memory state store if Redis is unreachable at
      startup, logs a warning and continues

    Examples:
        >>> from jyoti.config import StoreConfig
        >>> profile = StandardProfile(StoreConfig(redis_host="localhost"))
        >>> profile.profile_config.redis_enabled
        True
    """

    def get_profile_config(self) -> ProfileConfig:
        return ProfileConfig(
            name="standard",
            description="Standard profile: Redis admission state shared across workers",
            redis_enabled=True,
            state_backend="redis",
        )

    async def initialize_state_store(self) -> StateStore:
        """Connect to Redis, falling back to in-memory state.

        Returns:
            RedisStateStore if Redis answers a ping, InMemoryStateStore otherwise
        """
        host = self.store_config.redis_host
        port = self.store_config.redis_port
        logger.info(f"Standard profile: Connecting to Redis at {host}:{port}")

        client = Redis(
            host=host,
            port=port,
            db=self.store_config.redis_db,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            await client.aclose()
            logger.warning(
                f"Standard profile: Redis unavailable ({e}), using in-memory state store. "
                "Start Redis with: docker run -d -p 6379:6379 redis"
            )
            return InMemoryStateStore()

        logger.info("Standard profile: Redis state store initialized successfully")
        return RedisStateStore(client, key_prefix=self.store_config.key_prefix)

    @property
    def requires_external_services(self) -> bool:
        return True
