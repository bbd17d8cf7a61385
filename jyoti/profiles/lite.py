"""Lite profile: in-memory admission state, zero external services."""

from __future__ import annotations

import logging

from jyoti.profiles.base import BaseProfile, ProfileConfig
from jyoti.security.state_store import InMemoryStateStore, StateStore

logger = logging.getLogger(__name__)


class LiteProfile(BaseProfile):
    """Lite profile with zero external dependencies.

    Lite profile characteristics:
    - Rate-limit windows and cooldowns live in process memory
    - State is lost on restart and is not shared between workers
    - Ideal for development, tests and single-process deployments

    Examples:
        >>> from jyoti.config import StoreConfig
        >>> profile = LiteProfile(StoreConfig())
        >>> profile.profile_config.name
        'lite'
        >>> profile.requires_external_services
        False
    """

    def get_profile_config(self) -> ProfileConfig:
        return ProfileConfig(
            name="lite",
            description="Lite profile: In-memory admission state, zero external dependencies",
            redis_enabled=False,
            state_backend="memory",
        )

    async def initialize_state_store(self) -> StateStore:
        logger.info("Lite profile: Using in-memory state store (process-local)")
        return InMemoryStateStore()

    @property
    def requires_external_services(self) -> bool:
        return False
