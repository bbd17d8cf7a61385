"""Base profile interface for deployment profiles."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from jyoti.config import StoreConfig
    from jyoti.security.state_store import StateStore


class ProfileConfig(BaseModel):
    """Configuration for a specific deployment profile.

    Attributes:
        name: Profile name (lite, standard)
        description: Human-readable description
        redis_enabled: Whether rate-limit and cooldown state lives in Redis
        state_backend: State store backend type (memory, redis)
    """

    name: str
    description: str
    redis_enabled: bool
    state_backend: str


class BaseProfile(ABC):
    """Base class for deployment profiles.

    Each profile decides where admission state (rate-limit windows and
    cooldowns) lives. Knowledge chunks always live in DuckDB.

    Attributes:
        store_config: Store section of the gateway configuration
        profile_config: Typed profile configuration
    """

    def __init__(self, store_config: StoreConfig) -> None:
        """Initialize profile with configuration.

        Args:
            store_config: Store section of the gateway configuration
        """
        self.store_config = store_config
        self.profile_config = self.get_profile_config()

    @abstractmethod
    def get_profile_config(self) -> ProfileConfig:
        """Get profile-specific configuration."""

    @abstractmethod
    async def initialize_state_store(self) -> StateStore:
        """Create the state store backing admission.

        Returns:
            A ready-to-use StateStore
        """

    @property
    @abstractmethod
    def requires_external_services(self) -> bool:
        """Whether the profile needs services beyond this process."""

    def __repr__(self) -> str:
        return (
            f"Profile(name={self.profile_config.name}, "
            f"services_required={self.requires_external_services})"
        )
