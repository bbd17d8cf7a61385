"""Deployment profiles.

Profiles decide where admission state lives:
- Lite profile: in-memory only, zero external dependencies
- Standard profile: Redis, shared by every worker
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from jyoti.profiles.base import BaseProfile, ProfileConfig
from jyoti.profiles.lite import LiteProfile
from jyoti.profiles.standard import StandardProfile

if TYPE_CHECKING:
    from jyoti.config import StoreConfig

# Profile registry
_PROFILE_REGISTRY: dict[str, type[BaseProfile]] = {
    "lite": LiteProfile,
    "standard": StandardProfile,
}


def get_profile(profile_name: str, store_config: StoreConfig) -> BaseProfile:
    """Get profile instance by name.

    Args:
        profile_name: Name of the profile (lite, standard)
        store_config: Store section of the gateway configuration

    Returns:
        Profile instance

    Raises:
        ValueError: If profile name is not recognized

    Examples:
        >>> from jyoti.config import StoreConfig
        >>> get_profile("lite", StoreConfig()).profile_config.name
        'lite'
    """
    profile_class = _PROFILE_REGISTRY.get(profile_name.lower())
    if not profile_class:
        valid_profiles = ", ".join(_PROFILE_REGISTRY.keys())
        raise ValueError(f"Unknown profile: {profile_name}. Valid profiles: {valid_profiles}")
    return profile_class(store_config)


def list_profiles() -> list[str]:
    """List all available profile names.

    Examples:
        >>> list_profiles()
        ['lite', 'standard']
    """
    return list(_PROFILE_REGISTRY.keys())


__all__ = [
    "BaseProfile",
    "LiteProfile",
    "ProfileConfig",
    "StandardProfile",
    "get_profile",
    "list_profiles",
]
