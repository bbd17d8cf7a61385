"""Gateway configuration management with environment variable overrides.

This module provides centralized configuration management with support for:
- Environment variable overrides (highest priority)
- YAML config file loading
- Pydantic validation

Priority order for configuration values:
1. Environment variables (JYOTI_*, nested with ``__``)
2. YAML config file (``JYOTI_CONFIG`` or ``--config``)
3. Pydantic defaults (lowest priority)
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jyoti.security.fingerprint import parse_trusted_proxies

logger = logging.getLogger(__name__)


class ScopeLimit(BaseModel):
    """Fixed-window budget for one request scope."""

    limit: int = Field(default=20, ge=1)
    window_seconds: float = Field(default=60.0, gt=0)


class AdmissionConfig(BaseModel):
    """Admission gate configuration.

    Attributes:
        max_payload_bytes: Hard ceiling on request body size
        scopes: Per-scope fixed-window budgets
        default_scope: Budget applied to scopes with no explicit entry
        pacing_cooldown_ms: Cooldown set after every admitted request (0 disables)
        bot_cooldown_ms: Punitive cooldown set on a bot verdict
        trusted_proxies: Proxy addresses or CIDRs whose forwarding headers are believed
    """

    max_payload_bytes: int = Field(default=500_000, gt=0)
    scopes: dict[str, ScopeLimit] = Field(
        default_factory=lambda: {"chat": ScopeLimit(limit=20, window_seconds=60.0)}
    )
    default_scope: ScopeLimit = Field(default_factory=ScopeLimit)
    pacing_cooldown_ms: int = Field(default=0, ge=0)
    bot_cooldown_ms: int = Field(default=60_000, ge=0)
    trusted_proxies: list[str] = Field(default_factory=list)

    @field_validator("trusted_proxies")
    @classmethod
    def validate_trusted_proxies(cls, v: list[str]) -> list[str]:
        """Every entry must be an IP address or network."""
        parse_trusted_proxies(v)
        return [cidr.strip() for cidr in v]


class AbuseConfig(BaseModel):
    """Suspicious-content and bot heuristics configuration."""

    char_flood_threshold: int = 30
    word_flood_ratio: float = 0.6
    word_flood_min_words: int = 10
    symbol_run_threshold: int = 40
    burst_limit: int = 8
    burst_window_ms: int = 10_000
    repeat_limit: int = 3
    history_horizon_ms: int = 60_000
    cadence_min_intervals: int = 5
    cadence_max_spread_ms: int = 50
    max_tracked_fingerprints: int = 10_000


class RetrievalConfig(BaseModel):
    """Retrieval subsystem configuration.

    Attributes:
        enabled: When False every retrieval returns a degraded result
        top_k: Default number of chunks returned
        context_hint_chars: Truncation applied to the optional context hint
        doc_type: Document type tag retrieval filters on
        failure_threshold: Consecutive failures before the breaker opens
        recovery_timeout_seconds: Seconds the breaker stays open
    """

    enabled: bool = True
    top_k: int = Field(default=5, ge=1, le=50)
    context_hint_chars: int = 500
    doc_type: str = "guru"
    failure_threshold: int = 5
    recovery_timeout_seconds: float = 30.0


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""

    provider: Literal["sentence-transformers", "openai", "hash"] = "sentence-transformers"
    model_name: str = "all-MiniLM-L6-v2"
    dimension: int = Field(default=384, gt=0)
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    timeout_seconds: float = 10.0


class GenerationConfig(BaseModel):
    """Generation provider configuration."""

    provider: Literal["openai", "template"] = "openai"
    model_name: str = "gpt-4o-mini"
    base_url: str = "https://api.openai.com/v1"
    api_key: str | None = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = 1200
    timeout_seconds: float = 25.0
    history_turns: int = Field(default=10, ge=0)


class StreamingConfig(BaseModel):
    """Streaming delivery configuration."""

    deadline_seconds: float = Field(default=30.0, gt=0)
    chunk_chars: int = Field(default=24, ge=1)
    chunk_delay_ms: int = Field(default=0, ge=0)


class SafetyConfig(BaseModel):
    """Post-generation safety filter configuration."""

    enabled: bool = True
    supportive_note_enabled: bool = True


class StoreConfig(BaseModel):
    """State and knowledge store configuration.

    Attributes:
        database_path: DuckDB file for knowledge chunks (``:memory:`` for tests)
        redis_host: Redis hostname (standard profile)
        redis_port: Redis port
        redis_db: Redis database number
        key_prefix: Prefix for every state-store key
    """

    database_path: str = Field(default_factory=lambda: os.getenv("JYOTI_DATABASE_PATH", ":memory:"))
    redis_host: str = Field(default_factory=lambda: os.getenv("JYOTI_REDIS_HOST", "localhost"))
    redis_port: int = Field(default_factory=lambda: int(os.getenv("JYOTI_REDIS_PORT", "6379")))
    redis_db: int = 0
    key_prefix: str = "jyoti:"


class JyotiConfig(BaseSettings):
    """Main gateway configuration.

    This class loads configuration from multiple sources:
    1. Environment variables (JYOTI_*)
    2. YAML config file (if JYOTI_CONFIG is set)
    3. Pydantic defaults

    Attributes:
        profile: Deployment profile (lite, standard)
        environment: Deployment environment name
        api_host: HTTP bind address
        api_port: HTTP port
        debug: Enable debug logging
        metrics_enabled: Expose the Prometheus endpoint
    """

    profile: str = Field(default_factory=lambda: os.getenv("JYOTI_PROFILE", "lite"))
    environment: str = Field(default_factory=lambda: os.getenv("JYOTI_ENVIRONMENT", "development"))

    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    abuse: AbuseConfig = Field(default_factory=AbuseConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    streaming: StreamingConfig = Field(default_factory=StreamingConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    api_host: str = "127.0.0.1"
    api_port: int = Field(default_factory=lambda: int(os.getenv("JYOTI_API_PORT", "8790")))
    debug: bool = False
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        env_prefix="jyoti_",
        extra="ignore",
    )

    @field_validator("profile")
    @classmethod
    def normalize_profile(cls, v: str) -> str:
        """Profile names are case-insensitive."""
        return v.strip().lower()

    def scope_limit(self, scope: str) -> ScopeLimit:
        """Budget for ``scope``, falling back to the default scope."""
        return self.admission.scopes.get(scope, self.admission.default_scope)


def load_config_from_file(config_path: str) -> dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary (empty when the file is missing or unreadable)
    """
    path = Path(config_path).expanduser()
    if not path.exists():
        logger.warning(f"Config file not found: {config_path}")
        return {}

    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config from {config_path}: {e}")
        return {}

    if not isinstance(config, dict):
        logger.error(f"Config file {config_path} must contain a mapping, got {type(config).__name__}")
        return {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_config(config_path: str | None = None) -> JyotiConfig:
    """Get configuration instance.

    Args:
        config_path: Optional path to YAML config file. Falls back to the
            ``JYOTI_CONFIG`` environment variable.

    Returns:
        JyotiConfig instance
    """
    config_path = config_path or os.getenv("JYOTI_CONFIG")
    if config_path:
        file_config = load_config_from_file(config_path)
        # Init kwargs outrank env vars in pydantic-settings, so drop any
        # file values an environment variable already provides.
        return JyotiConfig(**_without_env_overrides(file_config))

    return JyotiConfig()


def _without_env_overrides(file_config: dict[str, Any]) -> dict[str, Any]:
    """Drop file leaves that a ``JYOTI_*`` variable sets, nested via ``__``."""
    pruned = copy.deepcopy(file_config)
    for key in os.environ:
        if not key.upper().startswith("JYOTI_"):
            continue
        path = key[len("JYOTI_") :].lower().split("__")
        node: Any = pruned
        for part in path[:-1]:
            node = node.get(part) if isinstance(node, dict) else None
        if isinstance(node, dict):
            node.pop(path[-1], None)
    return pruned
