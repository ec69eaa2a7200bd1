"""Unified configuration schema for unitab_sync.

Defines Pydantic models for the YAML config structure with dedicated
sections for the GitHub remote, sync scheduling and local storage.
``to_fallbacks()`` flattens a validated config into the dict
``load_config()`` consumes as its lowest-priority source.

Usage:
    from unitab_sync.config_schema import build_config, to_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class GithubConfig(BaseModel):
    """GitHub Gist remote settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    token: str | None = Field(
        default=None, description="GitHub token with 'gist' scope"
    )
    gist_id: str | None = Field(
        default=None, description="Existing gist id to sync with"
    )
    filename: str = Field(
        default="unitab-data.json", description="File name inside the gist"
    )
    api_url: str = Field(
        default="https://api.github.com", description="GitHub API base URL"
    )
    connect_timeout: float = Field(default=10.0, gt=0)
    read_timeout: float = Field(default=60.0, gt=0)

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Scheduler and conflict-handling settings."""

    enabled: bool = Field(default=True, description="Enable remote sync")
    debounce_seconds: float = Field(
        default=5.0,
        ge=0,
        le=3600,
        description="Window that coalesces automatic sync triggers",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Failed attempts before a sync task is dropped",
    )
    base_delay: float = Field(default=1.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, gt=0)
    sync_interval_minutes: float = Field(
        default=30.0,
        ge=0,
        le=1440,
        description="Periodic sync interval in minutes; 0 turns it off",
    )
    conflict_strategy: Literal["ask", "local", "remote", "merge"] = Field(
        default="ask",
        description="How to resolve conflicts without asking",
    )

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    """Local document settings."""

    data_file: str | None = Field(
        default=None, description="Path of the local JSON document"
    )
    device_name: str | None = Field(
        default=None, description="Display name for this device"
    )
    exclude_prefixes: list[str] | None = Field(
        default=None,
        description="URL prefixes never saved in groups",
    )

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    github: GithubConfig = Field(default_factory=GithubConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config() fallbacks
# ---------------------------------------------------------------------------


def to_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten *unified* into the keyword names used by ``Config``.

    ``None`` values are omitted so they never shadow built-in defaults.

    Args:
        unified: The unified config produced by ``build_config()``.

    Returns:
        Flat dict suitable for ``load_config(yaml_fallbacks=...)``.
    """
    github, sync, storage = unified.github, unified.sync, unified.storage
    flat = {
        "github_token": github.token,
        "gist_id": github.gist_id,
        "gist_filename": github.filename,
        "api_url": github.api_url,
        "connect_timeout": github.connect_timeout,
        "read_timeout": github.read_timeout,
        "sync_enabled": sync.enabled,
        "debounce_seconds": sync.debounce_seconds,
        "max_retries": sync.max_retries,
        "retry_base_delay": sync.base_delay,
        "retry_multiplier": sync.multiplier,
        "retry_max_delay": sync.max_delay,
        "sync_interval_minutes": sync.sync_interval_minutes,
        "conflict_strategy": sync.conflict_strategy,
        "data_file": storage.data_file,
        "device_name": storage.device_name,
        "exclude_prefixes": storage.exclude_prefixes,
    }
    return {k: v for k, v in flat.items() if v is not None}
