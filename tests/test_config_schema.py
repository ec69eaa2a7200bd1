"""Tests for the unified config schema and the load_config() adapter.

Tests the Pydantic section models (GithubConfig, SyncConfig,
StorageConfig), the build_config() factory, and the to_fallbacks()
flattening consumed by load_config().
"""

import pytest
from pydantic import ValidationError

from unitab_sync.config import load_config
from unitab_sync.config_schema import (
    GithubConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
    to_fallbacks,
)

# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    """Tests for the top-level UnifiedConfig model."""

    def test_zero_config_is_valid(self):
        config = UnifiedConfig()
        assert config.github.token is None
        assert config.github.filename == "unitab-data.json"
        assert config.sync.conflict_strategy == "ask"
        assert config.storage.exclude_prefixes is None

    def test_frozen(self):
        with pytest.raises(ValidationError):
            GithubConfig().token = "x"


class TestSyncConfig:
    def test_bounds(self):
        with pytest.raises(ValidationError):
            SyncConfig(max_retries=0)
        with pytest.raises(ValidationError):
            SyncConfig(debounce_seconds=-1)

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            SyncConfig(conflict_strategy="newest")


class TestBuildConfig:
    def test_empty_dict(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        config = build_config({"sync": {"debounce_seconds": 2}})
        assert config.sync.debounce_seconds == 2
        assert config.sync.max_retries == 3
        assert config.github.api_url == "https://api.github.com"


# ---------------------------------------------------------------------------
# to_fallbacks()
# ---------------------------------------------------------------------------


class TestToFallbacks:
    def test_none_values_omitted(self):
        flat = to_fallbacks(UnifiedConfig())
        assert "github_token" not in flat
        assert "data_file" not in flat
        assert flat["max_retries"] == 3

    def test_section_fields_renamed(self):
        flat = to_fallbacks(
            build_config(
                {
                    "github": {"token": "ghp_yaml", "filename": "tabs.json"},
                    "sync": {
                        "base_delay": 0.5,
                        "enabled": False,
                        "sync_interval_minutes": 15,
                    },
                    "storage": {"device_name": "Desk"},
                }
            )
        )
        assert flat["github_token"] == "ghp_yaml"
        assert flat["gist_filename"] == "tabs.json"
        assert flat["retry_base_delay"] == 0.5
        assert flat["sync_enabled"] is False
        assert flat["sync_interval_minutes"] == 15
        assert flat["device_name"] == "Desk"

    def test_feeds_load_config(self, monkeypatch):
        for key in ("UNITAB_GITHUB_TOKEN", "GITHUB_TOKEN", "UNITAB_SYNC_ENABLED"):
            monkeypatch.delenv(key, raising=False)
        fallbacks = to_fallbacks(
            build_config(
                {
                    "github": {"token": "ghp_yaml"},
                    "sync": {"conflict_strategy": "remote", "max_delay": 10},
                }
            )
        )

        config = load_config(yaml_fallbacks=fallbacks)

        assert config.github_token == "ghp_yaml"
        assert config.conflict_strategy == "remote"
        assert config.retry_max_delay == 10.0
