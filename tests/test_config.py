"""Tests for unitab_sync.config — env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the standalone
server bootstrap path: validate_config() and load_config().
"""

import logging

import pytest

from unitab_sync.config import Config, load_config, validate_config

_ENV_VARS = (
    "UNITAB_GITHUB_TOKEN",
    "GITHUB_TOKEN",
    "UNITAB_GIST_ID",
    "UNITAB_DATA_FILE",
    "UNITAB_DEVICE_NAME",
    "UNITAB_DEBOUNCE_SECONDS",
    "UNITAB_MAX_RETRIES",
    "UNITAB_SYNC_INTERVAL_MINUTES",
    "UNITAB_SYNC_ENABLED",
    "UNITAB_DEBUG",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in _ENV_VARS:
        monkeypatch.delenv(key, raising=False)


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config() — URL, strategy and scheduler checks."""

    def test_default_config_is_valid(self):
        validate_config(Config(github_token="ghp_x"))

    def test_trailing_slash_stripped(self):
        config = Config(api_url=" https://github.example.com/api/v3/ ")
        validate_config(config)
        assert config.api_url == "https://github.example.com/api/v3"

    def test_invalid_url_no_scheme(self):
        with pytest.raises(
            ValueError, match="must start with http:// or https://"
        ):
            validate_config(Config(api_url="api.github.com"))

    def test_invalid_url_no_host(self):
        with pytest.raises(ValueError, match="must include a hostname"):
            validate_config(Config(api_url="https://"))

    def test_unknown_conflict_strategy(self):
        with pytest.raises(ValueError, match="Invalid conflict strategy"):
            validate_config(Config(conflict_strategy="newest"))

    def test_zero_retries(self):
        with pytest.raises(ValueError, match="max_retries"):
            validate_config(Config(max_retries=0))

    def test_negative_debounce(self):
        with pytest.raises(ValueError, match="debounce_seconds"):
            validate_config(Config(debounce_seconds=-1))

    def test_negative_sync_interval(self):
        with pytest.raises(ValueError, match="sync_interval_minutes"):
            validate_config(Config(sync_interval_minutes=-5))

    def test_base_delay_above_max(self):
        with pytest.raises(ValueError, match="retry_base_delay"):
            validate_config(Config(retry_base_delay=60, retry_max_delay=30))

    def test_missing_token_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            validate_config(Config())
        assert "No GitHub token configured" in caplog.text

    def test_missing_token_silent_when_disabled(self, caplog):
        with caplog.at_level(logging.WARNING):
            validate_config(Config(sync_enabled=False))
        assert caplog.text == ""


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    """Tests for load_config() precedence: CLI > env > YAML > default."""

    def test_defaults(self):
        config = load_config()
        assert config.github_token is None
        assert config.debounce_seconds == 5.0
        assert config.max_retries == 3
        assert config.sync_enabled is True
        assert config.conflict_strategy == "ask"

    def test_env_token(self, monkeypatch):
        monkeypatch.setenv("UNITAB_GITHUB_TOKEN", " ghp_env ")
        assert load_config().github_token == "ghp_env"

    def test_github_token_fallback(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_generic")
        assert load_config().github_token == "ghp_generic"

    def test_cli_beats_env(self, monkeypatch):
        monkeypatch.setenv("UNITAB_GITHUB_TOKEN", "ghp_env")
        monkeypatch.setenv("UNITAB_DEVICE_NAME", "Env laptop")
        config = load_config(token="ghp_cli", device_name="CLI laptop")
        assert config.github_token == "ghp_cli"
        assert config.device_name == "CLI laptop"

    def test_env_beats_yaml(self, monkeypatch):
        monkeypatch.setenv("UNITAB_GIST_ID", "env-gist")
        config = load_config(yaml_fallbacks={"gist_id": "yaml-gist"})
        assert config.gist_id == "env-gist"

    def test_yaml_beats_default(self):
        config = load_config(
            yaml_fallbacks={
                "debounce_seconds": 2,
                "max_retries": 5,
                "conflict_strategy": "merge",
                "exclude_prefixes": ["file://"],
            }
        )
        assert config.debounce_seconds == 2.0
        assert config.max_retries == 5
        assert config.conflict_strategy == "merge"
        assert config.exclude_prefixes == ["file://"]

    def test_numeric_env(self, monkeypatch):
        monkeypatch.setenv("UNITAB_DEBOUNCE_SECONDS", "0.5")
        monkeypatch.setenv("UNITAB_MAX_RETRIES", "7")
        config = load_config(yaml_fallbacks={"max_retries": 2})
        assert config.debounce_seconds == 0.5
        assert config.max_retries == 7

    def test_sync_interval_sources(self, monkeypatch):
        assert load_config().sync_interval_minutes == 30.0
        assert (
            load_config(yaml_fallbacks={"sync_interval_minutes": 10})
            .sync_interval_minutes
            == 10.0
        )
        monkeypatch.setenv("UNITAB_SYNC_INTERVAL_MINUTES", "0")
        config = load_config(yaml_fallbacks={"sync_interval_minutes": 10})
        assert config.sync_interval_minutes == 0.0

    def test_numeric_env_not_a_number(self, monkeypatch):
        monkeypatch.setenv("UNITAB_MAX_RETRIES", "lots")
        with pytest.raises(ValueError, match="UNITAB_MAX_RETRIES"):
            load_config()

    def test_numeric_env_out_of_range(self, monkeypatch):
        monkeypatch.setenv("UNITAB_DEBOUNCE_SECONDS", "99999")
        with pytest.raises(ValueError, match="between 0 and 3600"):
            load_config()

    def test_sync_enabled_env(self, monkeypatch):
        monkeypatch.setenv("UNITAB_SYNC_ENABLED", "false")
        config = load_config(yaml_fallbacks={"sync_enabled": True})
        assert config.sync_enabled is False

    def test_debug_flag(self, monkeypatch):
        monkeypatch.setenv("UNITAB_DEBUG", "0")
        assert load_config(debug=True).debug is True
        assert load_config().debug is False

    def test_invalid_yaml_value_rejected(self):
        with pytest.raises(ValueError, match="Invalid GitHub API URL"):
            load_config(yaml_fallbacks={"api_url": "ftp://example.com"})
