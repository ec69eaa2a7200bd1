"""Runtime configuration for the sync service.

Reads GitHub credentials, storage location and scheduler tuning from CLI
args, environment variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    UNITAB_GITHUB_TOKEN: GitHub token with 'gist' scope (falls back to GITHUB_TOKEN)
    UNITAB_GIST_ID: Existing gist to sync with (optional; located by filename otherwise)
    UNITAB_DATA_FILE: Local JSON document (optional, default: ~/.local/share/unitab/unitab.json)
    UNITAB_DEVICE_NAME: Display name for this device (optional)
    UNITAB_DEBOUNCE_SECONDS: Debounce window for automatic syncs (optional, default: 5)
    UNITAB_MAX_RETRIES: Attempts before a failed sync is dropped (optional, default: 3)
    UNITAB_SYNC_INTERVAL_MINUTES: Periodic sync interval, 0 turns it off (optional, default: 30)
    UNITAB_SYNC_ENABLED: Enable remote sync (optional, default: true)
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = "~/.local/share/unitab/unitab.json"
DEFAULT_EXCLUDE_PREFIXES = (
    "chrome://",
    "chrome-extension://",
    "edge://",
    "about:",
    "moz-extension://",
)
CONFLICT_STRATEGIES = ("ask", "local", "remote", "merge")


@dataclass
class Config:
    github_token: str | None = None
    gist_id: str | None = None
    gist_filename: str = "unitab-data.json"
    api_url: str = "https://api.github.com"
    data_file: str = DEFAULT_DATA_FILE
    device_name: str | None = None
    sync_enabled: bool = True
    debounce_seconds: float = 5.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_multiplier: float = 2.0
    retry_max_delay: float = 30.0
    sync_interval_minutes: float = 30.0
    conflict_strategy: str = "ask"
    exclude_prefixes: list[str] = field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_PREFIXES)
    )
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    debug: bool = False


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If the API URL, retry settings or conflict strategy
            are invalid.
    """
    config.api_url = config.api_url.strip()
    if not config.api_url.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid GitHub API URL '{config.api_url}': must start with http:// or https://"
        )
    if not urlparse(config.api_url).hostname:
        raise ValueError(
            f"Invalid GitHub API URL '{config.api_url}': URL must include a hostname"
        )
    config.api_url = config.api_url.removesuffix("/")

    if config.conflict_strategy not in CONFLICT_STRATEGIES:
        raise ValueError(
            f"Invalid conflict strategy '{config.conflict_strategy}': "
            f"must be one of {', '.join(CONFLICT_STRATEGIES)}"
        )
    if config.max_retries < 1:
        raise ValueError("max_retries must be at least 1")
    if config.debounce_seconds < 0:
        raise ValueError("debounce_seconds cannot be negative")
    if config.sync_interval_minutes < 0:
        raise ValueError("sync_interval_minutes cannot be negative")
    if config.retry_base_delay > config.retry_max_delay:
        raise ValueError(
            "retry_base_delay cannot exceed retry_max_delay"
        )

    if config.sync_enabled and not config.github_token:
        logger.warning(
            "No GitHub token configured; groups are kept locally only. "
            "Set UNITAB_GITHUB_TOKEN to enable remote sync."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def _get_number_env(
    key: str, cast: type, low: float, high: float
) -> float | int | None:
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not (low <= value <= high):
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    token: str | None = None,
    gist_id: str | None = None,
    data_file: str | None = None,
    device_name: str | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        token: Override GitHub token.
        gist_id: Override gist id.
        data_file: Override local data file path.
        device_name: Override device display name.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file
            (see ``config_schema.to_fallbacks``).  Used as fallback when CLI
            arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value from any source is invalid.
    """
    fb = yaml_fallbacks or {}
    defaults = Config()

    # --- String fields: CLI > env > YAML > default ---

    final_token = (
        token
        or os.getenv("UNITAB_GITHUB_TOKEN")
        or os.getenv("GITHUB_TOKEN")
        or fb.get("github_token")
    )
    final_gist_id = gist_id or os.getenv("UNITAB_GIST_ID") or fb.get("gist_id")
    final_data_file = (
        data_file
        or os.getenv("UNITAB_DATA_FILE")
        or fb.get("data_file")
        or defaults.data_file
    )
    final_device_name = (
        device_name
        or os.getenv("UNITAB_DEVICE_NAME")
        or fb.get("device_name")
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("UNITAB_DEBUG")
        final_debug = (
            env_debug
            if env_debug is not None
            else bool(fb.get("debug", False))
        )

    env_enabled = _get_bool_env("UNITAB_SYNC_ENABLED")
    final_enabled = (
        env_enabled
        if env_enabled is not None
        else bool(fb.get("sync_enabled", True))
    )

    # --- Numeric fields: env > YAML > default ---

    env_debounce = _get_number_env(
        "UNITAB_DEBOUNCE_SECONDS", float, 0, 3600
    )
    final_debounce = (
        env_debounce
        if env_debounce is not None
        else float(fb.get("debounce_seconds", defaults.debounce_seconds))
    )
    env_retries = _get_number_env("UNITAB_MAX_RETRIES", int, 1, 20)
    final_retries = (
        env_retries
        if env_retries is not None
        else int(fb.get("max_retries", defaults.max_retries))
    )

    env_interval = _get_number_env(
        "UNITAB_SYNC_INTERVAL_MINUTES", float, 0, 1440
    )
    final_interval = (
        env_interval
        if env_interval is not None
        else float(
            fb.get("sync_interval_minutes", defaults.sync_interval_minutes)
        )
    )

    config = Config(
        github_token=final_token.strip() if final_token else None,
        gist_id=final_gist_id.strip() if final_gist_id else None,
        gist_filename=fb.get("gist_filename", defaults.gist_filename),
        api_url=fb.get("api_url", defaults.api_url),
        data_file=final_data_file,
        device_name=final_device_name,
        sync_enabled=final_enabled,
        debounce_seconds=final_debounce,
        max_retries=final_retries,
        retry_base_delay=float(
            fb.get("retry_base_delay", defaults.retry_base_delay)
        ),
        retry_multiplier=float(
            fb.get("retry_multiplier", defaults.retry_multiplier)
        ),
        retry_max_delay=float(
            fb.get("retry_max_delay", defaults.retry_max_delay)
        ),
        sync_interval_minutes=final_interval,
        conflict_strategy=fb.get(
            "conflict_strategy", defaults.conflict_strategy
        ),
        exclude_prefixes=list(
            fb.get("exclude_prefixes", defaults.exclude_prefixes)
        ),
        connect_timeout=float(
            fb.get("connect_timeout", defaults.connect_timeout)
        ),
        read_timeout=float(fb.get("read_timeout", defaults.read_timeout)),
        debug=final_debug,
    )

    validate_config(config)

    return config
