"""
Hierarchical YAML configuration loader for unitab_sync.

Finds config files by convention, expands ``!include`` directives and
``${VAR}`` / ``${VAR:-default}`` references, and merges user-level and
project-level files section by section.

Usage:
    from unitab_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

PROJECT_CONFIG = Path(".unitab") / "config.yml"
USER_CONFIG = Path(".config") / "unitab" / "config.yml"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    there is none.  A ``${`` without a closing brace is left alone.
    """

    def _expand(match: re.Match) -> str:
        current = os.environ.get(match.group(1))
        if current:
            return current
        return match.group(2) or ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_tree(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _interpolate_tree(item) for key, item in node.items()}
    if isinstance(node, list):
        return [_interpolate_tree(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# YAML !include support
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """``SafeLoader`` subclass that understands ``!include <path>``.

    Include paths are relative to the including file.  The chain of files
    being loaded is tracked so include cycles fail loudly.
    """

    include_chain: tuple[Path, ...] = ()


def _construct_include(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node)).expanduser()
    source = Path(loader.name).resolve()
    if not target.is_absolute():
        target = source.parent / target
    target = target.resolve()

    if target in loader.include_chain:
        chain = " -> ".join(str(p) for p in (*loader.include_chain, target))
        raise ValueError(f"Circular include detected: {chain}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {source})"
        )
    return load_yaml_file(target, _chain=(*loader.include_chain, target))


ConfigLoader.add_constructor("!include", _construct_include)


def load_yaml_file(path: Path, *, _chain: tuple[Path, ...] = ()) -> Any:
    """Parse one YAML file, expanding ``!include`` directives."""
    path = path.resolve()
    with open(path, encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.include_chain = _chain or (path,)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``UNITAB_CONFIG`` env var (explicit single path)
        2. ``.unitab/config.yml`` in the current directory (project)
        3. ``~/.config/unitab/config.yml`` (user)
    """
    candidates: list[Path] = []
    explicit = os.environ.get("UNITAB_CONFIG")
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates.append(Path.cwd() / PROJECT_CONFIG)
    candidates.append(Path.home() / USER_CONFIG)

    found: list[Path] = []
    for path in candidates:
        if path.exists() and path not in found:
            found.append(path)
    return found


_STARTER_CONFIG = """\
# unitab-sync configuration
#
# Values may reference environment variables: ${VAR} or ${VAR:-default}.
# The GitHub token is best supplied via UNITAB_GITHUB_TOKEN.
#
# github:
#   token: ${UNITAB_GITHUB_TOKEN}
#   gist_id: null
#   filename: unitab-data.json
#
# sync:
#   enabled: true
#   debounce_seconds: 5
#   max_retries: 3
#   conflict_strategy: ask   # ask | local | remote | merge
#
# storage:
#   data_file: ~/.local/share/unitab/unitab.json
#   device_name: null
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to create the starter file.  Defaults to
            ``.unitab/config.yml`` in the current directory.

    Returns:
        Path to the existing or newly created config file.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]

    path = target or Path.cwd() / PROJECT_CONFIG
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


# ---------------------------------------------------------------------------
# Hierarchical merge
# ---------------------------------------------------------------------------


def _merge_sections(base: dict[str, Any], override: dict[str, Any]) -> None:
    """Merge *override* into *base*; mapping sections merge key by key."""
    for section, value in override.items():
        current = base.get(section)
        if isinstance(current, dict) and isinstance(value, dict):
            base[section] = {**current, **value}
        else:
            base[section] = value


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest to highest precedence.  Within a
    section (``github``, ``sync`` ...) the higher-precedence file wins per
    key, so a project file can override just ``sync.debounce_seconds``.
    Env var references are expanded after merging.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found; using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        data = load_yaml_file(path)
        if isinstance(data, dict):
            _merge_sections(merged, data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-mapping root (%s); skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
