"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, to_fallbacks
from ..core.async_utils import run_sync
from ..service import SyncService

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config files if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Build the SyncService (local store, Gist provider, scheduler)
    - Run the startup sync; failures are logged, never fatal, so the
      server stays usable with local data while GitHub is unreachable

    On shutdown:
    - Disable the scheduler so no timer fires after the loop exits

    Args:
        config_overrides: Optional dict with config values from CLI
            (token, gist_id, data_file, device_name, debug)

    Yields:
        Dict with 'service' key containing the initialized SyncService

    Raises:
        RuntimeError: If configuration is invalid or the data file is unreadable.
    """
    logger.info("MCP server starting...")
    _stderr_print("unitab-sync MCP server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            raw = load_hierarchical_config()
            yaml_fallbacks = to_fallbacks(build_config(raw))
            sources.append(
                "config files: " + ", ".join(str(p) for p in config_files)
            )

        overrides = config_overrides or {}
        config = load_config(
            token=overrides.get("token"),
            gist_id=overrides.get("gist_id"),
            data_file=overrides.get("data_file"),
            device_name=overrides.get("device_name"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  Data file: {config.data_file}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(f"Configuration error: {e}") from e

    try:
        service = SyncService(config)
        # Surfaces an unreadable data file now rather than on first tool call
        await run_sync(service.store.get)
    except ValueError as e:
        logger.error("Failed to open data file: %s", e)
        _stderr_print(f"ERROR: Cannot read data file {config.data_file}")
        _stderr_print(f"  {e}")
        raise RuntimeError(f"Data file error: {e}") from e

    if not config.github_token:
        _stderr_print("  No GitHub token: remote sync disabled until one is set.")
    elif not config.sync_enabled:
        _stderr_print("  Sync disabled by configuration.")
    else:
        _stderr_print("  Checking remote for updates...")
        try:
            outcome = await run_sync(service.startup_sync)
        except Exception as e:
            logger.exception("Startup sync crashed")
            _stderr_print(f"  Startup sync failed: {e}")
        else:
            if outcome is None:
                _stderr_print("  Already up to date.")
            elif outcome.success:
                _stderr_print(f"  Startup sync: {outcome.message or 'ok'}")
            else:
                logger.warning("Startup sync failed: %s", outcome.message)
                _stderr_print(f"  Startup sync failed: {outcome.message}")

    service.start_periodic_sync()
    if config.sync_interval_minutes > 0:
        _stderr_print(
            f"  Periodic sync every {config.sync_interval_minutes:g} minutes."
        )

    _stderr_print("Server ready. Waiting for MCP client connection...")

    try:
        yield {"service": service}
    finally:
        logger.info("MCP server shutting down")
        service.close()
        _stderr_print("unitab-sync MCP server shutting down.")
