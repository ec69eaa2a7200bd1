"""MCP Server for tab group sync using stdio transport.

This module implements the Model Context Protocol server that lets AI
agents manage saved tab groups and their GitHub Gist replica via
standardized tools.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import DEFAULT_LOG_FILE, setup_logging
from ..service import SyncService
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("unitab-sync")

# Global service instance (initialized in lifespan)
_sync_service: SyncService | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_service() -> SyncService:
    """Get the global SyncService instance.

    Raises:
        RuntimeError: If service is not initialized
    """
    if _sync_service is None:
        raise RuntimeError(
            "SyncService not initialized. Server lifespan not started."
        )
    return _sync_service


def set_service(service: SyncService | None) -> None:
    global _sync_service
    _sync_service = service


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available tools (write tools are hidden in read-only mode)."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    service = get_service()
    try:
        return await get_registry().call_tool(name, arguments, service)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), builds the
    SyncService via the lifespan manager, and serves JSON-RPC over stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (token, gist_id, data_file, device_name, read_only, log_file, debug)
    """
    overrides = config_overrides or {}

    # Must run BEFORE stdio_server so nothing reaches stdout during negotiation
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    read_only = bool(overrides.get("read_only"))
    registry = ToolRegistry(ALL_SPECS, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    if read_only:
        print(
            f"Read-only mode: {registry.tool_count()} of "
            f"{len(ALL_SPECS)} tools enabled",
            file=sys.stderr,
        )

    set_registry(registry)

    # set_service() is called here rather than in the lifespan so that
    # running as `python -m unitab_sync.mcp.server` updates the __main__
    # module's global, not a second imported copy.
    async with server_lifespan(config_overrides=config_overrides) as ctx:
        set_service(ctx["service"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="unitab-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_service(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="unitab-sync - MCP server for saved tab groups synced through a GitHub Gist",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .unitab/config.yml)
  unitab-sync

  # Sync with a specific gist
  unitab-sync --gist-id 0123456789abcdef

  # Keep data somewhere else and name this device
  unitab-sync --data-file ~/tabs.json --device-name "Work laptop"

  # Expose only read tools (list, export, status)
  unitab-sync --read-only

  # Custom log file location
  unitab-sync --log-file /var/log/unitab-sync.log

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--token",
        help="Override GitHub token (takes precedence over UNITAB_GITHUB_TOKEN and config files)"
        " (visible in process list -- prefer UNITAB_GITHUB_TOKEN env var for security)",
    )
    parser.add_argument(
        "--gist-id",
        help="Gist to sync with (default: located by filename, created on first upload)",
    )
    parser.add_argument(
        "--data-file",
        help="Local data file path (takes precedence over UNITAB_DATA_FILE)",
    )
    parser.add_argument(
        "--device-name",
        help="Display name recorded as the last writer of synced data",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only expose tools that do not modify local or remote data",
    )
    parser.add_argument(
        "--log-file",
        default=DEFAULT_LOG_FILE,
        help=f"Log file path (default: {DEFAULT_LOG_FILE})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"unitab-sync version {__version__}",
    )

    args = parser.parse_args()

    # Build config overrides dict from CLI args
    config_overrides = {}
    if args.token:
        config_overrides["token"] = args.token
    if args.gist_id:
        config_overrides["gist_id"] = args.gist_id
    if args.data_file:
        config_overrides["data_file"] = args.data_file
    if args.device_name:
        config_overrides["device_name"] = args.device_name
    if args.read_only:
        config_overrides["read_only"] = True
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.debug:
        config_overrides["debug"] = True

    # Log config overrides to stderr (before stdio transport starts)
    if config_overrides:
        override_keys = [k for k in config_overrides if k != "token"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
