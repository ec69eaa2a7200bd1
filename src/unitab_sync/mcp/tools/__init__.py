"""MCP tool handlers for tab group and sync operations.

This package contains MCP tool implementations that wrap the SyncService
with async handlers, text reports, and structured error responses.
"""

from .errors import build_error_response, outcome_error_response
from .groups import GROUP_SPECS, GROUP_TOOLS
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = GROUP_SPECS + SYNC_SPECS

__all__ = [
    "build_error_response",
    "outcome_error_response",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    # Spec lists
    "ALL_SPECS",
    "GROUP_SPECS",
    "SYNC_SPECS",
    # Tool lists
    "GROUP_TOOLS",
    "SYNC_TOOLS",
]
