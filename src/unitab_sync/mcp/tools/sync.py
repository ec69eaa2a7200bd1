"""Sync tool handlers for MCP server.

This module implements the replication tools: sync_now, sync_push,
sync_pull, sync_status, sync_resolve_conflict and sync_delete_remote.
Each blocking service call runs in a worker thread via ``run_sync``.
"""

import logging

import mcp.types as types

from ...commands import parse_command
from ...core.async_utils import run_sync
from ...service import SyncService
from ...sync.models import SyncOutcome
from ...sync.reporter import (
    format_conflict,
    format_outcome,
    format_status,
    outcome_to_json,
)
from .errors import outcome_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# Tool definitions for list_tools()
SYNC_TOOLS = [
    types.Tool(
        name="sync_now",
        description="Run a full bidirectional sync with the GitHub Gist now. Uploads, downloads or merges as needed; reports a conflict when both sides diverged.",
        inputSchema={"type": "object", "properties": {}, "required": []},
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
    ),
    types.Tool(
        name="sync_push",
        description="Upload local tab groups, overwriting the remote document. Use to settle a conflict in favour of this device or to replace a malformed remote.",
        inputSchema={"type": "object", "properties": {}, "required": []},
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
    ),
    types.Tool(
        name="sync_pull",
        description="Replace local tab groups with the remote document.",
        inputSchema={"type": "object", "properties": {}, "required": []},
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
    ),
    types.Tool(
        name="sync_status",
        description="Show the current sync status, last sync time and any conflict waiting for resolution.",
        inputSchema={"type": "object", "properties": {}, "required": []},
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
    ),
    types.Tool(
        name="sync_resolve_conflict",
        description="Resolve the pending sync conflict. 'local' keeps this device's groups, 'remote' takes the Gist's, 'merge' combines both (newer edits win per group). The result is uploaded.",
        inputSchema={
            "type": "object",
            "properties": {
                "resolution": {
                    "type": "string",
                    "enum": ["local", "remote", "merge"],
                    "description": "How to resolve the conflict (required)",
                }
            },
            "required": ["resolution"],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=False,
            openWorldHint=True,
        ),
    ),
    types.Tool(
        name="sync_delete_remote",
        description="Delete the remote Gist document. Local groups are kept; the next sync uploads them again. Requires confirm=true.",
        inputSchema={
            "type": "object",
            "properties": {
                "confirm": {"type": "boolean", "description": "Must be true"}
            },
            "required": ["confirm"],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
    ),
]


def _outcome_result(outcome: SyncOutcome) -> types.CallToolResult:
    if not outcome.success:
        return outcome_error_response(outcome)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_outcome(outcome))],
        structuredContent=outcome_to_json(outcome),
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_sync_now(
    service: SyncService, args: dict
) -> types.CallToolResult:
    """Handle sync_now."""
    outcome = await run_sync(service.execute, parse_command({"type": "sync"}))
    return _outcome_result(outcome)


async def _handle_push(service: SyncService, args: dict) -> types.CallToolResult:
    outcome = await run_sync(service.execute, parse_command({"type": "push"}))
    return _outcome_result(outcome)


async def _handle_pull(service: SyncService, args: dict) -> types.CallToolResult:
    outcome = await run_sync(service.execute, parse_command({"type": "pull"}))
    return _outcome_result(outcome)


async def _handle_status(
    service: SyncService, args: dict
) -> types.CallToolResult:
    """Handle sync_status.

    Returns:
        CallToolResult with the status line (plus the conflict report when
        one is pending) and structured JSON mirroring ``SyncStatusInfo``.
    """
    status = await run_sync(service.execute, parse_command({"type": "get_status"}))
    lines = [format_status(status)]
    if not service.sync_enabled:
        lines.append("Automatic sync is disabled.")

    structured = status.model_dump(mode="json", by_alias=True)
    structured["syncEnabled"] = service.sync_enabled
    structured["pendingTasks"] = len(service.scheduler.pending_tasks)

    conflict = service.pending_conflict
    structured["conflictPending"] = conflict is not None
    if conflict is not None:
        lines.append("")
        lines.append(format_conflict(conflict))

    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=structured,
    )


async def _handle_resolve(
    service: SyncService, args: dict
) -> types.CallToolResult:
    """Handle sync_resolve_conflict."""
    command = parse_command({**args, "type": "resolve_conflict"})
    outcome = await run_sync(service.execute, command)
    if not outcome.success:
        logger.warning("Conflict resolution incomplete: %s", outcome.message)
    return _outcome_result(outcome)


async def _handle_delete_remote(
    service: SyncService, args: dict
) -> types.CallToolResult:
    """Handle sync_delete_remote."""
    if args.get("confirm") is not True:
        raise ValueError("sync_delete_remote requires confirm=true")
    outcome = await run_sync(service.delete_remote)
    if not outcome.success:
        return outcome_error_response(outcome)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=outcome.message)],
        structuredContent=outcome_to_json(outcome),
    )


# ToolSpec list for registry-based dispatch
SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], writes=True, handler=_handle_sync_now),
    ToolSpec(tool=SYNC_TOOLS[1], writes=True, handler=_handle_push),
    ToolSpec(tool=SYNC_TOOLS[2], writes=True, handler=_handle_pull),
    ToolSpec(tool=SYNC_TOOLS[3], writes=False, handler=_handle_status),
    ToolSpec(tool=SYNC_TOOLS[4], writes=True, handler=_handle_resolve),
    ToolSpec(tool=SYNC_TOOLS[5], writes=True, handler=_handle_delete_remote),
]
