"""Tab group tool handlers for MCP server.

This module implements the group CRUD tools: list, create, update, delete,
lock toggle, export, import and clear.  Arguments are validated through
``parse_command`` so the MCP surface and ``SyncService.execute`` accept
the same payloads.
"""

import json

import mcp.types as types

from ...commands import parse_command
from ...core.async_utils import run_sync
from ...service import SyncService
from ...sync.models import Group
from .registry import ToolSpec

_TAB_SCHEMA = {
    "type": "object",
    "properties": {
        "url": {"type": "string", "description": "Tab URL (required)"},
        "title": {"type": "string", "description": "Tab title"},
        "favIconUrl": {"type": "string", "description": "Favicon URL"},
        "pinned": {"type": "boolean"},
    },
    "required": ["url"],
}

_GROUP_ID_SCHEMA = {
    "type": "integer",
    "description": "Group id (from tab_groups_list)",
}

# Tool definitions for list_tools()
GROUP_TOOLS = [
    types.Tool(
        name="tab_groups_list",
        description="List saved tab groups with ids, names, tab counts and lock state, plus overall statistics. Set include_tabs=true to list every tab.",
        inputSchema={
            "type": "object",
            "properties": {
                "include_tabs": {
                    "type": "boolean",
                    "description": "Also list each group's tabs (default: false)",
                    "default": False,
                }
            },
            "required": [],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
    ),
    types.Tool(
        name="tab_group_create",
        description="Save tabs as a new group. Tabs with browser-internal URLs (chrome://, about: and similar) are dropped. Schedules an automatic sync.",
        inputSchema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Group name (default: timestamped name)",
                },
                "tabs": {"type": "array", "items": _TAB_SCHEMA},
                "pinned": {"type": "boolean", "default": False},
            },
            "required": ["tabs"],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
    ),
    types.Tool(
        name="tab_group_update",
        description="Rename a group, replace its tabs, or change its pinned flag. Locked groups cannot be renamed.",
        inputSchema={
            "type": "object",
            "properties": {
                "group_id": _GROUP_ID_SCHEMA,
                "name": {"type": "string"},
                "tabs": {"type": "array", "items": _TAB_SCHEMA},
                "pinned": {"type": "boolean"},
            },
            "required": ["group_id"],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
    ),
    types.Tool(
        name="tab_group_delete",
        description="Delete a group. Locked groups cannot be deleted.",
        inputSchema={
            "type": "object",
            "properties": {"group_id": _GROUP_ID_SCHEMA},
            "required": ["group_id"],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
    ),
    types.Tool(
        name="tab_group_toggle_lock",
        description="Lock or unlock a group. Locked groups refuse delete and rename.",
        inputSchema={
            "type": "object",
            "properties": {"group_id": _GROUP_ID_SCHEMA},
            "required": ["group_id"],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=False,
            openWorldHint=False,
        ),
    ),
    types.Tool(
        name="tab_data_export",
        description="Export the whole dataset (groups, settings, device) as a JSON document.",
        inputSchema={"type": "object", "properties": {}, "required": []},
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
    ),
    types.Tool(
        name="tab_data_import",
        description="Replace all groups with those in a JSON document (a full export or a bare list of groups).",
        inputSchema={
            "type": "object",
            "properties": {
                "data": {
                    "type": "string",
                    "description": "JSON text to import (required)",
                }
            },
            "required": ["data"],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
    ),
    types.Tool(
        name="tab_data_clear",
        description="Delete every tab group and setting. Requires confirm=true. Warning: the next sync propagates the empty dataset.",
        inputSchema={
            "type": "object",
            "properties": {
                "confirm": {
                    "type": "boolean",
                    "description": "Must be true",
                }
            },
            "required": ["confirm"],
        },
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=False,
        ),
    ),
]


def _group_json(group: Group) -> dict:
    return group.model_dump(mode="json", by_alias=True)


def _group_line(group: Group) -> str:
    flags = []
    if group.locked:
        flags.append("locked")
    if group.pinned:
        flags.append("pinned")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return f"[{group.id}] {group.name} ({len(group.tabs)} tabs){suffix}"


def _text(text: str, structured: dict | None = None) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_list(service: SyncService, args: dict) -> types.CallToolResult:
    """Handle tab_groups_list.

    Returns:
        CallToolResult with one line per group (optionally followed by its
        tabs) and structured JSON with the groups and statistics.
    """
    groups = await run_sync(service.execute, parse_command({"type": "list_groups"}))
    stats = await run_sync(service.groups.statistics)
    if not groups:
        return _text("No tab groups saved.", {"groups": [], "statistics": stats})

    lines: list[str] = []
    for group in groups:
        lines.append(_group_line(group))
        if args.get("include_tabs"):
            lines.extend(f"  - {t.title or t.url} <{t.url}>" for t in group.tabs)
    lines.append("")
    lines.append(
        f"{stats['groupCount']} groups, {stats['tabCount']} tabs, "
        f"{stats['lockedGroups']} locked"
    )
    return _text(
        "\n".join(lines),
        {"groups": [_group_json(g) for g in groups], "statistics": stats},
    )


async def _handle_create(service: SyncService, args: dict) -> types.CallToolResult:
    """Handle tab_group_create."""
    command = parse_command({**args, "type": "create_group"})
    group = await run_sync(service.execute, command)
    return _text(f"Created group {_group_line(group)}", {"group": _group_json(group)})


async def _handle_update(service: SyncService, args: dict) -> types.CallToolResult:
    """Handle tab_group_update."""
    command = parse_command({**args, "type": "update_group"})
    group = await run_sync(service.execute, command)
    return _text(f"Updated group {_group_line(group)}", {"group": _group_json(group)})


async def _handle_delete(service: SyncService, args: dict) -> types.CallToolResult:
    command = parse_command({**args, "type": "delete_group"})
    await run_sync(service.execute, command)
    return _text(f"Deleted group {command.group_id}", {"deleted": command.group_id})


async def _handle_toggle_lock(
    service: SyncService, args: dict
) -> types.CallToolResult:
    command = parse_command({**args, "type": "toggle_group_lock"})
    group = await run_sync(service.execute, command)
    state = "locked" if group.locked else "unlocked"
    return _text(f"Group {group.id} is now {state}", {"group": _group_json(group)})


async def _handle_export(service: SyncService, args: dict) -> types.CallToolResult:
    """Handle tab_data_export.

    The text content is the document itself so it can be saved verbatim
    and later fed back to tab_data_import.
    """
    exported = await run_sync(service.execute, parse_command({"type": "export_data"}))
    return _text(exported, {"document": json.loads(exported)})


async def _handle_import(service: SyncService, args: dict) -> types.CallToolResult:
    """Handle tab_data_import."""
    command = parse_command({**args, "type": "import_data"})
    count = await run_sync(service.execute, command)
    return _text(f"Imported {count} groups", {"imported": count})


async def _handle_clear(service: SyncService, args: dict) -> types.CallToolResult:
    """Handle tab_data_clear."""
    if args.get("confirm") is not True:
        raise ValueError("tab_data_clear requires confirm=true")
    await run_sync(service.execute, parse_command({"type": "clear_data"}))
    return _text("All tab groups cleared", {"cleared": True})


# ToolSpec list for registry-based dispatch
GROUP_SPECS: list[ToolSpec] = [
    ToolSpec(tool=GROUP_TOOLS[0], writes=False, handler=_handle_list),
    ToolSpec(tool=GROUP_TOOLS[1], writes=True, handler=_handle_create),
    ToolSpec(tool=GROUP_TOOLS[2], writes=True, handler=_handle_update),
    ToolSpec(tool=GROUP_TOOLS[3], writes=True, handler=_handle_delete),
    ToolSpec(tool=GROUP_TOOLS[4], writes=True, handler=_handle_toggle_lock),
    ToolSpec(tool=GROUP_TOOLS[5], writes=False, handler=_handle_export),
    ToolSpec(tool=GROUP_TOOLS[6], writes=True, handler=_handle_import),
    ToolSpec(tool=GROUP_TOOLS[7], writes=True, handler=_handle_clear),
]
