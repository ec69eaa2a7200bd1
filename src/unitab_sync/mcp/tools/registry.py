"""ToolSpec and ToolRegistry for read-only tool filtering.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, whether the tool
  writes data, and an async handler with standardized signature
  (service, args) -> CallToolResult.
- ToolRegistry: Drops write tools in read-only mode at construction time,
  then provides list_tools() and call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...commands import CommandError
from ...errors import GroupLockedError, GroupNotFoundError
from ...service import SyncService
from .errors import build_error_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable specification for a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        writes: True if the tool modifies local or remote data.  Write
            tools are hidden in read-only mode.
        handler: Async handler with signature (service, args) -> CallToolResult.
    """

    tool: types.Tool
    writes: bool
    handler: Callable[[SyncService, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs, optionally limited to read-only tools."""

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {
            spec.tool.name: spec
            for spec in specs
            if not (read_only and spec.writes)
        }

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        service: SyncService,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Group-service rejections, validation errors and unexpected
        exceptions are translated into structured CallToolResult responses
        with corrective actions.

        Args:
            name: Tool name to invoke.
            arguments: Tool arguments (may be None).
            service: SyncService instance.

        Returns:
            CallToolResult from the handler.

        Raises:
            ValueError: If tool name is not registered (unknown or filtered out).
        """
        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(service, args)
        except GroupNotFoundError as e:
            return build_error_response(
                "not_found",
                str(e),
                "Use tab_groups_list to see existing group ids.",
            )
        except GroupLockedError as e:
            return build_error_response(
                "locked",
                str(e),
                "Unlock the group with tab_group_toggle_lock first.",
            )
        except (CommandError, ValueError) as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and retry.",
            )
