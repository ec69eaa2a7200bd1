"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human intervention.
"""

import mcp.types as types

from ...errors import ErrorKind
from ...sync.models import SyncOutcome
from ...sync.reporter import format_conflict


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, locked, validation_error,
            authentication, network, conflict, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Group 42 not found", "Use tab_groups_list to see existing groups.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


_CORRECTIVE_ACTIONS: dict[ErrorKind, str] = {
    ErrorKind.AUTHENTICATION: (
        "Set UNITAB_GITHUB_TOKEN to a GitHub token with the 'gist' scope "
        "and restart the server."
    ),
    ErrorKind.NETWORK: (
        "GitHub is unreachable or rate limited. Retry later with sync_now."
    ),
    ErrorKind.CONFLICT: (
        "Call sync_resolve_conflict with resolution 'local', 'remote' or "
        "'merge'."
    ),
    ErrorKind.VALIDATION: (
        "The remote document is malformed. Use sync_push to overwrite it "
        "with local data."
    ),
    ErrorKind.NOT_FOUND: (
        "No remote data exists yet. Use sync_push to create it."
    ),
}


def outcome_error_response(outcome: SyncOutcome) -> types.CallToolResult:
    """Translate a failed ``SyncOutcome`` into an error response."""
    kind = outcome.error_kind
    message = outcome.message or "Sync failed"
    if outcome.conflict is not None:
        message = f"{message}\n\n{format_conflict(outcome.conflict)}"
    if kind is None:
        return build_error_response(
            "server_error", message, "Check the server log and retry."
        )
    return build_error_response(
        kind.value, message, _CORRECTIVE_ACTIONS[kind]
    )
