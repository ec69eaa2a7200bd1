"""Tests for mcp/tools/errors.py — error response builders.

Covers:
- build_error_response() structure and format
- outcome_error_response() mapping from ErrorKind to corrective actions
"""

import mcp.types as types
from conftest import REMOTE_DEVICE, make_dataset, make_group

from unitab_sync.errors import ErrorKind
from unitab_sync.mcp.tools.errors import build_error_response, outcome_error_response
from unitab_sync.sync.models import Conflict, ConflictType, SyncAction, SyncOutcome


def _get_error_text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


class TestBuildErrorResponse:
    """Tests for build_error_response()."""

    def test_is_error_result(self):
        result = build_error_response("not_found", "Group 1 not found", "List groups")
        assert isinstance(result, types.CallToolResult)
        assert result.isError is True
        assert len(result.content) == 1

    def test_format(self):
        result = build_error_response("locked", "Group 1 is locked", "Unlock it")
        assert _get_error_text(result) == (
            "Error (locked): Group 1 is locked\n\nAction: Unlock it"
        )


class TestOutcomeErrorResponse:
    """Tests for outcome_error_response()."""

    def test_network(self):
        outcome = SyncOutcome.failure(ErrorKind.NETWORK, "GitHub unreachable")
        text = _get_error_text(outcome_error_response(outcome))
        assert text.startswith("Error (network): GitHub unreachable")
        assert "sync_now" in text

    def test_authentication(self):
        outcome = SyncOutcome.failure(ErrorKind.AUTHENTICATION, "bad credentials")
        text = _get_error_text(outcome_error_response(outcome))
        assert "UNITAB_GITHUB_TOKEN" in text

    def test_every_kind_has_an_action(self):
        for kind in ErrorKind:
            result = outcome_error_response(SyncOutcome.failure(kind, "x"))
            assert f"Error ({kind.value})" in _get_error_text(result)

    def test_conflict_includes_comparison(self):
        conflict = Conflict(
            local=make_dataset([make_group(1)]),
            remote=make_dataset([make_group(2)], device_id=REMOTE_DEVICE),
            type=ConflictType.DEVICE,
        )
        outcome = SyncOutcome.failure(
            ErrorKind.CONFLICT, "Conflict detected", SyncAction.CONFLICT, conflict
        )
        text = _get_error_text(outcome_error_response(outcome))
        assert "Only on remote:" in text
        assert "sync_resolve_conflict" in text

    def test_kindless_failure_is_server_error(self):
        outcome = SyncOutcome(success=False, message="attempt raised")
        text = _get_error_text(outcome_error_response(outcome))
        assert text.startswith("Error (server_error): attempt raised")
