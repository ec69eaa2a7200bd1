"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_outcome`` -- summary of one sync attempt.
- ``format_conflict`` -- group-level comparison for conflict review.
- ``format_status`` -- one-line status for the UI.
- ``outcome_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .decision import structural_diff

if TYPE_CHECKING:
    from .models import Conflict, Dataset, SyncOutcome
    from .status import SyncStatusInfo

_ACTION_LABELS = {
    "upload_local": "Uploaded local data",
    "download_remote": "Downloaded remote data",
    "merge": "Merged local and remote data",
    "conflict": "Conflict detected",
    "no_action": "Nothing to do",
}

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_outcome(outcome: SyncOutcome) -> str:
    """Format a sync outcome as human-readable text.

    Args:
        outcome: The outcome of a sync, push or pull.

    Returns:
        Multi-line formatted string.  Conflicts include the group-level
        comparison from ``format_conflict``.
    """
    lines: list[str] = []
    label = _ACTION_LABELS.get(outcome.action.value, outcome.action.value)
    if outcome.success:
        lines.append(f"Sync succeeded: {label}")
    else:
        kind = outcome.error_kind.value if outcome.error_kind else "error"
        lines.append(f"Sync failed ({kind}): {label}")
    if outcome.message:
        lines.append(outcome.message)
    if outcome.version:
        lines.append(f"Version: {outcome.version}")
    lines.append(f"At: {outcome.timestamp}")

    if outcome.conflict is not None:
        lines.append("")
        lines.append(format_conflict(outcome.conflict))
    return "\n".join(lines)


def _describe(dataset: Dataset, ids: list[int]) -> list[str]:
    by_id = {g.id: g for g in dataset.groups}
    return [
        f"  [{gid}] {by_id[gid].name or '(unnamed)'} ({len(by_id[gid].tabs)} tabs)"
        for gid in ids
    ]


# ------------------------------------------------------------------
# Conflict review
# ------------------------------------------------------------------


def format_conflict(conflict: Conflict) -> str:
    """Format a conflict for review before choosing a resolution.

    Lists groups only present on one side and groups whose name, lock
    state or tab count differ between the two snapshots.

    Args:
        conflict: The pending conflict.

    Returns:
        Multi-line formatted string ending with the available resolutions.
    """
    local, remote = conflict.local, conflict.remote
    diff = structural_diff(local, remote)

    lines: list[str] = [f"Conflict type: {conflict.type.value}"]
    lines.append(
        f"Local:  {len(local.groups)} groups, {local.device.name} "
        f"({local.device.id}), modified {local.timestamp}"
    )
    lines.append(
        f"Remote: {len(remote.groups)} groups, {remote.device.name} "
        f"({remote.device.id}), modified {remote.timestamp}"
    )

    if diff.local_only:
        lines.append("")
        lines.append("Only on this device:")
        lines.extend(_describe(local, diff.local_only))

    if diff.remote_only:
        lines.append("")
        lines.append("Only on remote:")
        lines.extend(_describe(remote, diff.remote_only))

    if diff.changed:
        lines.append("")
        lines.append("Changed on both sides:")
        local_by_id = {g.id: g for g in local.groups}
        remote_by_id = {g.id: g for g in remote.groups}
        for gid in diff.changed:
            ours, theirs = local_by_id[gid], remote_by_id[gid]
            lines.append(
                f"  [{gid}] local '{ours.name}' "
                f"({len(ours.tabs)} tabs{', locked' if ours.locked else ''})"
                f" vs remote '{theirs.name}' "
                f"({len(theirs.tabs)} tabs{', locked' if theirs.locked else ''})"
            )

    lines.append("")
    lines.append("Resolve with: local, remote, or merge")
    return "\n".join(lines)


def format_status(status: SyncStatusInfo) -> str:
    text = f"Status: {status.status.value}"
    if status.operation:
        text += f" [{status.operation}]"
    if status.message:
        text += f" - {status.message}"
    if status.last_sync_time:
        text += f" (last sync {status.last_sync_time})"
    return text


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def outcome_to_json(outcome: SyncOutcome) -> dict:
    """Convert a sync outcome to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output.  Conflict snapshots are
    summarised rather than embedded whole.

    Args:
        outcome: The sync outcome.

    Returns:
        Dict with status fields and, for conflicts, a group-level summary.
    """
    data: dict = {
        "success": outcome.success,
        "action": outcome.action.value,
        "message": outcome.message,
        "timestamp": outcome.timestamp,
        "merged": outcome.merged,
    }
    if outcome.version:
        data["version"] = outcome.version
    if outcome.error_kind is not None:
        data["error_kind"] = outcome.error_kind.value
    if outcome.conflict is not None:
        conflict = outcome.conflict
        diff = structural_diff(conflict.local, conflict.remote)
        data["conflict"] = {
            "type": conflict.type.value,
            "local_version": conflict.local.version,
            "remote_version": conflict.remote.version,
            "local_device": conflict.local.device.id,
            "remote_device": conflict.remote.device.id,
            "local_only": diff.local_only,
            "remote_only": diff.remote_only,
            "changed": diff.changed,
        }
    return data
