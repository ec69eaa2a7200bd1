"""Decision engine: classify a local/remote pair into one sync action.

Rules are evaluated in order and the first match wins:

1. Remote not configured / not authenticated -> ``no_action``.
   Remote unavailable (malformed document) -> ``no_action``.
2. Only remote has groups -> ``download_remote``.
3. Only local has groups -> ``upload_local``.
4. Neither has groups -> ``no_action``.
5. Both have groups:

   a. Same device id -> ``merge``.
   b. Same account id -> ``merge`` unless a shared group was edited
      differently on both sides, then ``conflict`` (type ``version``).
   c. Different or unknown accounts -> ``conflict`` (type ``device``) on
      any structural difference, else ``merge``.

The reason string is for status/logging only; nothing branches on it.
"""

from __future__ import annotations

import hashlib
import json
import logging

from .models import (
    ConflictType,
    Dataset,
    Decision,
    Group,
    StructuralDiff,
    SyncAction,
)

logger = logging.getLogger(__name__)


def group_hash(group: Group) -> str:
    """Shallow SHA-256 of ``{name, locked, tabs.length}``."""
    payload = json.dumps(
        {
            "name": group.name,
            "locked": group.locked,
            "tabs": len(group.tabs),
        },
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def structural_diff(local: Dataset, remote: Dataset) -> StructuralDiff:
    """Compare group-id sets and, for shared ids, shallow group hashes."""
    local_by_id = {g.id: g for g in local.groups}
    remote_by_id = {g.id: g for g in remote.groups}

    changed = [
        gid
        for gid, group in local_by_id.items()
        if gid in remote_by_id
        and group_hash(group) != group_hash(remote_by_id[gid])
    ]
    return StructuralDiff(
        local_only=sorted(set(local_by_id) - set(remote_by_id)),
        remote_only=sorted(set(remote_by_id) - set(local_by_id)),
        changed=sorted(changed),
    )


def decide(
    local: Dataset,
    remote: Dataset | None,
    *,
    authenticated: bool,
    local_account_id: str | None = None,
    remote_available: bool = True,
) -> Decision:
    """Choose the sync action for *local* versus *remote*.

    Args:
        local: Current local dataset.
        remote: Freshly downloaded remote dataset, or ``None`` when no
            remote document exists.
        authenticated: Whether the remote provider accepted credentials.
        local_account_id: Account id resolved for this install.
        remote_available: ``False`` when the remote could not be read
            reliably (e.g. malformed document); nothing is written then.

    Returns:
        The ``Decision`` for this attempt.
    """
    if not authenticated:
        return Decision(action=SyncAction.NO_ACTION, reason="not configured")
    if not remote_available:
        return Decision(
            action=SyncAction.NO_ACTION, reason="remote unavailable"
        )

    local_has = local.has_groups
    remote_has = remote is not None and remote.has_groups

    if not local_has and remote_has:
        return Decision(
            action=SyncAction.DOWNLOAD_REMOTE,
            reason="no local groups; remote has data",
        )
    if local_has and not remote_has:
        return Decision(
            action=SyncAction.UPLOAD_LOCAL,
            reason="no remote groups; local has data",
        )
    if not local_has and not remote_has:
        return Decision(
            action=SyncAction.NO_ACTION,
            reason="no groups locally or remotely",
        )

    assert remote is not None
    if local.device.id == remote.device.id:
        return Decision(
            action=SyncAction.MERGE,
            reason="same device; merging data",
        )

    diff = structural_diff(local, remote)
    remote_account_id = remote.device.account_id
    same_account = (
        local_account_id is not None
        and remote_account_id is not None
        and local_account_id == remote_account_id
    )

    if same_account:
        if diff.is_empty:
            return Decision(
                action=SyncAction.MERGE,
                reason="same account; no structural difference",
                diff=diff,
            )
        if diff.auto_mergeable:
            return Decision(
                action=SyncAction.MERGE,
                reason="same account; additive changes only",
                diff=diff,
            )
        logger.info(
            "Groups %s edited on two devices of account %s",
            diff.changed,
            local_account_id,
        )
        return Decision(
            action=SyncAction.CONFLICT,
            reason=f"same account; {len(diff.changed)} group(s) edited on both devices",
            conflict_type=ConflictType.VERSION,
            diff=diff,
        )

    if diff.is_empty:
        return Decision(
            action=SyncAction.MERGE,
            reason="different account; no structural difference",
            diff=diff,
        )
    return Decision(
        action=SyncAction.CONFLICT,
        reason="different or unknown account with diverging groups",
        conflict_type=ConflictType.DEVICE,
        diff=diff,
    )
