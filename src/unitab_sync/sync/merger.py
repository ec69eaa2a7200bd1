"""Dataset merge for the sync engine.

There is no stored common ancestor, so the merge is two-way with
timestamp tie-breaks rather than a true three-way merge:

* Groups are keyed by ``id``.  Groups present on only one side are kept
  as-is; local order first, then remote-only groups in remote order.
* For a group present on both sides, the side with the newer update
  marker (``updatedAt``, else ``createdAt``) supplies the metadata
  (``name``, ``locked``, ``pinned``).  Equal markers fall back to the
  dataset timestamps; remote must be strictly newer to win.
* Tabs are always the URL-keyed union of both sides.  The metadata
  winner's tabs come first, so its title/favicon survive for a duplicate
  URL.
* Settings merge key-wise; the newer dataset wins overlapping keys.

The merged dataset is a fresh local write: new ``version``/``timestamp``
and the local device identity.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .models import Dataset, DeviceInfo, Group, Tab

logger = logging.getLogger(__name__)


def merge_tabs(primary: Iterable[Tab], secondary: Iterable[Tab]) -> list[Tab]:
    """Union two tab lists keyed by URL; first occurrence wins.

    Duplicates inside *primary* itself are collapsed as well, so the
    result never holds two tabs with the same ``url``.
    """
    merged: dict[str, Tab] = {}
    for tab in (*primary, *secondary):
        if tab.url not in merged:
            merged[tab.url] = tab
    return list(merged.values())


def _remote_group_wins(
    local_group: Group,
    remote_group: Group,
    local: Dataset,
    remote: Dataset,
) -> bool:
    local_marker = local_group.update_marker
    remote_marker = remote_group.update_marker
    if remote_marker != local_marker:
        return remote_marker > local_marker
    return remote.modified_at > local.modified_at


def merge_group(
    local_group: Group,
    remote_group: Group,
    local: Dataset,
    remote: Dataset,
) -> Group:
    """Merge two versions of the same group id."""
    if _remote_group_wins(local_group, remote_group, local, remote):
        winner, other = remote_group, local_group
    else:
        winner, other = local_group, remote_group
    return winner.model_copy(
        update={"tabs": merge_tabs(winner.tabs, other.tabs)}
    )


def merge_settings(local: Dataset, remote: Dataset) -> dict[str, Any]:
    """Merge settings key-wise; ties favour local."""
    if remote.modified_at > local.modified_at:
        return {**local.settings, **remote.settings}
    return {**remote.settings, **local.settings}


def merge_datasets(
    local: Dataset,
    remote: Dataset,
    device: DeviceInfo | None = None,
) -> Dataset:
    """Merge *remote* into *local*.

    Args:
        local: The dataset currently stored on this device.
        remote: The dataset downloaded from the remote store.
        device: Identity to stamp on the result.  Defaults to
            ``local.device``.

    Returns:
        A new dataset whose group-id set is the union of both inputs, with
        duplicate-free tab lists, a fresh version and timestamp.
    """
    groups: dict[int, Group] = {}
    for group in local.groups:
        if group.id in groups:
            logger.warning("Duplicate group id %s in local data", group.id)
            groups[group.id] = merge_group(
                groups[group.id], group, local, local
            )
            continue
        groups[group.id] = group.model_copy(
            update={"tabs": merge_tabs(group.tabs, ())}
        )

    added = 0
    updated = 0
    for remote_group in remote.groups:
        existing = groups.get(remote_group.id)
        if existing is None:
            groups[remote_group.id] = remote_group.model_copy(
                update={"tabs": merge_tabs(remote_group.tabs, ())}
            )
            added += 1
        else:
            groups[remote_group.id] = merge_group(
                existing, remote_group, local, remote
            )
            updated += 1

    logger.debug(
        "Merged %d local + %d remote groups: %d added from remote, %d reconciled",
        len(local.groups),
        len(remote.groups),
        added,
        updated,
    )

    merged = local.model_copy(
        update={
            "groups": list(groups.values()),
            "settings": merge_settings(local, remote),
        }
    )
    return merged.restamp(device or local.device)
