"""Conflict resolution for the sync engine.

``resolve_conflict()`` turns a captured ``Conflict`` plus an explicit
choice into the dataset to keep:

- ``local``: the local snapshot, re-stamped as a fresh local write.
- ``remote``: the remote snapshot, re-stamped as a fresh local write.
- ``merge``: the merge engine's result.

Policies decide whether a conflict is resolved automatically:

- ``AskPolicy``: never decides; the conflict is surfaced to the UI.
- ``LocalWinsPolicy`` / ``RemoteWinsPolicy`` / ``MergePolicy``: always
  pick the matching resolution.

The ``create_resolver()`` factory maps config strategy strings to policy
instances.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .merger import merge_datasets
from .models import Conflict, Dataset, DeviceInfo, Resolution

logger = logging.getLogger(__name__)


def resolve_conflict(
    conflict: Conflict,
    resolution: Resolution | str,
    device: DeviceInfo | None = None,
) -> Dataset:
    """Produce the dataset for *resolution*.

    Args:
        conflict: The pending conflict snapshots.
        resolution: ``local``, ``remote`` or ``merge``.
        device: Identity stamped on the result.  Defaults to the local
            snapshot's device.

    Returns:
        A dataset with a fresh version and timestamp.

    Raises:
        ValueError: If *resolution* is not recognised.
    """
    choice = Resolution(resolution)
    device = device or conflict.local.device
    logger.info(
        "Resolving %s conflict with '%s'", conflict.type.value, choice.value
    )
    match choice:
        case Resolution.LOCAL:
            return conflict.local.restamp(device)
        case Resolution.REMOTE:
            return conflict.remote.restamp(device)
        case Resolution.MERGE:
            return merge_datasets(conflict.local, conflict.remote, device)


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class ConflictResolver(Protocol):
    """Protocol that all conflict policies must satisfy."""

    def choose(self, conflict: Conflict) -> Resolution | None:
        """Pick a resolution, or ``None`` to leave the conflict pending."""
        ...  # pragma: no cover


class AskPolicy:
    """Leave every conflict for the user."""

    def choose(self, conflict: Conflict) -> Resolution | None:
        return None


class LocalWinsPolicy:
    def choose(self, conflict: Conflict) -> Resolution | None:
        return Resolution.LOCAL


class RemoteWinsPolicy:
    def choose(self, conflict: Conflict) -> Resolution | None:
        return Resolution.REMOTE


class MergePolicy:
    def choose(self, conflict: Conflict) -> Resolution | None:
        return Resolution.MERGE


_STRATEGY_MAP: dict[str, type] = {
    "ask": AskPolicy,
    "local": LocalWinsPolicy,
    "remote": RemoteWinsPolicy,
    "merge": MergePolicy,
}


def create_resolver(strategy: str) -> ConflictResolver:
    """Create a conflict policy for the given strategy string.

    Args:
        strategy: One of ``"ask"``, ``"local"``, ``"remote"``, ``"merge"``.

    Returns:
        A ``ConflictResolver`` implementation instance.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
