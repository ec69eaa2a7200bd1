"""Pydantic models for the sync engine.

Defines the data contracts shared by every sync module:

- ``Tab``, ``Group``, ``DeviceInfo``, ``Dataset``: the synchronised document.
- ``SyncMetadata``: per-install bookkeeping stored next to the dataset.
- ``SyncAction``, ``ConflictType``, ``Conflict``, ``Decision``: decision output.
- ``SyncOutcome``: result of one sync attempt (success or typed failure).
- ``SyncTask``: a queued scheduler entry.

Documents are serialised with camelCase keys (``createdAt``, ``favIconUrl``)
so files written by the browser extension stay readable.  All models except
``SyncTask`` are frozen; mutations go through ``model_copy(update=...)``.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel

from ..errors import ErrorKind

_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format *moment* as ISO 8601 with millisecond precision and ``Z``."""
    return (
        moment.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def parse_iso(value: str | None) -> datetime:
    """Parse an ISO 8601 string; missing or garbage values sort first."""
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


_version_lock = threading.Lock()
_last_version_ms = 0


def new_version() -> str:
    """Return a fresh, strictly increasing version token (``v<epoch-ms>``)."""
    global _last_version_ms
    with _version_lock:
        ms = max(int(time.time() * 1000), _last_version_ms + 1)
        _last_version_ms = ms
    return f"v{ms}"


# ---------------------------------------------------------------------------
# Dataset
# ---------------------------------------------------------------------------


class Tab(BaseModel):
    """A saved browser tab.  Tabs are keyed by ``url`` during merge."""

    title: str = ""
    url: str
    fav_icon_url: str | None = None
    pinned: bool | None = None

    model_config = _MODEL_CONFIG


class Group(BaseModel):
    """A named, ordered collection of saved tabs.

    Attributes:
        id: Numeric id, unique within a dataset and never reused.
        name: Display name.
        created_at: ISO 8601 creation instant (immutable).
        updated_at: ISO 8601 instant of the last group-level edit.
        pinned: Whether the UI pins the group.
        locked: Locked groups refuse delete and rename at the UI level.
        tabs: Saved tabs in display order.
    """

    id: int
    name: str = ""
    created_at: str
    updated_at: str | None = None
    pinned: bool = False
    locked: bool = False
    tabs: list[Tab] = Field(default_factory=list)

    model_config = _MODEL_CONFIG

    @property
    def update_marker(self) -> datetime:
        """Instant used to decide which side of a merge is newer."""
        return parse_iso(self.updated_at or self.created_at)


class DeviceInfo(BaseModel):
    """Identity of the last writer of a dataset."""

    id: str
    name: str = "Unknown Device"
    platform: str = "Unknown"
    account_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "accountId", "account_id", "githubUserId"
        ),
        serialization_alias="accountId",
    )

    model_config = _MODEL_CONFIG


class Dataset(BaseModel):
    """The unit of synchronisation: all groups plus settings.

    Documents written by older extension builds nest ``groups`` and
    ``settings`` under a ``data`` key; those are lifted on load.
    """

    version: str
    timestamp: str
    device: DeviceInfo
    groups: list[Group] = Field(default_factory=list)
    settings: dict[str, Any] = Field(default_factory=dict)

    model_config = _MODEL_CONFIG

    @model_validator(mode="before")
    @classmethod
    def _lift_legacy_data(cls, raw: Any) -> Any:
        if isinstance(raw, dict) and isinstance(raw.get("data"), dict):
            lifted = {k: v for k, v in raw.items() if k != "data"}
            lifted.setdefault("groups", raw["data"].get("groups") or [])
            lifted.setdefault(
                "settings", raw["data"].get("settings") or {}
            )
            return lifted
        return raw

    @property
    def has_groups(self) -> bool:
        return bool(self.groups)

    @property
    def modified_at(self) -> datetime:
        return parse_iso(self.timestamp)

    def group_ids(self) -> set[int]:
        return {g.id for g in self.groups}

    def restamp(self, device: DeviceInfo | None = None) -> Dataset:
        """Return a copy with a fresh version/timestamp (a new local write)."""
        update: dict[str, Any] = {
            "version": new_version(),
            "timestamp": to_iso(utc_now()),
        }
        if device is not None:
            update["device"] = device
        return self.model_copy(update=update)

    def to_document(self) -> dict[str, Any]:
        """Serialise to the camelCase JSON document shape."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def empty(cls, device: DeviceInfo) -> Dataset:
        return cls(
            version=new_version(),
            timestamp=to_iso(utc_now()),
            device=device,
        )


class SyncMetadata(BaseModel):
    """Per-install sync bookkeeping stored next to the dataset.

    Attributes:
        last_sync_timestamp: Instant of the last completed sync, or ``None``
            if this install has never synced.
        device_id: Cached local device id.
        account_id: Cached remote account id.
        account_login: Cached login of that account, used to name the device.
        account_fingerprint: Hash of the credential ``account_id`` came from.
        gist_id: Remote document id once located or created.
    """

    last_sync_timestamp: str | None = None
    device_id: str | None = None
    account_id: str | None = None
    account_login: str | None = None
    account_fingerprint: str | None = None
    gist_id: str | None = None

    model_config = _MODEL_CONFIG


# ---------------------------------------------------------------------------
# Decisions and conflicts
# ---------------------------------------------------------------------------


class SyncAction(str, Enum):
    """Possible outcomes of the decision engine."""

    UPLOAD_LOCAL = "upload_local"
    DOWNLOAD_REMOTE = "download_remote"
    MERGE = "merge"
    CONFLICT = "conflict"
    NO_ACTION = "no_action"


class ConflictType(str, Enum):
    """Why automatic resolution was refused."""

    TIMESTAMP = "timestamp"
    VERSION = "version"
    DEVICE = "device"


class Resolution(str, Enum):
    """Choices accepted by the conflict resolver."""

    LOCAL = "local"
    REMOTE = "remote"
    MERGE = "merge"


class Conflict(BaseModel):
    """Two diverged snapshots captured at decision time."""

    local: Dataset
    remote: Dataset
    type: ConflictType

    model_config = _MODEL_CONFIG


class StructuralDiff(BaseModel):
    """Group-level difference between two datasets.

    Attributes:
        local_only: Group ids only present locally.
        remote_only: Group ids only present remotely.
        changed: Shared group ids whose shallow hash differs.
    """

    local_only: list[int] = Field(default_factory=list)
    remote_only: list[int] = Field(default_factory=list)
    changed: list[int] = Field(default_factory=list)

    model_config = _MODEL_CONFIG

    @property
    def is_empty(self) -> bool:
        return not (self.local_only or self.remote_only or self.changed)

    @property
    def auto_mergeable(self) -> bool:
        """True when no shared group was edited differently on both sides."""
        return not self.changed


class Decision(BaseModel):
    """Action chosen by the decision engine plus a human-readable reason."""

    action: SyncAction
    reason: str
    conflict_type: ConflictType | None = None
    diff: StructuralDiff | None = None

    model_config = _MODEL_CONFIG


class SyncOutcome(BaseModel):
    """Result of one sync operation.

    Failures carry an ``error_kind``; conflicts additionally carry the
    ``conflict`` snapshots so the caller can resolve them.
    """

    success: bool
    action: SyncAction = SyncAction.NO_ACTION
    message: str = ""
    error_kind: ErrorKind | None = None
    conflict: Conflict | None = None
    timestamp: str = Field(default_factory=lambda: to_iso(utc_now()))
    version: str | None = None
    merged: bool = False

    model_config = _MODEL_CONFIG

    @property
    def retryable(self) -> bool:
        return (
            not self.success
            and self.error_kind is not None
            and self.error_kind.retryable
        )

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        action: SyncAction = SyncAction.NO_ACTION,
        conflict: Conflict | None = None,
    ) -> SyncOutcome:
        return cls(
            success=False,
            action=action,
            message=message,
            error_kind=kind,
            conflict=conflict,
        )


class UploadResult(BaseModel):
    """Provider response to ``upload`` / ``delete_remote``."""

    success: bool
    timestamp: str = Field(default_factory=lambda: to_iso(utc_now()))
    error: str | None = None
    version: str | None = None

    model_config = _MODEL_CONFIG


class AccountInfo(BaseModel):
    """Authenticated remote user."""

    id: str
    login: str
    name: str | None = None

    model_config = _MODEL_CONFIG


# ---------------------------------------------------------------------------
# Scheduler task
# ---------------------------------------------------------------------------


@dataclass
class SyncTask:
    """A queued sync trigger.

    Attributes:
        id: Unique task id (``<operation>_<ms>_<random>``).
        operation: Tag of the triggering event (e.g. ``create_group``).
        timestamp: Arrival time on the scheduler clock (seconds).
        retry_count: Failed attempts this task took part in.
        immediate: True for explicit "sync now" style triggers.
    """

    id: str
    operation: str
    timestamp: float
    retry_count: int = 0
    immediate: bool = False
