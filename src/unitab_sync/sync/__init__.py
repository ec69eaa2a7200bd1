"""Tab-group synchronisation engine.

Replicates the local dataset to a GitHub Gist:

- ``decision``: classify a local/remote pair into one action.
- ``merger``: timestamp-tie-broken merge of groups and tabs.
- ``resolver``: explicit and policy-driven conflict resolution.
- ``scheduler``: debounce, single-flight and retry with backoff.
- ``engine``: one full sync attempt.
"""

from .engine import SyncEngine
from .models import (
    Conflict,
    ConflictType,
    Dataset,
    DeviceInfo,
    Group,
    Resolution,
    SyncAction,
    SyncMetadata,
    SyncOutcome,
    SyncTask,
    Tab,
)
from .scheduler import SyncScheduler, ThreadingClock
from .state import LocalStore
from .status import SyncStatus, SyncStatusInfo, SyncStatusPublisher

__all__ = [
    "Conflict",
    "ConflictType",
    "Dataset",
    "DeviceInfo",
    "Group",
    "LocalStore",
    "Resolution",
    "SyncAction",
    "SyncEngine",
    "SyncMetadata",
    "SyncOutcome",
    "SyncScheduler",
    "SyncStatus",
    "SyncStatusInfo",
    "SyncStatusPublisher",
    "SyncTask",
    "Tab",
    "ThreadingClock",
]
