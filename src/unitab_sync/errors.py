"""Error taxonomy for the sync engine.

Only the remote provider adapter deals with raw ``requests`` exceptions;
it translates them immediately into one of the classes below.  Everything
above the adapter either propagates these or folds them into a
``SyncOutcome`` carrying the matching ``ErrorKind``.  Conflicts are not
exceptions: they travel only as ``ErrorKind.CONFLICT`` on the outcome.

- ``AuthenticationError`` -- credentials rejected; never retried.
- ``NetworkError`` -- transient transport/HTTP failure; retried with backoff.
- ``DocumentValidationError`` -- malformed remote document; fatal for the
  attempt, not retried.
- ``NotFoundError`` -- remote document does not exist (yet).

``GroupNotFoundError`` and ``GroupLockedError`` are unrelated to sync:
the group service raises them for rejected local edits.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure classes surfaced through ``SyncOutcome.error_kind``."""

    AUTHENTICATION = "authentication"
    NETWORK = "network"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.NETWORK


class SyncError(Exception):
    """Base class for all sync failures."""

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(SyncError):
    kind = ErrorKind.AUTHENTICATION


class NetworkError(SyncError):
    kind = ErrorKind.NETWORK


class DocumentValidationError(SyncError):
    kind = ErrorKind.VALIDATION


class NotFoundError(SyncError):
    kind = ErrorKind.NOT_FOUND


# ---------------------------------------------------------------------------
# Group service errors
# ---------------------------------------------------------------------------


class GroupError(Exception):
    """Base class for rejected group operations."""


class GroupNotFoundError(GroupError):
    def __init__(self, group_id: int):
        super().__init__(f"Group {group_id} not found")
        self.group_id = group_id


class GroupLockedError(GroupError):
    def __init__(self, group_id: int, action: str):
        super().__init__(f"Group {group_id} is locked; cannot {action} it")
        self.group_id = group_id
