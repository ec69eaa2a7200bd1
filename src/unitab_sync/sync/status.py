"""Sync status publisher.

Holds the one current ``SyncStatusInfo`` and fans changes out to
subscribers.  A subscriber is called immediately with the current status
when it subscribes; a subscriber that raises is logged and skipped.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .models import to_iso, utc_now

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class SyncStatusInfo(BaseModel):
    """Snapshot of the sync status shown to the UI."""

    status: SyncStatus = SyncStatus.IDLE
    message: str | None = None
    operation: str | None = None
    last_sync_time: str | None = None

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


Listener = Callable[[SyncStatusInfo], None]


class SyncStatusPublisher:
    """Single source of truth for sync status."""

    def __init__(self) -> None:
        self._status = SyncStatusInfo()
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def get_status(self) -> SyncStatusInfo:
        # Models are frozen, so the stored instance doubles as a copy.
        return self._status

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* and call it once with the current status.

        Returns:
            A callable that removes the listener.  Calling it twice is a
            no-op.
        """
        with self._lock:
            self._listeners.append(listener)
        self._call(listener, self._status)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, status: SyncStatusInfo) -> None:
        with self._lock:
            self._status = status
            listeners = list(self._listeners)
        logger.debug(
            "Sync status %s: %s", status.status.value, status.message or ""
        )
        for listener in listeners:
            self._call(listener, status)

    # ------------------------------------------------------------------
    # Helper setters
    # ------------------------------------------------------------------

    def set_idle(self, message: str | None = None) -> None:
        self.publish(
            SyncStatusInfo(
                status=SyncStatus.IDLE,
                message=message,
                last_sync_time=self._status.last_sync_time,
            )
        )

    def set_syncing(
        self, operation: str | None = None, message: str | None = None
    ) -> None:
        self.publish(
            SyncStatusInfo(
                status=SyncStatus.SYNCING,
                message=message or "Syncing...",
                operation=operation,
                last_sync_time=self._status.last_sync_time,
            )
        )

    def set_success(
        self, operation: str | None = None, message: str | None = None
    ) -> None:
        self.publish(
            SyncStatusInfo(
                status=SyncStatus.SUCCESS,
                message=message or "Sync completed",
                operation=operation,
                last_sync_time=to_iso(utc_now()),
            )
        )

    def set_error(self, message: str, operation: str | None = None) -> None:
        self.publish(
            SyncStatusInfo(
                status=SyncStatus.ERROR,
                message=message,
                operation=operation,
                last_sync_time=self._status.last_sync_time,
            )
        )

    @staticmethod
    def _call(listener: Listener, status: SyncStatusInfo) -> None:
        try:
            listener(status)
        except Exception:
            logger.exception("Sync status listener failed")
