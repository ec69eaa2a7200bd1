"""Core sync engine: one full sync attempt against the remote provider.

The ``SyncEngine`` ties together the local store, identity resolver,
remote provider, decision engine and merge engine.  ``run()``:

1. Checks that the provider is authenticated.
2. Loads the local dataset (whole document).
3. Downloads the remote dataset (``NotFoundError`` means no remote data).
4. Asks the decision engine for an action.
5. Executes it: upload, download, merge + write + upload, or surfaces a
   conflict.

Provider exceptions are caught here and folded into a failed
``SyncOutcome`` carrying the matching ``ErrorKind``.  Local writes only
happen once the in-memory decision/merge has succeeded.
"""

from __future__ import annotations

import logging

from ..errors import (
    DocumentValidationError,
    ErrorKind,
    NotFoundError,
    SyncError,
)
from .decision import decide
from .identity import IdentityResolver
from .merger import merge_datasets
from .models import (
    Conflict,
    Dataset,
    Decision,
    DeviceInfo,
    SyncAction,
    SyncOutcome,
    to_iso,
    utc_now,
)
from .provider import RemoteProvider
from .state import LocalStore

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "GitHub token is not configured or was rejected"


class SyncEngine:
    """Run sync attempts for one local store and one remote provider.

    Args:
        store: Local store holding the dataset and metadata.
        provider: Remote provider adapter.
        identity: Device/account identity resolver.
    """

    def __init__(
        self,
        store: LocalStore,
        provider: RemoteProvider,
        identity: IdentityResolver,
    ) -> None:
        self.store = store
        self.provider = provider
        self.identity = identity

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def run(self) -> SyncOutcome:
        """Execute one full sync attempt.

        Returns:
            A ``SyncOutcome``.  Conflicts come back as a failed outcome of
            kind ``conflict`` carrying both snapshots.
        """
        try:
            if not self.provider.is_authenticated():
                decision = decide(
                    self.store.get(), None, authenticated=False
                )
                return SyncOutcome(
                    success=True,
                    action=decision.action,
                    message=decision.reason,
                )

            local = self.store.get()
            device = self.identity.device_info()
            try:
                remote = self._download()
            except DocumentValidationError as e:
                logger.error("Remote document rejected: %s", e.message)
                decision = decide(
                    local,
                    None,
                    authenticated=True,
                    local_account_id=device.account_id,
                    remote_available=False,
                )
                return SyncOutcome.failure(
                    ErrorKind.VALIDATION,
                    f"{decision.reason}: {e.message}",
                    action=decision.action,
                )

            decision = decide(
                local,
                remote,
                authenticated=True,
                local_account_id=device.account_id,
            )
            logger.info(
                "Sync decision: %s (%s)", decision.action.value, decision.reason
            )
            return self._execute(decision, local, remote, device)
        except SyncError as e:
            logger.warning("Sync failed (%s): %s", e.kind.value, e.message)
            return SyncOutcome.failure(e.kind, e.message)

    def push(self) -> SyncOutcome:
        """Upload the current local dataset as-is."""
        try:
            if not self.provider.is_authenticated():
                return SyncOutcome.failure(
                    ErrorKind.AUTHENTICATION, NOT_AUTHENTICATED
                )
            local = self.store.get()
            return self._upload(local, "Local data pushed to remote")
        except SyncError as e:
            logger.warning("Push failed (%s): %s", e.kind.value, e.message)
            return SyncOutcome.failure(
                e.kind, e.message, action=SyncAction.UPLOAD_LOCAL
            )

    def pull(self) -> SyncOutcome:
        """Overwrite the local dataset with the remote one."""
        try:
            if not self.provider.is_authenticated():
                return SyncOutcome.failure(
                    ErrorKind.AUTHENTICATION, NOT_AUTHENTICATED
                )
            remote = self._download()
            if remote is None:
                return SyncOutcome.failure(
                    ErrorKind.NOT_FOUND,
                    "No remote data to pull",
                    action=SyncAction.DOWNLOAD_REMOTE,
                )
            self.store.set(remote)
            self._record_sync(to_iso(utc_now()))
            return SyncOutcome(
                success=True,
                action=SyncAction.DOWNLOAD_REMOTE,
                message="Remote data pulled to local",
                version=remote.version,
            )
        except SyncError as e:
            logger.warning("Pull failed (%s): %s", e.kind.value, e.message)
            return SyncOutcome.failure(
                e.kind, e.message, action=SyncAction.DOWNLOAD_REMOTE
            )

    # ------------------------------------------------------------------
    # Action execution
    # ------------------------------------------------------------------

    def _execute(
        self,
        decision: Decision,
        local: Dataset,
        remote: Dataset | None,
        device: DeviceInfo,
    ) -> SyncOutcome:
        match decision.action:
            case SyncAction.NO_ACTION:
                return SyncOutcome(
                    success=True,
                    action=SyncAction.NO_ACTION,
                    message=decision.reason,
                )

            case SyncAction.UPLOAD_LOCAL:
                payload = local
                if local.device != device:
                    payload = self._write_local(
                        local, local.model_copy(update={"device": device})
                    )
                return self._upload(payload, "Local data uploaded")

            case SyncAction.DOWNLOAD_REMOTE:
                assert remote is not None
                written = self._write_local(local, remote)
                self._record_sync(to_iso(utc_now()))
                if written is not remote:
                    # Local edits landed mid-attempt; publish the union.
                    return self._upload(
                        written, "Remote data downloaded and merged"
                    )
                return SyncOutcome(
                    success=True,
                    action=SyncAction.DOWNLOAD_REMOTE,
                    message="Remote data downloaded",
                    version=remote.version,
                )

            case SyncAction.MERGE:
                assert remote is not None
                merged = merge_datasets(local, remote, device)
                merged = self._write_local(local, merged)
                outcome = self._upload(merged, "Local and remote data merged")
                return outcome.model_copy(
                    update={"action": SyncAction.MERGE, "merged": True}
                )

            case SyncAction.CONFLICT:
                assert remote is not None and decision.conflict_type
                conflict = Conflict(
                    local=local, remote=remote, type=decision.conflict_type
                )
                logger.info(
                    "Conflict detected (%s): %s",
                    conflict.type.value,
                    decision.reason,
                )
                return SyncOutcome.failure(
                    ErrorKind.CONFLICT,
                    f"Conflict detected: {decision.reason}",
                    action=SyncAction.CONFLICT,
                    conflict=conflict,
                )

        raise AssertionError(f"unhandled action {decision.action}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _download(self) -> Dataset | None:
        try:
            return self.provider.download()
        except NotFoundError:
            logger.info("No remote data found")
            return None

    def _upload(self, dataset: Dataset, message: str) -> SyncOutcome:
        result = self.provider.upload(dataset)
        self._record_sync(result.timestamp)
        return SyncOutcome(
            success=True,
            action=SyncAction.UPLOAD_LOCAL,
            message=message,
            timestamp=result.timestamp,
            version=dataset.version,
        )

    def _write_local(self, read: Dataset, result: Dataset) -> Dataset:
        """Store *result* unless local changed since *read* was loaded.

        When a local edit landed during the network round-trip, the edit is
        merged into *result* instead of being overwritten.

        Returns:
            The dataset actually written.
        """
        with self.store.lock:
            current = self.store.get()
            if current.version != read.version:
                logger.info(
                    "Local data changed during sync; merging %s into result",
                    current.version,
                )
                result = merge_datasets(current, result, current.device)
            self.store.set(result)
        return result

    def _record_sync(self, timestamp: str) -> None:
        self.store.update_metadata(last_sync_timestamp=timestamp)
