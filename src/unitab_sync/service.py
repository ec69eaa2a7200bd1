"""Sync service: the UI-facing command surface.

``SyncService`` wires the local store, Gist provider, identity resolver,
sync engine, scheduler, status publisher and group service together.  One
instance is built per process (see ``mcp.lifespan``); tests build their own
with fakes injected.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from functools import partial
from pathlib import Path
from typing import Any

from .commands import (
    ClearData,
    Command,
    CreateGroup,
    DeleteGroup,
    ExportData,
    GetStatus,
    ImportData,
    ListGroups,
    Pull,
    Push,
    ResolveConflict,
    Sync,
    ToggleGroupLock,
    UpdateGroup,
)
from .config import Config
from .core.client import GistClient
from .errors import ErrorKind, SyncError
from .groups import GroupService
from .sync.engine import SyncEngine
from .sync.identity import IdentityResolver
from .sync.models import (
    Conflict,
    Dataset,
    Resolution,
    SyncAction,
    SyncOutcome,
    SyncTask,
)
from .sync.provider import GistProvider, RemoteProvider
from .sync.resolver import create_resolver, resolve_conflict
from .sync.scheduler import (
    INTERVAL_OPERATION,
    Clock,
    SyncScheduler,
    ThreadingClock,
)
from .sync.state import LocalStore
from .sync.status import SyncStatusInfo, SyncStatusPublisher

logger = logging.getLogger(__name__)

RESOLVE_OPERATION = "resolve_conflict"
PUSH_OPERATION = "push"
PULL_OPERATION = "pull"


class SyncService:
    """Constructible service owning every sync component.

    Args:
        config: Runtime configuration.
        store: Local store; built from ``config.data_file`` when omitted.
        provider: Remote provider; a ``GistProvider`` when omitted.
        clock: Scheduler clock; ``ThreadingClock`` when omitted.
        status: Status publisher; a fresh one when omitted.
    """

    def __init__(
        self,
        config: Config,
        *,
        store: LocalStore | None = None,
        provider: RemoteProvider | None = None,
        clock: Clock | None = None,
        status: SyncStatusPublisher | None = None,
    ) -> None:
        self.config = config
        self.store = store or LocalStore(Path(config.data_file).expanduser())
        if provider is None:
            provider = GistProvider(
                GistClient(config),
                filename=config.gist_filename,
                gist_id=config.gist_id or self.store.get_metadata().gist_id,
                on_gist_id=self._remember_gist_id,
            )
        self.provider = provider
        self.identity = IdentityResolver(
            self.store, provider, config.device_name
        )
        self.engine = SyncEngine(self.store, provider, self.identity)
        self.status = status or SyncStatusPublisher()
        self.policy = create_resolver(config.conflict_strategy)
        self.scheduler = SyncScheduler(
            self._attempt,
            clock or ThreadingClock(),
            self.status,
            debounce=config.debounce_seconds,
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            multiplier=config.retry_multiplier,
            max_delay=config.retry_max_delay,
            interval=config.sync_interval_minutes * 60,
            on_interval=partial(self.trigger_sync, INTERVAL_OPERATION),
        )
        self.groups = GroupService(
            self.store,
            self.identity,
            config.exclude_prefixes,
            on_mutation=self.trigger_sync,
        )
        self._conflict_lock = threading.Lock()
        self._pending_conflict: Conflict | None = None
        self._resolved: Dataset | None = None

        if not config.sync_enabled:
            self.scheduler.disable()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def pending_conflict(self) -> Conflict | None:
        return self._pending_conflict

    @property
    def sync_enabled(self) -> bool:
        return self.scheduler.enabled

    def get_status(self) -> SyncStatusInfo:
        return self.status.get_status()

    def subscribe(
        self, callback: Callable[[SyncStatusInfo], None]
    ) -> Callable[[], None]:
        return self.status.subscribe(callback)

    # ------------------------------------------------------------------
    # Sync operations
    # ------------------------------------------------------------------

    def trigger_sync(
        self, operation: str, immediate: bool = False
    ) -> SyncTask | None:
        """Schedule a sync for *operation*.

        Automatic triggers are ignored while a conflict waits for the user.
        """
        if self._pending_conflict is not None and not immediate:
            logger.info(
                "Conflict pending; not scheduling sync for %s", operation
            )
            return None
        return self.scheduler.trigger(operation, immediate)

    def sync_now(self) -> SyncOutcome:
        """Run a full sync in the calling thread."""
        return self.scheduler.run_now("manual_sync")

    def push(self) -> SyncOutcome:
        """Upload local data as-is, overwriting the remote document."""
        return self.scheduler.run_now(PUSH_OPERATION)

    def pull(self) -> SyncOutcome:
        """Replace local data with the remote document."""
        return self.scheduler.run_now(PULL_OPERATION)

    def start_periodic_sync(self) -> None:
        """Start the automatic sync that runs every ``sync_interval_minutes``.

        Interval ticks are ordinary automatic triggers: they are debounced
        and skipped while a conflict is pending.
        """
        self.scheduler.start_interval()

    def startup_sync(self) -> SyncOutcome | None:
        """Sync on startup if never synced or the remote changed since.

        Returns:
            The outcome, or ``None`` when no sync was needed.
        """
        if not self.scheduler.enabled:
            return None
        last_sync = self.store.get_metadata().last_sync_timestamp
        if last_sync is not None:
            try:
                if not self.provider.has_remote_updates(last_sync):
                    logger.info("No remote updates since %s", last_sync)
                    return None
            except SyncError as e:
                logger.warning(
                    "Startup update check failed: %s", e.message
                )
                return None
        return self.scheduler.run_now("startup")

    def resolve_conflict(
        self,
        resolution: Resolution | str,
        conflict: Conflict | None = None,
    ) -> SyncOutcome:
        """Resolve *conflict* (default: the pending one) and push the result.

        The resolution is applied as a scheduler attempt, so it waits for an
        in-flight sync and never uploads alongside one.  The resolved
        dataset is written locally at the start of that attempt.  If the
        upload fails with a retryable error the scheduler retries it.
        """
        conflict = conflict or self._pending_conflict
        if conflict is None:
            return SyncOutcome.failure(
                ErrorKind.CONFLICT, "No pending conflict to resolve"
            )
        choice = Resolution(resolution)
        resolved = resolve_conflict(
            conflict, choice, self.identity.device_info(lookup=False)
        )
        with self._conflict_lock:
            self._pending_conflict = None
            self._resolved = resolved
        message = f"Conflict resolved with '{choice.value}'"

        if not self.scheduler.enabled:
            self._apply_resolution()
            return SyncOutcome(
                success=True,
                action=SyncAction.CONFLICT,
                message=f"{message}; sync is disabled, nothing uploaded",
                merged=choice is Resolution.MERGE,
            )

        outcome = self.scheduler.run_now(RESOLVE_OPERATION)
        # Covers sync being disabled while the attempt waited.
        self._apply_resolution()
        if outcome.success:
            self.status.set_success(RESOLVE_OPERATION, message)
            return outcome.model_copy(
                update={
                    "message": message,
                    "merged": choice is Resolution.MERGE,
                }
            )
        queued = any(
            task.operation == RESOLVE_OPERATION
            for task in self.scheduler.pending_tasks
        )
        if queued:
            logger.warning(
                "Upload after conflict resolution failed; queued for retry"
            )
            return outcome.model_copy(
                update={
                    "message": (
                        f"Conflict resolved locally; upload queued for "
                        f"retry ({outcome.message})"
                    )
                }
            )
        return outcome

    def delete_remote(self) -> SyncOutcome:
        """Delete the remote document and forget when we last synced."""
        try:
            result = self.provider.delete_remote()
        except SyncError as e:
            return SyncOutcome.failure(e.kind, e.message)
        self.store.update_metadata(last_sync_timestamp=None, gist_id=None)
        return SyncOutcome(
            success=result.success,
            message="Remote data deleted",
            timestamp=result.timestamp,
        )

    def enable_sync(self) -> None:
        self.scheduler.enable()
        self.status.set_idle("Sync enabled")

    def disable_sync(self) -> None:
        """Stop syncing: drop pending tasks and cached credentials."""
        self.scheduler.disable()
        self.provider.invalidate()
        self.identity.invalidate()

    def close(self) -> None:
        self.scheduler.disable()

    # ------------------------------------------------------------------
    # Command dispatch
    # ------------------------------------------------------------------

    def execute(self, command: Command) -> Any:
        """Dispatch a validated command and return its result."""
        match command:
            case CreateGroup():
                return self.groups.create_group(
                    command.name, command.tabs, command.pinned
                )
            case UpdateGroup():
                return self.groups.update_group(
                    command.group_id,
                    name=command.name,
                    tabs=command.tabs,
                    pinned=command.pinned,
                )
            case DeleteGroup():
                return self.groups.delete_group(command.group_id)
            case ToggleGroupLock():
                return self.groups.toggle_lock(command.group_id)
            case ImportData():
                return self.groups.import_data(command.data)
            case ClearData():
                return self.groups.clear_data()
            case ExportData():
                return self.groups.export_data()
            case ListGroups():
                return self.groups.list_groups()
            case Sync():
                return self.sync_now()
            case Push():
                return self.push()
            case Pull():
                return self.pull()
            case ResolveConflict():
                return self.resolve_conflict(command.resolution)
            case GetStatus():
                return self.get_status()
        raise TypeError(f"Unsupported command: {command!r}")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _attempt(self, tasks: list[SyncTask]) -> SyncOutcome:
        """Scheduler callback: run the operation the batch calls for."""
        self._apply_resolution()
        operations = {task.operation for task in tasks}
        if PULL_OPERATION in operations:
            outcome = self.engine.pull()
        elif operations & {PUSH_OPERATION, RESOLVE_OPERATION}:
            outcome = self.engine.push()
        else:
            outcome = self.engine.run()

        if outcome.conflict is not None:
            return self._on_conflict(outcome)
        if outcome.success and outcome.action is not SyncAction.NO_ACTION:
            with self._conflict_lock:
                self._pending_conflict = None
        return outcome

    def _on_conflict(self, outcome: SyncOutcome) -> SyncOutcome:
        conflict = outcome.conflict
        assert conflict is not None
        choice = self.policy.choose(conflict)
        if choice is None:
            with self._conflict_lock:
                self._pending_conflict = conflict
            return outcome

        logger.info("Auto-resolving conflict with '%s'", choice.value)
        resolved = resolve_conflict(
            conflict, choice, self.identity.device_info(lookup=False)
        )
        with self._conflict_lock:
            self._pending_conflict = None
        with self.store.lock:
            self.store.set(resolved)
        pushed = self.engine.push()
        if pushed.success:
            return pushed.model_copy(
                update={
                    "action": SyncAction.CONFLICT,
                    "message": f"Conflict auto-resolved with '{choice.value}'",
                    "merged": choice is Resolution.MERGE,
                }
            )
        return pushed

    def _apply_resolution(self) -> None:
        """Write a resolved dataset still waiting to be stored."""
        with self._conflict_lock:
            resolved, self._resolved = self._resolved, None
        if resolved is not None:
            with self.store.lock:
                self.store.set(resolved)

    def _remember_gist_id(self, gist_id: str | None) -> None:
        self.store.update_metadata(gist_id=gist_id)
