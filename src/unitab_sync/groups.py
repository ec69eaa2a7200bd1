"""Group service: CRUD over the tab groups in the local store.

Every mutation re-stamps the dataset (new version and timestamp, local
device identity), writes the whole document back, and then notifies the
mutation listener with its operation tag so an automatic sync can be
scheduled.
"""

from __future__ import annotations

import json
import logging
import random
import time
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .config import DEFAULT_EXCLUDE_PREFIXES
from .errors import GroupLockedError, GroupNotFoundError
from .sync.identity import IdentityResolver
from .sync.models import Dataset, Group, Tab, to_iso, utc_now
from .sync.state import LocalStore

logger = logging.getLogger(__name__)

_GROUP_LIST = TypeAdapter(list[Group])

MutationListener = Callable[[str], None]


def generate_group_id(existing: Iterable[int] = ()) -> int:
    """Return ``epoch_ms * 1000 + random(0..999)``, above every *existing* id."""
    candidate = int(time.time() * 1000) * 1000 + random.randint(0, 999)
    highest = max(existing, default=0)
    return max(candidate, highest + 1)


class GroupService:
    """Manage tab groups.

    Args:
        store: Local store holding the dataset.
        identity: Resolver providing the local device identity.
        exclude_prefixes: URL prefixes dropped when saving tabs.
        on_mutation: Called with the operation tag after each mutation.
    """

    def __init__(
        self,
        store: LocalStore,
        identity: IdentityResolver,
        exclude_prefixes: Iterable[str] = DEFAULT_EXCLUDE_PREFIXES,
        on_mutation: MutationListener | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._exclude = tuple(exclude_prefixes)
        self.on_mutation = on_mutation

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_groups(self) -> list[Group]:
        return list(self._store.get().groups)

    def get_group(self, group_id: int) -> Group:
        """Return the group with *group_id*.

        Raises:
            GroupNotFoundError: No such group.
        """
        for group in self._store.get().groups:
            if group.id == group_id:
                return group
        raise GroupNotFoundError(group_id)

    def export_data(self) -> str:
        """Serialise the whole dataset as indented JSON."""
        return json.dumps(self._store.get().to_document(), indent=2)

    def statistics(self) -> dict[str, Any]:
        groups = self._store.get().groups
        tab_count = sum(len(g.tabs) for g in groups)
        return {
            "groupCount": len(groups),
            "tabCount": tab_count,
            "lockedGroups": sum(1 for g in groups if g.locked),
            "averageTabsPerGroup": (
                round(tab_count / len(groups), 1) if groups else 0
            ),
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_group(
        self,
        name: str | None = None,
        tabs: Iterable[Tab | dict] = (),
        pinned: bool = False,
    ) -> Group:
        """Create a group from *tabs*; newest groups are listed first.

        Tabs whose URL starts with an excluded prefix are dropped.
        """
        now = to_iso(utc_now())
        with self._store.lock:
            dataset = self._store.get()
            group = Group(
                id=generate_group_id(dataset.group_ids()),
                name=name or f"Tab Group {now[:16].replace('T', ' ')}",
                created_at=now,
                updated_at=now,
                pinned=pinned,
                tabs=self._filter_tabs(tabs),
            )
            self._commit(
                dataset.model_copy(update={"groups": [group, *dataset.groups]})
            )
        logger.info("Created group %s with %d tabs", group.id, len(group.tabs))
        self._notify("create_group")
        return group

    def update_group(
        self,
        group_id: int,
        name: str | None = None,
        tabs: Iterable[Tab | dict] | None = None,
        pinned: bool | None = None,
    ) -> Group:
        """Update the given fields of a group.

        Raises:
            GroupNotFoundError: No such group.
            GroupLockedError: Renaming a locked group.
        """
        with self._store.lock:
            dataset = self._store.get()
            group = self._find(dataset, group_id)
            changes: dict[str, Any] = {"updated_at": to_iso(utc_now())}
            if name is not None and name != group.name:
                if group.locked:
                    raise GroupLockedError(group_id, "rename")
                changes["name"] = name
            if tabs is not None:
                changes["tabs"] = self._filter_tabs(tabs)
            if pinned is not None:
                changes["pinned"] = pinned
            updated = group.model_copy(update=changes)
            self._commit(self._replace(dataset, updated))
        self._notify("update_group")
        return updated

    def delete_group(self, group_id: int) -> None:
        """Delete a group.

        Raises:
            GroupNotFoundError: No such group.
            GroupLockedError: The group is locked.
        """
        with self._store.lock:
            dataset = self._store.get()
            group = self._find(dataset, group_id)
            if group.locked:
                raise GroupLockedError(group_id, "delete")
            remaining = [g for g in dataset.groups if g.id != group_id]
            self._commit(dataset.model_copy(update={"groups": remaining}))
        logger.info("Deleted group %s", group_id)
        self._notify("delete_group")

    def toggle_lock(self, group_id: int) -> Group:
        with self._store.lock:
            dataset = self._store.get()
            group = self._find(dataset, group_id)
            updated = group.model_copy(
                update={
                    "locked": not group.locked,
                    "updated_at": to_iso(utc_now()),
                }
            )
            self._commit(self._replace(dataset, updated))
        self._notify("toggle_group_lock")
        return updated

    def import_data(self, text: str) -> int:
        """Replace all groups with those in *text*.

        Accepts a full dataset document (current or legacy nested layout)
        or a bare JSON list of groups.  Settings are replaced only when the
        document carries them.  Duplicate ids get fresh ones.

        Returns:
            Number of imported groups.

        Raises:
            ValueError: *text* is not JSON or not a valid document.
        """
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Import data is not valid JSON: {e.msg}") from e

        settings: dict[str, Any] | None = None
        try:
            if isinstance(raw, list):
                groups = _GROUP_LIST.validate_python(raw)
            elif isinstance(raw, dict) and "version" in raw:
                imported = Dataset.model_validate(raw)
                groups, settings = imported.groups, imported.settings
            elif isinstance(raw, dict) and isinstance(raw.get("groups"), list):
                groups = _GROUP_LIST.validate_python(raw["groups"])
                settings = raw.get("settings")
            else:
                raise ValueError(
                    "Import data must be a dataset document or a list of groups"
                )
        except ValidationError as e:
            raise ValueError(
                f"Import data failed validation: {e.error_count()} error(s)"
            ) from e

        unique: list[Group] = []
        seen: set[int] = set()
        for group in groups:
            if group.id in seen:
                group = group.model_copy(
                    update={"id": generate_group_id(seen)}
                )
            seen.add(group.id)
            unique.append(
                group.model_copy(update={"tabs": self._filter_tabs(group.tabs)})
            )

        with self._store.lock:
            dataset = self._store.get()
            update: dict[str, Any] = {"groups": unique}
            if settings is not None:
                update["settings"] = settings
            self._commit(dataset.model_copy(update=update))
        logger.info("Imported %d groups", len(unique))
        self._notify("import_data")
        return len(unique)

    def clear_data(self) -> None:
        """Remove all groups and settings."""
        with self._store.lock:
            dataset = self._store.get()
            self._commit(
                dataset.model_copy(update={"groups": [], "settings": {}})
            )
        logger.info("Cleared all groups")
        self._notify("clear_data")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _filter_tabs(self, tabs: Iterable[Tab | dict]) -> list[Tab]:
        kept: list[Tab] = []
        for tab in tabs:
            if isinstance(tab, dict):
                tab = Tab.model_validate(tab)
            if tab.url.startswith(self._exclude):
                logger.debug("Skipping excluded tab %s", tab.url)
                continue
            kept.append(tab)
        return kept

    @staticmethod
    def _find(dataset: Dataset, group_id: int) -> Group:
        for group in dataset.groups:
            if group.id == group_id:
                return group
        raise GroupNotFoundError(group_id)

    @staticmethod
    def _replace(dataset: Dataset, updated: Group) -> Dataset:
        return dataset.model_copy(
            update={
                "groups": [
                    updated if g.id == updated.id else g
                    for g in dataset.groups
                ]
            }
        )

    def _commit(self, dataset: Dataset) -> None:
        self._store.set(
            dataset.restamp(self._identity.device_info(lookup=False))
        )

    def _notify(self, operation: str) -> None:
        if self.on_mutation is not None:
            self.on_mutation(operation)
