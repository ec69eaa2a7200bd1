"""Tests for the group service.

Covers:
- create/update/delete/toggle-lock with persisted results
- Locked groups refuse delete and rename
- Excluded URL prefixes are dropped on save
- Every mutation re-stamps the dataset and notifies with its operation tag
- import (dataset, legacy, bare list, duplicate ids), export and clear
- statistics
"""

from __future__ import annotations

import json

import pytest
from conftest import LOCAL_DEVICE, make_dataset, make_group

from unitab_sync.errors import GroupLockedError, GroupNotFoundError
from unitab_sync.groups import GroupService, generate_group_id
from unitab_sync.sync.identity import IdentityResolver

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mutations():
    return []


@pytest.fixture
def groups(store, provider, mutations):
    return GroupService(
        store, IdentityResolver(store, provider), on_mutation=mutations.append
    )


@pytest.fixture
def seeded(store, groups):
    store.set(
        make_dataset(
            [make_group(1, name="Open"), make_group(2, name="Keep", locked=True)]
        )
    )
    return groups


# ---------------------------------------------------------------------------
# Ids
# ---------------------------------------------------------------------------


class TestGenerateGroupId:
    def test_ids_are_time_based(self):
        assert generate_group_id() > 1_600_000_000_000_000

    def test_id_exceeds_existing(self):
        huge = 10**18
        assert generate_group_id([1, huge]) == huge + 1


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


class TestCreateGroup:
    def test_create_persists_and_notifies(self, groups, store, mutations):
        before = store.get().version

        group = groups.create_group(
            "Reading", [{"title": "Docs", "url": "https://docs.python.org/"}]
        )

        dataset = store.get()
        assert dataset.groups[0] == group
        assert group.tabs[0].title == "Docs"
        assert group.created_at == group.updated_at
        assert dataset.version != before
        assert dataset.device.id == LOCAL_DEVICE
        assert mutations == ["create_group"]

    def test_new_groups_are_listed_first(self, seeded):
        group = seeded.create_group("Newest")
        assert seeded.list_groups()[0].id == group.id

    def test_default_name(self, groups):
        assert groups.create_group().name.startswith("Tab Group ")

    def test_excluded_urls_dropped(self, groups):
        group = groups.create_group(
            "Mixed",
            [
                {"url": "chrome://settings"},
                {"url": "about:blank"},
                {"url": "https://example.org/"},
            ],
        )
        assert [t.url for t in group.tabs] == ["https://example.org/"]


class TestUpdateGroup:
    def test_rename(self, seeded, mutations):
        updated = seeded.update_group(1, name="Renamed")
        assert seeded.get_group(1).name == "Renamed"
        assert updated.updated_at is not None
        assert mutations == ["update_group"]

    def test_locked_group_cannot_be_renamed(self, seeded, mutations):
        with pytest.raises(GroupLockedError, match="cannot rename"):
            seeded.update_group(2, name="Other")
        assert mutations == []

    def test_locked_group_tabs_can_change(self, seeded):
        updated = seeded.update_group(2, tabs=[{"url": "https://new.example/"}])
        assert [t.url for t in updated.tabs] == ["https://new.example/"]

    def test_unknown_group(self, seeded):
        with pytest.raises(GroupNotFoundError, match="Group 99 not found"):
            seeded.update_group(99, name="x")


class TestDeleteAndLock:
    def test_delete(self, seeded, mutations):
        seeded.delete_group(1)
        assert [g.id for g in seeded.list_groups()] == [2]
        assert mutations == ["delete_group"]

    def test_locked_group_cannot_be_deleted(self, seeded):
        with pytest.raises(GroupLockedError):
            seeded.delete_group(2)
        assert len(seeded.list_groups()) == 2

    def test_toggle_lock_then_delete(self, seeded, mutations):
        assert seeded.toggle_lock(2).locked is False
        seeded.delete_group(2)
        assert mutations == ["toggle_group_lock", "delete_group"]

    def test_get_unknown_group(self, seeded):
        with pytest.raises(GroupNotFoundError):
            seeded.get_group(42)


# ---------------------------------------------------------------------------
# Import / export / clear
# ---------------------------------------------------------------------------


class TestImportExport:
    def test_export_is_dataset_document(self, seeded):
        document = json.loads(seeded.export_data())
        assert {g["id"] for g in document["groups"]} == {1, 2}
        assert document["device"]["id"] == LOCAL_DEVICE

    def test_import_full_document_replaces_groups(self, seeded, mutations):
        document = make_dataset([make_group(7)], settings={"theme": "dark"}).to_document()

        assert seeded.import_data(json.dumps(document)) == 1

        assert [g.id for g in seeded.list_groups()] == [7]
        assert mutations == ["import_data"]

    def test_import_keeps_settings_when_absent(self, store, groups):
        store.set(make_dataset([make_group(1)], settings={"theme": "dark"}))
        groups.import_data(json.dumps([make_group(3).model_dump(by_alias=True)]))
        assert store.get().settings == {"theme": "dark"}

    def test_import_legacy_document(self, groups):
        legacy = {
            "version": "v1",
            "timestamp": "2026-01-01T00:00:00.000Z",
            "device": {"id": "device_old"},
            "data": {"groups": [make_group(5).model_dump(by_alias=True)]},
        }
        assert groups.import_data(json.dumps(legacy)) == 1

    def test_import_renumbers_duplicate_ids(self, groups):
        payload = [make_group(4).model_dump(by_alias=True)] * 2
        groups.import_data(json.dumps(payload))
        ids = [g.id for g in groups.list_groups()]
        assert len(set(ids)) == 2
        assert ids[0] == 4

    def test_import_rejects_invalid_json(self, seeded, mutations):
        with pytest.raises(ValueError, match="not valid JSON"):
            seeded.import_data("{")
        assert mutations == []

    def test_import_rejects_wrong_shape(self, seeded):
        with pytest.raises(ValueError):
            seeded.import_data(json.dumps({"foo": 1}))
        with pytest.raises(ValueError, match="failed validation"):
            seeded.import_data(json.dumps([{"name": "no id"}]))

    def test_clear(self, store, groups, mutations):
        store.set(make_dataset([make_group(1)], settings={"a": 1}))
        groups.clear_data()
        dataset = store.get()
        assert dataset.groups == []
        assert dataset.settings == {}
        assert mutations == ["clear_data"]


class TestStatistics:
    def test_statistics(self, store, groups):
        store.set(
            make_dataset(
                [
                    make_group(1, urls=("a", "b", "c")),
                    make_group(2, locked=True),
                ]
            )
        )
        assert groups.statistics() == {
            "groupCount": 2,
            "tabCount": 4,
            "lockedGroups": 1,
            "averageTabsPerGroup": 2.0,
        }

    def test_empty_statistics(self, groups):
        assert groups.statistics()["averageTabsPerGroup"] == 0
