"""Tests for the dataset merge.

Covers:
- merge_tabs URL-keyed union (first occurrence wins, duplicates collapsed)
- merge_group metadata winner by update marker, tie-break on dataset timestamp
- merge_datasets group-id union, ordering, settings, fresh version stamp
- merging a dataset with itself leaves groups, tabs and settings unchanged
"""

from __future__ import annotations

from conftest import REMOTE_DEVICE, make_dataset, make_group

from unitab_sync.sync.merger import merge_datasets, merge_group, merge_tabs
from unitab_sync.sync.models import DeviceInfo, Tab


class TestMergeTabs:
    """Tests for merge_tabs()."""

    def test_union_keeps_primary_order_first(self):
        primary = [Tab(url="https://a/"), Tab(url="https://b/")]
        secondary = [Tab(url="https://c/"), Tab(url="https://a/")]
        merged = merge_tabs(primary, secondary)
        assert [t.url for t in merged] == ["https://a/", "https://b/", "https://c/"]

    def test_first_occurrence_wins_for_duplicate_url(self):
        primary = [Tab(url="https://a/", title="primary")]
        secondary = [Tab(url="https://a/", title="secondary")]
        assert merge_tabs(primary, secondary)[0].title == "primary"

    def test_duplicates_within_one_side_are_collapsed(self):
        tabs = [Tab(url="https://a/"), Tab(url="https://a/")]
        assert len(merge_tabs(tabs, [])) == 1

    def test_empty_inputs(self):
        assert merge_tabs([], []) == []


class TestMergeGroup:
    """Tests for merge_group()."""

    def test_newer_remote_update_wins_metadata(self):
        local_group = make_group(1, name="old", updated_at="2026-01-01T00:00:00.000Z")
        remote_group = make_group(
            1,
            name="new",
            urls=("https://remote/",),
            updated_at="2026-01-02T00:00:00.000Z",
        )
        local = make_dataset([local_group])
        remote = make_dataset([remote_group], device_id=REMOTE_DEVICE)

        merged = merge_group(local_group, remote_group, local, remote)

        assert merged.name == "new"
        assert [t.url for t in merged.tabs] == [
            "https://remote/",
            "https://example.com/",
        ]

    def test_newer_local_update_wins_metadata(self):
        local_group = make_group(
            1, name="mine", locked=True, updated_at="2026-01-03T00:00:00.000Z"
        )
        remote_group = make_group(1, name="theirs", updated_at="2026-01-02T00:00:00.000Z")
        merged = merge_group(
            local_group, remote_group, make_dataset(), make_dataset()
        )
        assert merged.name == "mine"
        assert merged.locked is True

    def test_created_at_used_when_updated_at_missing(self):
        local_group = make_group(1, name="local", created_at="2026-01-05T00:00:00.000Z")
        remote_group = make_group(1, name="remote", created_at="2026-01-04T00:00:00.000Z")
        merged = merge_group(
            local_group, remote_group, make_dataset(), make_dataset()
        )
        assert merged.name == "local"

    def test_tie_falls_back_to_dataset_timestamp(self):
        local_group = make_group(1, name="local")
        remote_group = make_group(1, name="remote")
        local = make_dataset(timestamp="2026-01-01T00:00:00.000Z")
        remote = make_dataset(timestamp="2026-01-01T00:00:01.000Z")
        assert merge_group(local_group, remote_group, local, remote).name == "remote"

    def test_full_tie_favours_local(self):
        local_group = make_group(1, name="local")
        remote_group = make_group(1, name="remote")
        merged = merge_group(
            local_group, remote_group, make_dataset(), make_dataset()
        )
        assert merged.name == "local"


class TestMergeDatasets:
    """Tests for merge_datasets()."""

    def test_group_ids_are_union_of_both_sides(self):
        local = make_dataset([make_group(1), make_group(2)])
        remote = make_dataset([make_group(2), make_group(3)], device_id=REMOTE_DEVICE)
        merged = merge_datasets(local, remote)
        assert [g.id for g in merged.groups] == [1, 2, 3]

    def test_no_duplicate_urls_in_merged_groups(self):
        local = make_dataset([make_group(1, urls=("https://a/", "https://b/"))])
        remote = make_dataset(
            [make_group(1, urls=("https://b/", "https://c/"))],
            device_id=REMOTE_DEVICE,
        )
        merged = merge_datasets(local, remote)
        urls = [t.url for t in merged.groups[0].tabs]
        assert sorted(urls) == ["https://a/", "https://b/", "https://c/"]
        assert len(urls) == len(set(urls))

    def test_result_gets_fresh_version_and_local_device(self):
        local = make_dataset([make_group(1)], version="v1")
        remote = make_dataset([make_group(2)], device_id=REMOTE_DEVICE, version="v2")
        merged = merge_datasets(local, remote)
        assert merged.version not in ("v1", "v2")
        assert merged.device.id == local.device.id

    def test_explicit_device_is_stamped(self):
        device = DeviceInfo(id="device_x", name="X", account_id="1001")
        merged = merge_datasets(make_dataset(), make_dataset(), device)
        assert merged.device == device

    def test_settings_newer_dataset_wins_overlapping_keys(self):
        local = make_dataset(
            settings={"theme": "dark", "local_only": 1},
            timestamp="2026-01-01T00:00:00.000Z",
        )
        remote = make_dataset(
            settings={"theme": "light", "remote_only": 2},
            timestamp="2026-01-02T00:00:00.000Z",
        )
        merged = merge_datasets(local, remote)
        assert merged.settings == {
            "theme": "light",
            "local_only": 1,
            "remote_only": 2,
        }

    def test_merging_with_empty_remote_keeps_local_groups(self):
        local = make_dataset([make_group(1), make_group(2)])
        merged = merge_datasets(local, make_dataset(device_id=REMOTE_DEVICE))
        assert merged.group_ids() == {1, 2}

    def test_merging_a_dataset_with_itself_changes_nothing(self):
        dataset = make_dataset(
            [
                make_group(1, name="Research", urls=("https://a/", "https://a/")),
                make_group(2, name="Keep", locked=True),
            ],
            settings={"theme": "dark"},
        )

        merged = merge_datasets(dataset, dataset)

        assert [g.id for g in merged.groups] == [1, 2]
        assert [g.name for g in merged.groups] == ["Research", "Keep"]
        assert [g.locked for g in merged.groups] == [False, True]
        assert [{t.url for t in g.tabs} for g in merged.groups] == [
            {"https://a/"},
            {"https://example.com/"},
        ]
        assert [t.url for t in merged.groups[0].tabs] == ["https://a/"]
        assert merged.settings == {"theme": "dark"}
        assert merge_datasets(merged, merged).groups == merged.groups
