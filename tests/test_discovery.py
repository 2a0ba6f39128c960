"""Tests for the RemoteDiscoverer engine."""

import threading
from unittest.mock import Mock

import pytest

from pydrivemap.discovery import (
    AlwaysMap,
    DfsTraversal,
    InheritSync,
    NeverSync,
    NoFilter,
    RemoteDiscoverer,
    depth_limited_discoverer,
    naive_discoverer,
)
from pydrivemap.exceptions import (
    DriveInvalidResponseError,
    IllegalStateError,
    InvalidArgumentError,
    RemoteIOError,
)
from pydrivemap.mapping.ignore import FileIgnorer
from pydrivemap.mapping.node import DirectoryMapping
from pydrivemap.models import FOLDER_MIME_TYPE
from pydrivemap.remote_explorer import RemoteExplorer


@pytest.fixture
def hierarchy(remote):
    """R -> docs (A) -> sub (B); R -> music (C)."""
    remote.add_folder("A", "docs")
    remote.add_folder("B", "sub", "A")
    remote.add_folder("C", "music")
    return remote


class NeverMap:
    def should_map(self, remote_id):
        return False


class TestNaiveDiscovery:
    """Tests for full-depth discovery."""

    def test_discovers_whole_hierarchy(self, mapper, hierarchy, local_root):
        stats = naive_discoverer(hierarchy, mapper, mapper.root).discover()

        assert stats.visited == 4
        assert stats.mapped == 3
        assert stats.pruned == 0
        assert not stats.cancelled
        assert mapper.get_local_path("B") == local_root / "docs" / "sub"
        assert all(node.subdirs_up_to_date for node in mapper)

    def test_new_mappings_inherit_sync(self, mapper, hierarchy):
        naive_discoverer(hierarchy, mapper, mapper.root).discover()
        assert all(node.sync for node in mapper)

    def test_sync_strategy_applies_to_new_mappings(self, mapper, hierarchy):
        naive_discoverer(hierarchy, mapper, mapper.root, sync=NeverSync()).discover()
        assert mapper.synced_mappings() == [mapper.root]

    def test_second_run_is_idempotent(self, mapper, hierarchy):
        """Running discovery again maps nothing new."""
        naive_discoverer(hierarchy, mapper, mapper.root).discover()
        before = mapper.tree()

        stats = naive_discoverer(hierarchy, mapper, mapper.root).discover()

        assert stats.mapped == 0
        assert mapper.tree() == before

    def test_ignored_folders_are_mapped_but_not_expanded(
        self, mapper, hierarchy, local_root
    ):
        ignorer = FileIgnorer(local_root, ["docs"])

        stats = naive_discoverer(
            hierarchy, mapper, mapper.root, ignorer=ignorer
        ).discover()

        assert "A" in mapper
        assert "B" not in mapper
        assert stats.pruned == 1
        assert "A" not in hierarchy.listed
        # Ignored subtrees do not make the parent incomplete
        assert mapper.root.subdirs_up_to_date

    def test_override_ignores(self, mapper, hierarchy, local_root):
        ignorer = FileIgnorer(local_root, ["docs"])

        naive_discoverer(
            hierarchy, mapper, mapper.root, override_ignores=True, ignorer=ignorer
        ).discover()

        assert "B" in mapper

    def test_discovery_below_subfolder(self, mapper, hierarchy, local_root):
        docs = mapper.map_subdir("A", local_root / "docs", True, mapper.root)

        naive_discoverer(hierarchy, mapper, docs).discover()

        assert "B" in mapper
        assert "C" not in mapper
        assert docs.subdirs_up_to_date
        assert not mapper.root.subdirs_up_to_date

    def test_folder_with_two_parents_mapped_once(self, mapper, hierarchy):
        hierarchy.add_folder("D", "shared", "A", "C")

        naive_discoverer(hierarchy, mapper, mapper.root).discover()

        assert len(mapper) == 5
        assert hierarchy.listed.count("D") == 1
        mapper.validate()

    def test_on_folder_callback(self, mapper, hierarchy):
        seen = []
        naive_discoverer(
            hierarchy,
            mapper,
            mapper.root,
            on_folder=lambda folder, parent, node: seen.append(
                (folder.id, parent.remote_id, node.remote_id)
            ),
        ).discover()

        assert sorted(seen) == [("A", "R", "A"), ("B", "A", "B"), ("C", "R", "C")]


class TestDepthLimitedDiscovery:
    """Tests for discovery with a depth limit."""

    def test_depth_zero_maps_only_immediate_subfolders(self, mapper, hierarchy):
        """The root's subfolders are mapped but none is expanded."""
        stats = depth_limited_discoverer(
            hierarchy, mapper, mapper.root, max_depth=0
        ).discover()

        assert stats.visited == 1
        assert stats.mapped == 2
        assert stats.pruned == 2
        assert "B" not in mapper
        assert hierarchy.listed == ["R"]
        assert not mapper.root.subdirs_up_to_date
        assert not mapper.get_mapping("A").subdirs_up_to_date

    @pytest.mark.parametrize("breadth_first", [False, True])
    def test_depth_one(self, mapper, hierarchy, breadth_first):
        stats = depth_limited_discoverer(
            hierarchy, mapper, mapper.root, max_depth=1, breadth_first=breadth_first
        ).discover()

        assert stats.visited == 3
        assert stats.mapped == 3
        assert stats.pruned == 1
        assert mapper.get_mapping("C").subdirs_up_to_date
        assert not mapper.get_mapping("A").subdirs_up_to_date
        assert not mapper.root.subdirs_up_to_date
        assert "B" not in hierarchy.listed

    def test_deep_enough_limit_completes(self, mapper, hierarchy):
        depth_limited_discoverer(hierarchy, mapper, mapper.root, max_depth=5).discover()
        assert all(node.subdirs_up_to_date for node in mapper)

    def test_breadth_first_order(self, mapper, hierarchy):
        depth_limited_discoverer(
            hierarchy, mapper, mapper.root, max_depth=5, breadth_first=True
        ).discover()
        assert hierarchy.listed == ["R", "A", "C", "B"]

    def test_resuming_after_depth_limit(self, mapper, hierarchy):
        """A second, deeper run completes what the first one pruned."""
        depth_limited_discoverer(hierarchy, mapper, mapper.root, max_depth=0).discover()
        naive_discoverer(hierarchy, mapper, mapper.root).discover()

        assert "B" in mapper
        assert mapper.root.subdirs_up_to_date

    def test_always_map_updates_existing_mappings(self, mapper, hierarchy, local_root):
        mapper.map_subdir("A", local_root / "docs", False, mapper.root)

        stats = depth_limited_discoverer(
            hierarchy, mapper, mapper.root, max_depth=5, mapping=AlwaysMap()
        ).discover()

        assert mapper.get_mapping("A").sync is True
        assert stats.mapped == 2


class TestDiscoveryInterruption:
    """Tests for unmapped folders, cancellation and remote failures."""

    def test_unmapped_folder_leaves_parent_incomplete(self, mapper, hierarchy):
        discoverer = RemoteDiscoverer(
            hierarchy,
            mapper,
            mapper.root,
            DfsTraversal(),
            NeverMap(),
            InheritSync(),
            NoFilter(),
        )

        stats = discoverer.discover()

        assert stats.mapped == 0
        assert len(mapper) == 1
        assert not mapper.root.subdirs_up_to_date

    def test_cancel_marks_queued_folders_incomplete(self, mapper, hierarchy):
        cancel = threading.Event()

        def cancel_after_docs(folder, parent, node):
            if folder.id == "A":
                cancel.set()

        stats = naive_discoverer(
            hierarchy, mapper, mapper.root, on_folder=cancel_after_docs
        ).discover(cancel)

        assert stats.cancelled
        assert stats.visited == 1
        assert "A" in mapper and "C" in mapper
        assert not mapper.get_mapping("A").subdirs_up_to_date
        assert not mapper.get_mapping("C").subdirs_up_to_date
        assert not mapper.root.subdirs_up_to_date

    def test_remote_error_marks_unfinished_and_propagates(self, mapper, hierarchy):
        hierarchy.fail_on.add("A")

        with pytest.raises(RemoteIOError):
            naive_discoverer(hierarchy, mapper, mapper.root).discover()

        assert not mapper.get_mapping("A").subdirs_up_to_date
        assert not mapper.root.subdirs_up_to_date
        mapper.validate()

    def test_malformed_listing_marks_parent_incomplete(self, mapper):
        """A listing that cannot be parsed fails like any remote error."""
        client = Mock()
        client.list_files.return_value = {
            "files": [{"name": "no-id", "mimeType": FOLDER_MIME_TYPE}]
        }
        mapper.root.subdirs_up_to_date = True

        with pytest.raises(DriveInvalidResponseError):
            naive_discoverer(RemoteExplorer(client), mapper, mapper.root).discover()

        assert mapper.root.subdirs_up_to_date is False
        assert len(mapper) == 1

    def test_rerun_after_failure_completes(self, mapper, hierarchy):
        hierarchy.fail_on.add("A")
        with pytest.raises(RemoteIOError):
            naive_discoverer(hierarchy, mapper, mapper.root).discover()

        hierarchy.fail_on.clear()
        naive_discoverer(hierarchy, mapper, mapper.root).discover()

        assert "B" in mapper
        assert all(node.subdirs_up_to_date for node in mapper)

    def test_discoverer_is_single_use(self, mapper, hierarchy):
        discoverer = naive_discoverer(hierarchy, mapper, mapper.root)
        discoverer.discover()
        with pytest.raises(IllegalStateError):
            discoverer.discover()

    def test_unregistered_root_rejected(self, mapper, hierarchy, local_root):
        stray = DirectoryMapping("X", local_root / "x")
        with pytest.raises(InvalidArgumentError):
            naive_discoverer(hierarchy, mapper, stray)
