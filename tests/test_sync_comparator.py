"""Tests for the FileComparator class."""

import os
from pathlib import Path

from pydrivemap.models import RemoteItem
from pydrivemap.sync.comparator import FileComparator, SyncAction
from pydrivemap.utils import iso_to_epoch

REMOTE_TIME = "2024-01-15T10:30:00.000Z"


def _remote_file(modified_time=REMOTE_TIME) -> RemoteItem:
    return RemoteItem(
        id="f1", name="test.txt", mime_type="text/plain", modified_time=modified_time
    )


def _local_file(tmp_path: Path, mtime: float) -> Path:
    path = tmp_path / "test.txt"
    path.write_text("local")
    os.utime(path, (mtime, mtime))
    return path


class TestFileComparator:
    """Tests for download decisions."""

    def test_missing_local_file_downloads(self, tmp_path):
        decision = FileComparator().compare(_remote_file(), tmp_path / "test.txt")

        assert decision.action == SyncAction.DOWNLOAD
        assert decision.reason == "New remote file"
        assert decision.local_mtime is None

    def test_older_local_file_downloads(self, tmp_path):
        path = _local_file(tmp_path, iso_to_epoch(REMOTE_TIME) - 60)

        decision = FileComparator().compare(_remote_file(), path)

        assert decision.action == SyncAction.DOWNLOAD
        assert decision.reason == "Remote file is newer"

    def test_same_mtime_skips(self, tmp_path):
        path = _local_file(tmp_path, iso_to_epoch(REMOTE_TIME))

        decision = FileComparator().compare(_remote_file(), path)

        assert decision.action == SyncAction.SKIP
        assert decision.reason == "Local file is up to date"

    def test_newer_local_file_is_not_uploaded(self, tmp_path):
        """Local changes never win; the file is simply left alone."""
        path = _local_file(tmp_path, iso_to_epoch(REMOTE_TIME) + 60)

        decision = FileComparator().compare(_remote_file(), path)

        assert decision.action == SyncAction.SKIP

    def test_unknown_remote_mtime_keeps_local_file(self, tmp_path):
        path = _local_file(tmp_path, 0)

        decision = FileComparator().compare(_remote_file(None), path)

        assert decision.action == SyncAction.SKIP

    def test_tolerance(self, tmp_path):
        path = _local_file(tmp_path, iso_to_epoch(REMOTE_TIME) - 1)

        decision = FileComparator(mtime_tolerance=2).compare(_remote_file(), path)

        assert decision.action == SyncAction.SKIP

    def test_compare_files_sorted_by_path(self, tmp_path):
        files = {
            tmp_path / "b.txt": _remote_file(),
            tmp_path / "a.txt": _remote_file(),
        }

        decisions = FileComparator().compare_files(files)

        assert [d.local_path.name for d in decisions] == ["a.txt", "b.txt"]
        assert all(d.action == SyncAction.DOWNLOAD for d in decisions)
