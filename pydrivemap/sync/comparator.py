"""File comparison logic for pulling remote files."""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from ..models import RemoteItem


class SyncAction(str, Enum):
    """Actions that can be taken during sync."""

    DOWNLOAD = "download"
    """Download remote file to local"""

    SKIP = "skip"
    """Skip file (no action needed)"""


@dataclass
class SyncDecision:
    """Represents a decision about how to sync a file."""

    action: SyncAction
    """Action to take"""

    reason: str
    """Human-readable reason for this decision"""

    remote_file: RemoteItem
    """Remote file"""

    local_path: Path
    """Where the remote file lives locally"""

    local_mtime: Optional[float] = None
    """Local modification time (None if the local file is missing)"""


class FileComparator:
    """Decides whether a remote file has to be downloaded.

    A file is downloaded when it is missing locally or the local copy is
    strictly older than the remote one. The remote side always wins; local
    changes are never merged.
    """

    def __init__(self, mtime_tolerance: float = 0.0):
        """Initialize file comparator.

        Args:
            mtime_tolerance: Seconds by which the remote file must be newer
                before it is downloaded again (for file systems with coarse
                timestamps)
        """
        self.mtime_tolerance = mtime_tolerance

    def compare(self, remote_file: RemoteItem, local_path: Path) -> SyncDecision:
        """Compare a remote file with its local counterpart.

        Args:
            remote_file: Remote file
            local_path: Local path of the file

        Returns:
            SyncDecision for this file
        """
        try:
            local_mtime: Optional[float] = os.stat(local_path).st_mtime
        except FileNotFoundError:
            local_mtime = None

        if local_mtime is None:
            return SyncDecision(
                action=SyncAction.DOWNLOAD,
                reason="New remote file",
                remote_file=remote_file,
                local_path=local_path,
            )

        remote_mtime = remote_file.mtime
        if remote_mtime is None:
            return SyncDecision(
                action=SyncAction.SKIP,
                reason="Remote mtime unavailable, keeping local file",
                remote_file=remote_file,
                local_path=local_path,
                local_mtime=local_mtime,
            )

        if remote_mtime - local_mtime > self.mtime_tolerance:
            return SyncDecision(
                action=SyncAction.DOWNLOAD,
                reason="Remote file is newer",
                remote_file=remote_file,
                local_path=local_path,
                local_mtime=local_mtime,
            )

        return SyncDecision(
            action=SyncAction.SKIP,
            reason="Local file is up to date",
            remote_file=remote_file,
            local_path=local_path,
            local_mtime=local_mtime,
        )

    def compare_files(
        self, remote_files: dict[Path, RemoteItem]
    ) -> list[SyncDecision]:
        """Compare several remote files, keyed by local path.

        Returns:
            List of SyncDecision objects, sorted by local path
        """
        return [
            self.compare(remote_files[path], path) for path in sorted(remote_files)
        ]
