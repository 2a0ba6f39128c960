"""Pull the content of one mapped directory from the remote."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Optional

from ..exceptions import IllegalStateError, InvalidArgumentError
from ..mapping.node import DirectoryMapping
from ..mapping.registry import FilesystemMapper, child_path
from ..models import RemoteItem
from ..remote_explorer import RemoteExplorer
from ..utils import sanitize_filename
from .comparator import FileComparator, SyncAction, SyncDecision
from .operations import SyncOperations, native_document_path

logger = logging.getLogger(__name__)

CURRENT_DIRECTORY = "."


class DirectorySyncer:
    """Synchronizes one mapped directory with its remote folder.

    Only the immediate content of the folder is handled: subfolders are
    created locally (and mapped when new) but their files are synced by their
    own syncer. The remote side wins; nothing is uploaded yet.
    """

    def __init__(
        self,
        mapping: DirectoryMapping,
        explorer: RemoteExplorer,
        mapper: FilesystemMapper,
        operations: Optional[SyncOperations] = None,
        comparator: Optional[FileComparator] = None,
        max_workers: int = 1,
        dry_run: bool = False,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ):
        """Initialize the syncer.

        Args:
            mapping: Registered mapping to sync
            explorer: Remote explorer
            mapper: Registry the mapping belongs to
            operations: Download operations (built from ``explorer`` if omitted)
            comparator: Decides which files to download
            max_workers: Number of parallel downloads (default: 1)
            dry_run: Only compute what would be done
            progress_callback: Optional callback function(bytes_downloaded,
                total_bytes) passed to every download

        Raises:
            InvalidArgumentError: If ``mapping`` is not registered in ``mapper``
        """
        if mapper.get_mapping(mapping.remote_id) is not mapping:
            raise InvalidArgumentError(f"{mapping} is not registered")
        if max_workers < 1:
            raise InvalidArgumentError(f"max_workers must be >= 1, got {max_workers}")

        self.mapping = mapping
        self.explorer = explorer
        self.mapper = mapper
        self.operations = operations or SyncOperations(explorer)
        self.comparator = comparator or FileComparator()
        self.max_workers = max_workers
        self.dry_run = dry_run
        self.progress_callback = progress_callback

    def sync(self) -> dict:
        """Pull missing and outdated files of the mapped directory.

        Returns:
            Dictionary with the keys ``downloads``, ``skips``,
            ``directories_created``, ``mappings_created`` and
            ``skipped_directories``. In a dry run the counts are what would
            have been done.

        Raises:
            IllegalStateError: If a file occupies the path of a directory
            RemoteIOError: If listing or downloading fails
        """
        stats = {
            "downloads": 0,
            "skips": 0,
            "directories_created": 0,
            "mappings_created": 0,
            "skipped_directories": 0,
        }
        if not self.mapping.sync:
            logger.debug(f"{self.mapping} is not synced, nothing to do")
            return stats

        logger.debug(
            f"Syncing {self.mapping.local_path} to {self.mapping.remote_id}"
            + (" (dry run)" if self.dry_run else "")
        )
        contents = self.pull()

        # The directory itself first, so files always have somewhere to go
        folders = [RemoteItem.folder(self.mapping.remote_id, CURRENT_DIRECTORY)]
        folders.extend(item for item in contents if item.is_folder)
        files = [item for item in contents if not item.is_folder]

        self._create_local_dirs(folders, stats)
        decisions = self._plan_downloads(files)
        stats["skips"] = sum(1 for d in decisions if d.action == SyncAction.SKIP)
        actionable = [d for d in decisions if d.action == SyncAction.DOWNLOAD]

        if self.dry_run:
            for decision in actionable:
                logger.debug(f"Would download {decision.local_path}: {decision.reason}")
            stats["downloads"] = len(actionable)
        else:
            stats["downloads"] = self._execute_downloads(actionable)
        return stats

    def pull(self) -> list[RemoteItem]:
        """Immediate remote content of the mapped folder."""
        return self.explorer.get_contents(self.mapping.remote_id)

    def push(self) -> None:
        """Upload local changes. Not supported yet."""
        raise NotImplementedError("Uploading local changes is not supported yet")

    def diff(self) -> None:
        """Compare local and remote trees. Not supported yet."""
        raise NotImplementedError("Diffing local and remote is not supported yet")

    def _create_local_dirs(self, folders: list[RemoteItem], stats: dict) -> None:
        """Create synced directories that do not exist locally.

        Folders with an un-synced mapping are skipped. Unmapped folders are
        mapped under this directory and synced. The map is saved when new
        mappings were created, also when a later folder fails.
        """
        try:
            for folder in folders:
                self._create_local_dir(folder, stats)
        finally:
            if stats["mappings_created"] and not self.dry_run:
                if self.mapper.map_file is not None:
                    self.mapper.save()

    def _create_local_dir(self, folder: RemoteItem, stats: dict) -> None:
        node = self.mapper.get_mapping(folder.id)
        if node is not None and not node.sync:
            logger.debug(f"Not creating un-synced directory {node}")
            stats["skipped_directories"] += 1
            return

        if node is not None:
            local_path = node.local_path
        else:
            local_path = child_path(self.mapping, folder.name or folder.id)
            if not self.dry_run:
                self.mapper.map_subdir(folder.id, local_path, True, self.mapping)
            stats["mappings_created"] += 1

        if not local_path.exists():
            logger.debug(f"Creating local directory {local_path} for {folder.id}")
            if not self.dry_run:
                local_path.mkdir(parents=True, exist_ok=True)
            stats["directories_created"] += 1
        elif not local_path.is_dir():
            logger.error(f"Local file {local_path} is in the way of a directory")
            raise IllegalStateError(
                f"Can't create local directory {local_path}: "
                "a file of the same name already exists"
            )

    def local_file_path(self, remote_file: RemoteItem) -> Path:
        """Local path of a remote file of this directory."""
        name = sanitize_filename(remote_file.name or remote_file.id)
        return native_document_path(remote_file, self.mapping.local_path / name)

    def _plan_downloads(self, files: list[RemoteItem]) -> list[SyncDecision]:
        by_path: dict[Path, RemoteItem] = {}
        for remote_file in files:
            path = self.local_file_path(remote_file)
            other = by_path.get(path)
            if other is not None:
                # Remote names are not unique; the newest file wins the path
                logger.warning(
                    f"Several remote files map to {path}, keeping the newest one"
                )
                if (other.mtime or 0) >= (remote_file.mtime or 0):
                    continue
            by_path[path] = remote_file
        return self.comparator.compare_files(by_path)

    def _download(self, decision: SyncDecision) -> None:
        start = time.time()
        self.operations.download_file(
            decision.remote_file, decision.local_path, self.progress_callback
        )
        logger.debug(
            f"Download of {decision.local_path} took {time.time() - start:.2f}s"
        )

    def _execute_downloads(self, decisions: list[SyncDecision]) -> int:
        """Run the downloads; returns how many completed.

        The first failure is raised once the other downloads are done.
        """
        if self.max_workers == 1 or len(decisions) < 2:
            for decision in decisions:
                self._download(decision)
            return len(decisions)

        logger.debug(
            f"Downloading {len(decisions)} files with {self.max_workers} workers"
        )
        completed = 0
        first_error: Optional[BaseException] = None
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self._download, decision): decision
                for decision in decisions
            }
            for future in as_completed(futures):
                error = future.exception()
                if error is None:
                    completed += 1
                    continue
                logger.debug(
                    f"Download of {futures[future].local_path} failed: {error}"
                )
                if first_error is None:
                    first_error = error

        if first_error is not None:
            raise first_error
        return completed
