"""High-level operations: configure, discover and sync.

These functions tie the registry, discovery and syncer together; the command
line interface is a thin layer on top of them.
"""

import logging
import threading
from collections import deque
from collections.abc import Iterable
from pathlib import Path
from typing import Callable, Optional

from .discovery import (
    AlwaysMap,
    AlwaysSync,
    DiscoveryStats,
    FilterIfIgnored,
    SyncIfIdIn,
    SyncIfNotIgnored,
    SyncStrategy,
    depth_limited_discoverer,
    naive_discoverer,
)
from .exceptions import InvalidArgumentError, MapFileError
from .mapping.ignore import FileIgnorer
from .mapping.node import DirectoryMapping
from .mapping.registry import ROOT_KEY, FilesystemMapper
from .models import RemoteItem
from .remote_explorer import RemoteExplorer
from .sync.syncer import DirectorySyncer

logger = logging.getLogger(__name__)

# Deeper than any real folder hierarchy
_UNLIMITED_DEPTH = 1 << 30

SYNC_STAT_KEYS = (
    "downloads",
    "skips",
    "directories_created",
    "mappings_created",
    "skipped_directories",
)


def is_configured(map_file: Path) -> bool:
    """Whether a map file exists and can be loaded."""
    map_file = Path(map_file)
    if not map_file.is_file():
        return False
    try:
        FilesystemMapper.load(map_file)
    except (OSError, MapFileError) as e:
        logger.debug(f"Map file {map_file} cannot be loaded: {e}")
        return False
    return True


def configure_root(
    remote_root: str,
    local_root: Path,
    map_file: Path,
    explorer: Optional[RemoteExplorer] = None,
) -> FilesystemMapper:
    """Start a new map from a remote/local root pair and save it.

    The local root is created if needed. The ``root`` alias of the remote
    root is resolved to the folder's real ID, which requires ``explorer``.

    Returns:
        The new mapper

    Raises:
        InvalidArgumentError: If the remote root cannot be resolved
    """
    if remote_root == ROOT_KEY:
        if explorer is None:
            raise InvalidArgumentError(
                f"Resolving the {ROOT_KEY!r} alias needs a remote connection"
            )
        item = explorer.find_by_id(remote_root)
        if item is None:
            raise InvalidArgumentError("The remote root folder does not exist")
        remote_root = item.id
        logger.debug(f"Resolved remote root alias to {remote_root}")

    local_root = Path(local_root).absolute()
    local_root.mkdir(parents=True, exist_ok=True)

    mapper = FilesystemMapper.bootstrap(remote_root, local_root, map_file)
    mapper.save()
    logger.info(f"Mapped {local_root} <=> {remote_root}")
    return mapper


def discover(
    mapper: FilesystemMapper,
    explorer: RemoteExplorer,
    root: Optional[DirectoryMapping] = None,
    max_depth: Optional[int] = None,
    breadth_first: bool = False,
    sync: Optional[SyncStrategy] = None,
    ignorer: Optional[FileIgnorer] = None,
    override_ignores: bool = False,
    map_always: bool = False,
    cancel_event: Optional[threading.Event] = None,
    save: bool = True,
) -> DiscoveryStats:
    """Discover remote folders below ``root`` and register them.

    Args:
        mapper: Registry to update
        explorer: Remote explorer
        root: Mapping to start from (defaults to the root mapping)
        max_depth: Levels to expand below ``root``; None for no limit
        breadth_first: Expand level by level (depth-limited discovery only)
        sync: Sync strategy for new mappings (defaults to inheriting)
        ignorer: Ignored folders are not expanded
        override_ignores: Expand ignored folders too
        map_always: Update existing mappings in place instead of skipping them
        cancel_event: Stops discovery when set
        save: Save the map afterwards, also when discovery fails

    Returns:
        DiscoveryStats of the run
    """
    root = root if root is not None else mapper.root
    inner_filter = None
    if ignorer is not None and not override_ignores:
        inner_filter = FilterIfIgnored(ignorer)

    if max_depth is None and not map_always:
        discoverer = naive_discoverer(
            explorer,
            mapper,
            root,
            sync=sync,
            override_ignores=override_ignores,
            ignorer=ignorer,
        )
    else:
        discoverer = depth_limited_discoverer(
            explorer,
            mapper,
            root,
            sync=sync,
            max_depth=max_depth if max_depth is not None else _UNLIMITED_DEPTH,
            inner_filter=inner_filter,
            mapping=AlwaysMap() if map_always else None,
            breadth_first=breadth_first,
        )

    try:
        return discoverer.discover(cancel_event)
    finally:
        if save and mapper.map_file is not None:
            mapper.save()


def crawl(
    mapper: FilesystemMapper,
    explorer: RemoteExplorer,
    ignorer: Optional[FileIgnorer] = None,
) -> int:
    """Map every remote folder at once (first run). Returns new mappings."""
    created = mapper.crawl_remote_dirs(explorer, ignorer)
    logger.info(f"Crawl mapped {created} new folder(s)")
    return created


def update_root_directories(
    mapper: FilesystemMapper,
    explorer: RemoteExplorer,
    synced_ids: Iterable[str],
    ignorer: Optional[FileIgnorer] = None,
) -> DiscoveryStats:
    """Refresh the top of the hierarchy.

    The root's subfolders are expanded one level; new folders are synced when
    their ID is in ``synced_ids``.
    """
    return discover(
        mapper,
        explorer,
        max_depth=1,
        sync=SyncIfIdIn(synced_ids),
        ignorer=ignorer,
    )


def update_synced_directories(
    mapper: FilesystemMapper,
    explorer: RemoteExplorer,
    synced_ids: Iterable[str],
    ignorer: Optional[FileIgnorer] = None,
) -> list[str]:
    """Make exactly ``synced_ids`` synced and discover below them.

    Folders that are not mapped yet are mapped along with their ancestors.
    Synced folders whose subtree is not fully known are discovered; new
    subfolders are synced unless ignored, and the returned list is updated
    accordingly.

    Args:
        mapper: Registry
        explorer: Remote explorer
        synced_ids: Remote IDs of every synced folder
        ignorer: Ignore rules for new subfolders

    Returns:
        The updated list of synced folder IDs
    """
    ids = list(dict.fromkeys(synced_ids))
    mapper.reconcile_synced(ids, explorer)
    selected = set(ids)

    def track(
        folder: RemoteItem,
        parent: DirectoryMapping,
        node: Optional[DirectoryMapping],
    ) -> None:
        if node is not None and node.sync and node.remote_id not in selected:
            selected.add(node.remote_id)
            ids.append(node.remote_id)

    sync_strategy = SyncIfNotIgnored(ignorer) if ignorer is not None else AlwaysSync()
    for remote_id in list(ids):
        mapping = mapper.get_mapping(remote_id)
        if mapping is None or mapping.subdirs_up_to_date:
            continue
        logger.debug(f"Discovering below synced folder {mapping}")
        naive_discoverer(
            explorer, mapper, mapping, sync=sync_strategy, on_folder=track
        ).discover()

    if mapper.map_file is not None:
        mapper.save()
    return ids


def sync_all(
    mapper: FilesystemMapper,
    explorer: RemoteExplorer,
    max_workers: int = 1,
    dry_run: bool = False,
    on_directory: Optional[Callable[[DirectoryMapping], None]] = None,
) -> dict:
    """Run the directory syncer on every synced mapping.

    Synced subdirectories created along the way are synced in the same run.

    Args:
        mapper: Registry
        explorer: Remote explorer
        max_workers: Parallel downloads per directory
        dry_run: Only compute what would be done
        on_directory: Called before each directory is synced

    Returns:
        Totals of the per-directory stats plus ``directories`` (number of
        directories synced)
    """
    totals = dict.fromkeys(SYNC_STAT_KEYS, 0)
    totals["directories"] = 0

    done: set[str] = set()
    pending = deque(mapper.synced_mappings())
    while pending:
        mapping = pending.popleft()
        if mapping.remote_id in done or not mapping.sync:
            continue
        done.add(mapping.remote_id)

        if on_directory is not None:
            on_directory(mapping)
        stats = DirectorySyncer(
            mapping, explorer, mapper, max_workers=max_workers, dry_run=dry_run
        ).sync()
        for key in SYNC_STAT_KEYS:
            totals[key] += stats[key]
        totals["directories"] += 1

        pending.extend(
            child
            for child in mapping.children
            if child.sync and child.remote_id not in done
        )

    return totals
