"""Incremental discovery of the remote folder hierarchy.

Discovery walks remote folders starting at a mapped folder, registers the
subfolders it finds and records which subtrees were fully fetched. Partial
discovery is always a valid state: a later run picks up where the previous one
was pruned, cancelled or failed.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..exceptions import (
    IllegalStateError,
    InvalidArgumentError,
    RemoteIOError,
    UnsupportedOperationError,
)
from ..mapping.ignore import FileIgnorer
from ..mapping.node import DirectoryMapping
from ..mapping.registry import FilesystemMapper, child_path
from .strategies import (
    DepthLimitFilter,
    DepthTrackingBfsTraversal,
    DepthTrackingDfsTraversal,
    DfsTraversal,
    FilterIfIgnored,
    FilterStrategy,
    InheritSync,
    MapIfNotAlreadyMapped,
    MappingStrategy,
    NoFilter,
    SyncStrategy,
    TraversalStrategy,
)

if TYPE_CHECKING:
    from ..models import RemoteItem
    from ..remote_explorer import RemoteExplorer

logger = logging.getLogger(__name__)

FolderCallback = Callable[
    ["RemoteItem", DirectoryMapping, Optional[DirectoryMapping]], None
]


@dataclass
class DiscoveryStats:
    """Counters of a discovery run."""

    visited: int = 0
    """Folders whose subfolders were fetched"""

    mapped: int = 0
    """New mappings registered"""

    pruned: int = 0
    """Mapped folders that were not expanded"""

    cancelled: bool = False


class RemoteDiscoverer:
    """Discovers remote subfolders below a mapped folder.

    Each fetched folder is handled in three steps: it is registered if the
    mapping strategy says so, the ``on_folder`` callback is notified, and it is
    queued for expansion unless the filter strategy prunes it.

    A discoverer and its strategies are single-use.
    """

    def __init__(
        self,
        explorer: "RemoteExplorer",
        mapper: FilesystemMapper,
        root: DirectoryMapping,
        traversal: TraversalStrategy,
        mapping: MappingStrategy,
        sync: SyncStrategy,
        filter: FilterStrategy,
        on_folder: Optional[FolderCallback] = None,
    ):
        if mapper.get_mapping(root.remote_id) is not root:
            raise InvalidArgumentError(f"Discovery root {root} is not registered")
        self.explorer = explorer
        self.mapper = mapper
        self.root = root
        self.traversal = traversal
        self.mapping = mapping
        self.sync = sync
        self.filter = filter
        self.on_folder = on_folder
        self._started = False

    def discover(
        self, cancel_event: Optional[threading.Event] = None
    ) -> DiscoveryStats:
        """Run discovery until the worklist is empty or ``cancel_event`` is set.

        Args:
            cancel_event: Checked between folders; when set, discovery stops
                and the folders still queued are marked not up to date

        Returns:
            DiscoveryStats of the run

        Raises:
            RemoteIOError: If listing a folder fails. Folders not expanded yet
                are marked not up to date before the error propagates.
            IllegalStateError: If the discoverer was already used
        """
        if self._started:
            raise IllegalStateError("A discoverer can only run once")
        self._started = True

        stats = DiscoveryStats()
        self.traversal.add_child(self.root, None)

        while not self.traversal.is_done():
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Discovery cancelled")
                self._abandon(None)
                stats.cancelled = True
                break

            parent = self.traversal.next_node()
            try:
                subfolders = self.explorer.get_subdirs(parent.remote_id)
            except RemoteIOError:
                logger.debug(f"Listing {parent} failed, aborting discovery")
                self._abandon(parent)
                raise
            stats.visited += 1

            if self._expand(parent, subfolders, stats):
                self.mapper.set_subdirs_up_to_date(parent, True)
            else:
                self.mapper.set_subdirs_up_to_date(parent, False, propagate=True)

        logger.debug(
            f"Discovery from {self.root}: {stats.visited} visited, "
            f"{stats.mapped} mapped, {stats.pruned} pruned"
        )
        return stats

    def _expand(
        self,
        parent: DirectoryMapping,
        subfolders: list["RemoteItem"],
        stats: DiscoveryStats,
    ) -> bool:
        """Handle the subfolders of ``parent``; returns whether all were expanded."""
        complete = True
        for folder in subfolders:
            node = self._map(folder, parent, stats)
            if self.on_folder is not None:
                self.on_folder(folder, parent, node)

            if node is None:
                # Not mapped, so its subfolders cannot be fetched
                complete = False
                continue
            if node.parent is not parent:
                # Folder with several remote parents, expanded where it is mapped
                continue

            if self.filter.is_filtered(node, parent):
                stats.pruned += 1
                if self.filter.leaves_incomplete(node, parent):
                    complete = False
                continue

            self.traversal.add_child(node, parent)
        return complete

    def _map(
        self, folder: "RemoteItem", parent: DirectoryMapping, stats: DiscoveryStats
    ) -> Optional[DirectoryMapping]:
        if not self.mapping.should_map(folder.id):
            return self.mapper.get_mapping(folder.id)

        existed = self.mapper.is_mapped(folder.id)
        sync = self.sync.should_sync(folder, parent)
        path = child_path(parent, folder.name or folder.id)
        try:
            node = self.mapper.map_subdir(folder.id, path, sync, parent)
        except UnsupportedOperationError as e:
            logger.warning(f"Not remapping {folder.name} ({folder.id}): {e}")
            return self.mapper.get_mapping(folder.id)

        if not existed:
            stats.mapped += 1
        return node

    def _abandon(self, in_flight: Optional[DirectoryMapping]) -> None:
        """Mark the in-flight and all queued folders as not up to date."""
        unfinished = [in_flight] if in_flight is not None else []
        while not self.traversal.is_done():
            unfinished.append(self.traversal.next_node())
        for node in unfinished:
            self.mapper.set_subdirs_up_to_date(node, False, propagate=True)


def naive_discoverer(
    explorer: "RemoteExplorer",
    mapper: FilesystemMapper,
    root: DirectoryMapping,
    sync: Optional[SyncStrategy] = None,
    override_ignores: bool = False,
    ignorer: Optional[FileIgnorer] = None,
    on_folder: Optional[FolderCallback] = None,
) -> RemoteDiscoverer:
    """Depth-first discovery of the whole subtree below ``root``.

    Only unmapped folders are registered. Ignored folders are not expanded
    unless ``override_ignores`` is set.

    Args:
        explorer: Remote collaborator
        mapper: Registry to fill
        root: Registered mapping to start from
        sync: Sync strategy for new mappings (defaults to inheriting)
        override_ignores: Expand ignored folders too
        ignorer: Ignore rules (no filtering when None)
        on_folder: Per-folder callback
    """
    if override_ignores or ignorer is None:
        filter_strategy: FilterStrategy = NoFilter()
    else:
        filter_strategy = FilterIfIgnored(ignorer)
    return RemoteDiscoverer(
        explorer,
        mapper,
        root,
        DfsTraversal(),
        MapIfNotAlreadyMapped(mapper),
        sync if sync is not None else InheritSync(),
        filter_strategy,
        on_folder=on_folder,
    )


def depth_limited_discoverer(
    explorer: "RemoteExplorer",
    mapper: FilesystemMapper,
    root: DirectoryMapping,
    sync: Optional[SyncStrategy] = None,
    max_depth: int = 1,
    inner_filter: Optional[FilterStrategy] = None,
    mapping: Optional[MappingStrategy] = None,
    breadth_first: bool = False,
    on_folder: Optional[FolderCallback] = None,
) -> RemoteDiscoverer:
    """Discovery that stops ``max_depth`` levels below ``root``.

    With ``max_depth=0`` only the immediate subfolders of ``root`` are fetched
    and mapped; none of them is expanded.

    Example:
        >>> discoverer = depth_limited_discoverer(explorer, mapper, mapper.root,
        ...                                       max_depth=0)
        >>> stats = discoverer.discover()
        >>> mapper.root.subdirs_up_to_date
        False
    """
    traversal: TraversalStrategy
    if breadth_first:
        traversal = DepthTrackingBfsTraversal()
    else:
        traversal = DepthTrackingDfsTraversal()
    return RemoteDiscoverer(
        explorer,
        mapper,
        root,
        traversal,
        mapping if mapping is not None else MapIfNotAlreadyMapped(mapper),
        sync if sync is not None else InheritSync(),
        DepthLimitFilter(traversal, max_depth, inner_filter),  # type: ignore[arg-type]
        on_folder=on_folder,
    )
