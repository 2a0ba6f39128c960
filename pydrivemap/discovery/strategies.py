"""Pluggable policies for the discovery engine.

The engine is generic over four policies, each defined as a Protocol. Any
object with the matching methods can be used; the classes below are the
variants shipped with pydrivemap.

- Traversal: in which order folders are expanded
- Mapping: whether a discovered folder is registered
- Sync: the sync flag given to a new mapping
- Filter: whether a mapped folder is expanded further
"""

from collections import deque
from collections.abc import Iterable
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from ..exceptions import IllegalStateError, InvalidArgumentError
from ..mapping.ignore import FileIgnorer
from ..mapping.node import DirectoryMapping
from ..mapping.registry import child_path

if TYPE_CHECKING:
    from ..mapping.registry import FilesystemMapper
    from ..models import RemoteItem


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class TraversalStrategy(Protocol):
    """Worklist of mappings whose subfolders still have to be fetched."""

    def is_done(self) -> bool: ...

    def next_node(self) -> DirectoryMapping:
        """Remove and return the next mapping to expand.

        Raises:
            IllegalStateError: If the worklist is empty
        """
        ...

    def add_child(
        self, node: DirectoryMapping, parent: Optional[DirectoryMapping]
    ) -> None:
        """Queue ``node`` for expansion. ``parent`` is None for the start node."""
        ...


@runtime_checkable
class MappingStrategy(Protocol):
    def should_map(self, remote_id: str) -> bool: ...


@runtime_checkable
class SyncStrategy(Protocol):
    def should_sync(
        self, remote_folder: "RemoteItem", parent: DirectoryMapping
    ) -> bool: ...


@runtime_checkable
class FilterStrategy(Protocol):
    """Decides whether a mapped folder is left out of the worklist.

    ``leaves_incomplete`` tells whether filtering ``node`` means its parent's
    subtree was not fully fetched.
    """

    def is_filtered(self, node: DirectoryMapping, parent: DirectoryMapping) -> bool: ...

    def leaves_incomplete(
        self, node: DirectoryMapping, parent: DirectoryMapping
    ) -> bool: ...


# =============================================================================
# Traversal
# =============================================================================


class DfsTraversal:
    """Depth-first order (LIFO stack)."""

    def __init__(self) -> None:
        self._stack: list[DirectoryMapping] = []

    def is_done(self) -> bool:
        return not self._stack

    def next_node(self) -> DirectoryMapping:
        if not self._stack:
            raise IllegalStateError("Traversal is done")
        return self._stack.pop()

    def add_child(
        self, node: DirectoryMapping, parent: Optional[DirectoryMapping] = None
    ) -> None:
        self._stack.append(node)

    def pending(self) -> list[DirectoryMapping]:
        """Queued mappings, next first."""
        return list(reversed(self._stack))


class BfsTraversal:
    """Breadth-first order (FIFO queue)."""

    def __init__(self) -> None:
        self._queue: deque[DirectoryMapping] = deque()

    def is_done(self) -> bool:
        return not self._queue

    def next_node(self) -> DirectoryMapping:
        if not self._queue:
            raise IllegalStateError("Traversal is done")
        return self._queue.popleft()

    def add_child(
        self, node: DirectoryMapping, parent: Optional[DirectoryMapping] = None
    ) -> None:
        self._queue.append(node)

    def pending(self) -> list[DirectoryMapping]:
        return list(self._queue)


class _DepthTracking:
    """Records each queued node's depth relative to the start node."""

    def __init__(self) -> None:
        super().__init__()
        self._depths: dict[DirectoryMapping, int] = {}

    def add_child(
        self, node: DirectoryMapping, parent: Optional[DirectoryMapping] = None
    ) -> None:
        if parent is None:
            depth = 0
        else:
            if parent not in self._depths:
                raise InvalidArgumentError(f"Parent {parent} has no recorded depth")
            depth = self._depths[parent] + 1
        self._depths[node] = depth
        super().add_child(node, parent)  # type: ignore[misc]

    def depth_of(self, node: DirectoryMapping) -> int:
        """Depth of a queued (or already expanded) node.

        Raises:
            InvalidArgumentError: If the node was never added
        """
        try:
            return self._depths[node]
        except KeyError:
            raise InvalidArgumentError(f"{node} has no recorded depth") from None


class DepthTrackingDfsTraversal(_DepthTracking, DfsTraversal):
    """Depth-first traversal that knows each node's depth."""


class DepthTrackingBfsTraversal(_DepthTracking, BfsTraversal):
    """Breadth-first traversal that knows each node's depth."""


# =============================================================================
# Mapping
# =============================================================================


class AlwaysMap:
    """Register every discovered folder (existing mappings are updated)."""

    def should_map(self, remote_id: str) -> bool:
        return True


class MapIfNotAlreadyMapped:
    """Register only folders the mapper does not know yet."""

    def __init__(self, mapper: "FilesystemMapper"):
        self.mapper = mapper

    def should_map(self, remote_id: str) -> bool:
        return not self.mapper.is_mapped(remote_id)


# =============================================================================
# Sync
# =============================================================================


class AlwaysSync:
    def should_sync(
        self, remote_folder: "RemoteItem", parent: DirectoryMapping
    ) -> bool:
        return True


class NeverSync:
    def should_sync(
        self, remote_folder: "RemoteItem", parent: DirectoryMapping
    ) -> bool:
        return False


class InheritSync:
    """Use the parent mapping's sync flag."""

    def should_sync(
        self, remote_folder: "RemoteItem", parent: DirectoryMapping
    ) -> bool:
        return parent.sync


class SyncIfNotIgnored:
    """Sync unless the folder's would-be local path is ignored."""

    def __init__(self, ignorer: FileIgnorer):
        self.ignorer = ignorer

    def should_sync(
        self, remote_folder: "RemoteItem", parent: DirectoryMapping
    ) -> bool:
        path = child_path(parent, remote_folder.name or remote_folder.id)
        return not self.ignorer.is_ignored(path)


class SyncIfIdIn:
    """Sync exactly the folders whose remote IDs are listed."""

    def __init__(self, remote_ids: Iterable[str]):
        self.remote_ids = frozenset(remote_ids)

    def should_sync(
        self, remote_folder: "RemoteItem", parent: DirectoryMapping
    ) -> bool:
        return remote_folder.id in self.remote_ids


# =============================================================================
# Filter
# =============================================================================


class NoFilter:
    def is_filtered(self, node: DirectoryMapping, parent: DirectoryMapping) -> bool:
        return False

    def leaves_incomplete(
        self, node: DirectoryMapping, parent: DirectoryMapping
    ) -> bool:
        return False


class FilterIfIgnored:
    """Do not descend into ignored folders."""

    def __init__(self, ignorer: FileIgnorer):
        self.ignorer = ignorer

    def is_filtered(self, node: DirectoryMapping, parent: DirectoryMapping) -> bool:
        return self.ignorer.is_ignored(node.local_path)

    def leaves_incomplete(
        self, node: DirectoryMapping, parent: DirectoryMapping
    ) -> bool:
        # Ignored folders are excluded on purpose
        return False


class DepthLimitFilter:
    """Prune folders deeper than ``max_depth`` below the start node.

    A folder is filtered when its depth exceeds ``max_depth`` or when the
    ``inner`` filter filters it. Only depth pruning leaves the parent
    incomplete: ignored folders are excluded on purpose.

    Args:
        traversal: Depth-tracking traversal of the same discovery run
        max_depth: Deepest expanded level (0 expands only the start node)
        inner: Filter combined with the depth limit
    """

    def __init__(
        self,
        traversal: _DepthTracking,
        max_depth: int,
        inner: Optional[FilterStrategy] = None,
    ):
        if max_depth < 0:
            raise InvalidArgumentError(f"max_depth must be >= 0, got {max_depth}")
        self.traversal = traversal
        self.max_depth = max_depth
        self.inner = inner if inner is not None else NoFilter()

    def _too_deep(self, parent: DirectoryMapping) -> bool:
        return self.traversal.depth_of(parent) + 1 > self.max_depth

    def is_filtered(self, node: DirectoryMapping, parent: DirectoryMapping) -> bool:
        return self._too_deep(parent) or self.inner.is_filtered(node, parent)

    def leaves_incomplete(
        self, node: DirectoryMapping, parent: DirectoryMapping
    ) -> bool:
        return self._too_deep(parent) and not self.inner.is_filtered(node, parent)
