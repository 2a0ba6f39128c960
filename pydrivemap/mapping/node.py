"""Directory mapping tree nodes."""

from collections.abc import Iterator
from pathlib import Path
from typing import Optional


class DirectoryMapping:
    """Maps a local directory (by absolute path) to a remote folder (by ID).

    Nodes form a tree: each node owns its ``children`` and keeps a back
    reference to its ``parent``. Equality is identity, so nodes can be used as
    dictionary keys while their fields are remapped in place.

    Tree structure and flags should be changed through
    :class:`~pydrivemap.mapping.registry.FilesystemMapper`, which keeps its
    remote ID index in step with the tree.
    """

    __slots__ = (
        "remote_id",
        "local_path",
        "sync",
        "subdirs_up_to_date",
        "children",
        "parent",
    )

    def __init__(
        self,
        remote_id: str,
        local_path: Path,
        sync: bool = False,
        children: Optional[list["DirectoryMapping"]] = None,
    ):
        self.remote_id = remote_id
        self.local_path = Path(local_path)
        self.sync = sync
        self.subdirs_up_to_date = False
        """Whether ALL transitive subdirectories have been fetched from remote"""

        self.children: list[DirectoryMapping] = []
        self.parent: Optional[DirectoryMapping] = None
        for child in children or []:
            child.parent = self
            self.children.append(child)

    @property
    def name(self) -> str:
        """Local directory name."""
        return self.local_path.name

    @property
    def is_root(self) -> bool:
        return self.parent is None

    def get_child_by_id(self, remote_id: str) -> Optional["DirectoryMapping"]:
        """Direct child with the given remote ID, if any."""
        for child in self.children:
            if child.remote_id == remote_id:
                return child
        return None

    def get_children_by_name(self, name: str) -> list["DirectoryMapping"]:
        """Direct children with the given local name (names are not unique)."""
        return [child for child in self.children if child.name == name]

    def walk(self) -> Iterator["DirectoryMapping"]:
        """Yield all descendants depth-first (pre-order), excluding self."""
        stack = list(reversed(self.children))
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(current.children))

    def walk_with_self(self) -> Iterator["DirectoryMapping"]:
        """Yield self, then all descendants depth-first."""
        yield self
        yield from self.walk()

    def ancestors(self) -> Iterator["DirectoryMapping"]:
        """Yield the parent, grandparent, ... up to the root."""
        current = self.parent
        while current is not None:
            yield current
            current = current.parent

    def depth(self) -> int:
        """Number of ancestors."""
        return sum(1 for _ in self.ancestors())

    def tree(self) -> str:
        """Indented text rendering of this subtree."""
        lines = []
        stack: list[tuple[DirectoryMapping, int]] = [(self, 0)]
        while stack:
            node, depth = stack.pop()
            lines.append("\t" * depth + str(node))
            stack.extend((child, depth + 1) for child in reversed(node.children))
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        return f"{self.name} ({self.remote_id})"

    def __repr__(self) -> str:
        return (
            f"DirectoryMapping(remote_id={self.remote_id!r}, "
            f"local_path={str(self.local_path)!r}, sync={self.sync})"
        )
