"""Registry of directory mappings and its JSON persistence.

The registry owns the mapping tree and a flat ``remote_id -> node`` index that
always mirrors it. The map file is a flat JSON object keyed by remote ID::

    {
      "root": "R",
      "R": {"remoteName": "root", "parents": [], "localPath": "/sync", "sync": true},
      "A": {"remoteName": "docs", "parents": ["R"], "localPath": "/sync/docs",
            "sync": true, "subdirsUpToDate": false}
    }
"""

import json
import logging
import os
import tempfile
import threading
from collections import defaultdict
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

from ..exceptions import (
    IllegalStateError,
    InvalidArgumentError,
    MapFileError,
    UnsupportedOperationError,
)
from ..utils import sanitize_filename
from .ignore import FileIgnorer
from .node import DirectoryMapping

if TYPE_CHECKING:
    from ..models import RemoteItem
    from ..remote_explorer import RemoteExplorer

logger = logging.getLogger(__name__)

ROOT_KEY = "root"
ROOT_REMOTE_NAME = "root"

MappingRef = Union[str, DirectoryMapping]


def child_path(parent: DirectoryMapping, remote_name: str) -> Path:
    """Local path for a remote folder named ``remote_name`` under ``parent``."""
    return parent.local_path / sanitize_filename(remote_name)


class FilesystemMapper:
    """Bidirectional index between local directories and remote folder IDs.

    All mutations are serialised behind a re-entrant lock, so a mapper can be
    shared between a discovery run and a concurrent sync.

    Example:
        >>> mapper = FilesystemMapper.bootstrap("R", Path("/sync"))
        >>> docs = mapper.map_subdir("A", Path("/sync/docs"), True, mapper.root)
        >>> mapper.get_local_path("A")
        PosixPath('/sync/docs')
    """

    def __init__(self, root: DirectoryMapping, map_file: Optional[Path] = None):
        """Initialize the mapper with an existing tree.

        Args:
            root: Root node. Every node below it is indexed.
            map_file: Where :meth:`save` writes the map

        Raises:
            InvalidArgumentError: If ``root`` has a parent, a path is not
                absolute, or the tree contains duplicate remote IDs
        """
        if root.parent is not None:
            raise InvalidArgumentError(f"{root} is not a root mapping")

        self.root = root
        self.map_file = Path(map_file).absolute() if map_file else None
        self._lock = threading.RLock()
        self._index: dict[str, DirectoryMapping] = {}

        for node in root.walk_with_self():
            self._check_id(node.remote_id)
            if not node.local_path.is_absolute():
                raise InvalidArgumentError(f"{node.local_path} is not absolute")
            if node.remote_id in self._index:
                raise InvalidArgumentError(f"Duplicate remote ID {node.remote_id}")
            self._index[node.remote_id] = node

    @classmethod
    def bootstrap(
        cls, remote_root: str, local_root: Path, map_file: Optional[Path] = None
    ) -> "FilesystemMapper":
        """Create a mapper holding only the root mapping (synced)."""
        root = DirectoryMapping(remote_root, Path(local_root).absolute(), sync=True)
        return cls(root, map_file)

    @classmethod
    def load_or_bootstrap(
        cls, remote_root: str, local_root: Path, map_file: Path
    ) -> "FilesystemMapper":
        """Load the map file, or start a fresh map if it does not exist."""
        if Path(map_file).exists():
            return cls.load(map_file)
        logger.warning(f"Map file {map_file} not found, starting a new map")
        return cls.bootstrap(remote_root, local_root, map_file)

    @staticmethod
    def _check_id(remote_id: Any) -> None:
        if not isinstance(remote_id, str) or not remote_id:
            raise InvalidArgumentError(f"Invalid remote ID {remote_id!r}")
        if remote_id == ROOT_KEY:
            # Would collide with the "root" key of the map file
            raise InvalidArgumentError(
                f"{ROOT_KEY!r} is an alias, resolve it to the folder's real ID"
            )

    # =========================
    # Registration
    # =========================

    def register(
        self, child: DirectoryMapping, parent: DirectoryMapping
    ) -> DirectoryMapping:
        """Attach ``child`` (and its subtree) under ``parent``.

        Registering an ID that already lives under ``parent`` remaps it in
        place: its local path and sync flag are updated and its children are
        kept.

        Args:
            child: New mapping. Its path must be ``parent.local_path / name``.
            parent: A registered mapping

        Returns:
            The registered node (the existing one when remapped in place)

        Raises:
            InvalidArgumentError: If ``parent`` is not registered or the child's
                path is not absolute or not directly under the parent
            UnsupportedOperationError: If the ID is registered under another
                parent, is the root, or the child's subtree contains
                registered IDs
        """
        with self._lock:
            if self._index.get(parent.remote_id) is not parent:
                raise InvalidArgumentError(f"Parent {parent} is not registered")
            self._check_id(child.remote_id)
            if not child.local_path.is_absolute():
                raise InvalidArgumentError(f"{child.local_path} is not absolute")
            if child.local_path.parent != parent.local_path:
                raise InvalidArgumentError(
                    f"{child.local_path} is not directly under {parent.local_path}"
                )

            existing = self._index.get(child.remote_id)
            if existing is not None:
                if existing.parent is not parent:
                    raise UnsupportedOperationError(
                        f"{child.remote_id} is already mapped to "
                        f"{existing.local_path}, moving mappings is not supported"
                    )
                self._remap(existing, child.local_path, child.sync)
                return existing

            if child.parent is not None:
                raise InvalidArgumentError(
                    f"{child} is already attached to {child.parent}"
                )

            subtree = list(child.walk())
            seen = {child.remote_id}
            for node in subtree:
                self._check_id(node.remote_id)
                if node.remote_id in self._index or node.remote_id in seen:
                    raise UnsupportedOperationError(
                        f"{node.remote_id} is already mapped, cannot register {child}"
                    )
                seen.add(node.remote_id)

            child.parent = parent
            parent.children.append(child)
            self._index[child.remote_id] = child
            for node in subtree:
                self._index[node.remote_id] = node

            logger.debug(f"Mapped {child.local_path} <=> {child.remote_id}")
            return child

    def map_subdir(
        self,
        remote_id: str,
        local_path: Path,
        sync: bool,
        parent: DirectoryMapping,
    ) -> DirectoryMapping:
        """Create and register a mapping for a subdirectory of ``parent``."""
        return self.register(DirectoryMapping(remote_id, local_path, sync), parent)

    def _remap(self, node: DirectoryMapping, local_path: Path, sync: bool) -> None:
        old_path = node.local_path
        node.sync = sync
        if local_path == old_path:
            return

        node.local_path = local_path
        for descendant in node.walk():
            try:
                relative = descendant.local_path.relative_to(old_path)
            except ValueError:
                continue
            descendant.local_path = local_path / relative
        logger.debug(f"Remapped {node.remote_id}: {old_path} -> {local_path}")

    def unregister(self, remote_id: str) -> DirectoryMapping:
        """Remove a mapping and its whole subtree.

        Used when a remote folder was deleted. Local files are not touched.

        Returns:
            The detached node

        Raises:
            InvalidArgumentError: If the ID is not mapped or is the root
        """
        with self._lock:
            node = self._require(remote_id)
            if node is self.root:
                raise InvalidArgumentError("The root mapping cannot be removed")

            parent = node.parent
            assert parent is not None
            parent.children = [c for c in parent.children if c is not node]
            for removed in node.walk_with_self():
                del self._index[removed.remote_id]
            node.parent = None

            logger.debug(f"Unmapped {node.local_path} <=> {node.remote_id}")
            return node

    # =========================
    # Lookups
    # =========================

    def get_mapping(self, remote_id: str) -> Optional[DirectoryMapping]:
        """Mapping for a remote ID, or None."""
        return self._index.get(remote_id)

    def get_mapping_by_path(self, local_path: Path) -> Optional[DirectoryMapping]:
        """Mapping for a local directory, or None.

        Relative paths are resolved against the working directory.
        """
        target = Path(local_path).absolute()
        for node in list(self._index.values()):
            if node.local_path == target:
                return node
        return None

    def is_mapped(self, remote_id: str) -> bool:
        return remote_id in self._index

    def is_path_mapped(self, local_path: Path) -> bool:
        return self.get_mapping_by_path(local_path) is not None

    def get_local_path(self, remote_id: str) -> Optional[Path]:
        node = self._index.get(remote_id)
        return node.local_path if node else None

    def get_remote_id(self, local_path: Path) -> Optional[str]:
        node = self.get_mapping_by_path(local_path)
        return node.remote_id if node else None

    def get_parent_id(self, remote_id: str) -> Optional[str]:
        """Remote ID of the parent mapping (None for the root or unknown IDs)."""
        node = self._index.get(remote_id)
        if node is None or node.parent is None:
            return None
        return node.parent.remote_id

    def synced_mappings(self) -> list[DirectoryMapping]:
        """Mappings flagged for sync, depth-first from the root."""
        return [node for node in self.root.walk_with_self() if node.sync]

    def _require(self, ref: MappingRef) -> DirectoryMapping:
        if isinstance(ref, DirectoryMapping):
            if self._index.get(ref.remote_id) is not ref:
                raise InvalidArgumentError(f"{ref} is not registered")
            return ref
        node = self._index.get(ref)
        if node is None:
            raise InvalidArgumentError(f"{ref} is not mapped")
        return node

    # =========================
    # Flags
    # =========================

    def set_sync(self, ref: MappingRef, sync: bool) -> None:
        """Set the sync flag of a single mapping."""
        with self._lock:
            self._require(ref).sync = sync

    def deep_set_sync(self, ref: MappingRef, sync: bool) -> int:
        """Set the sync flag of a mapping and all its descendants.

        Returns:
            Number of mappings changed
        """
        with self._lock:
            changed = 0
            for node in self._require(ref).walk_with_self():
                if node.sync != sync:
                    node.sync = sync
                    changed += 1
            return changed

    def set_subdirs_up_to_date(
        self, ref: MappingRef, value: bool, propagate: bool = False
    ) -> None:
        """Set the ``subdirs_up_to_date`` flag of a mapping.

        Args:
            ref: Mapping or remote ID
            value: New flag value
            propagate: When ``value`` is False, also clear the flag on every
                ancestor (their subtrees are no longer complete either)
        """
        with self._lock:
            node = self._require(ref)
            node.subdirs_up_to_date = value
            if propagate and not value:
                for ancestor in node.ancestors():
                    ancestor.subdirs_up_to_date = False

    # =========================
    # Consistency
    # =========================

    def validate(self) -> None:
        """Check that the index mirrors the tree.

        Raises:
            IllegalStateError: On a duplicate ID, a broken parent reference, or
                an index entry that is not reachable from the root
        """
        with self._lock:
            reachable = 0
            for node in self.root.walk_with_self():
                reachable += 1
                if self._index.get(node.remote_id) is not node:
                    raise IllegalStateError(f"{node} is not indexed")
                for child in node.children:
                    if child.parent is not node:
                        raise IllegalStateError(f"{child} has a wrong parent reference")
            if reachable != len(self._index):
                raise IllegalStateError(
                    f"{len(self._index) - reachable} indexed mapping(s) "
                    "are not reachable from the root"
                )

    # =========================
    # Persistence
    # =========================

    def to_dict(self) -> dict[str, Any]:
        """Flat JSON-compatible representation of the tree."""
        with self._lock:
            data: dict[str, Any] = {ROOT_KEY: self.root.remote_id}
            data[self.root.remote_id] = _entry(self.root, ROOT_REMOTE_NAME, [])
            for node in self.root.walk():
                assert node.parent is not None
                data[node.remote_id] = _entry(node, node.name, [node.parent.remote_id])
            return data

    def save(self, map_file: Optional[Path] = None) -> Path:
        """Write the map file atomically.

        The JSON is written to a temporary file in the same directory and then
        moved over the map file.

        Args:
            map_file: Override the mapper's map file

        Returns:
            Path written

        Raises:
            IllegalStateError: If no map file is configured
            OSError: If the file cannot be written
        """
        target = Path(map_file).absolute() if map_file else self.map_file
        if target is None:
            raise IllegalStateError("No map file configured")

        with self._lock:
            data = self.to_dict()
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{target.name}.", suffix=".tmp", dir=target.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        logger.debug(f"Saved {len(data) - 1} mapping(s) to {target}")
        return target

    @classmethod
    def from_dict(
        cls, data: Any, map_file: Optional[Path] = None
    ) -> "FilesystemMapper":
        """Rebuild a mapper from its flat JSON representation.

        Entries are bucketed by parent ID in one pass, then the tree is
        assembled depth-first from the root. Entries that cannot be reached
        from the root are skipped with a warning.

        Raises:
            MapFileError: If the data is malformed
        """
        if not isinstance(data, dict):
            raise MapFileError("Map file must contain a JSON object")

        root_id = data.get(ROOT_KEY)
        if not isinstance(root_id, str) or not root_id:
            raise MapFileError(f"Missing or invalid {ROOT_KEY!r} key")
        root_entry = data.get(root_id)
        if not isinstance(root_entry, dict):
            raise MapFileError(f"Missing entry for root {root_id}")
        root_path = root_entry.get("localPath")
        if not isinstance(root_path, str):
            raise MapFileError(f"Root entry {root_id} has no localPath")

        root = DirectoryMapping(
            root_id,
            Path(root_path).absolute(),
            sync=_get_bool(root_entry, "sync", root_id, default=True),
        )
        root.subdirs_up_to_date = _get_bool(
            root_entry, "subdirsUpToDate", root_id, default=False
        )

        by_parent: dict[str, list[tuple[str, dict[str, Any]]]] = defaultdict(list)
        for remote_id, entry in data.items():
            if remote_id in (ROOT_KEY, root_id):
                continue
            parent_id = _validate_entry(remote_id, entry)
            by_parent[parent_id].append((remote_id, entry))

        attached = 0
        stack = [root]
        while stack:
            parent = stack.pop()
            for remote_id, entry in by_parent.pop(parent.remote_id, []):
                local_path = entry.get("localPath")
                if local_path is None:
                    path = child_path(parent, entry["remoteName"])
                else:
                    path = Path(local_path).absolute()
                node = DirectoryMapping(
                    remote_id, path, sync=_get_bool(entry, "sync", remote_id)
                )
                node.subdirs_up_to_date = _get_bool(
                    entry, "subdirsUpToDate", remote_id, default=False
                )
                node.parent = parent
                parent.children.append(node)
                stack.append(node)
                attached += 1

        orphans = sum(len(entries) for entries in by_parent.values())
        if orphans:
            logger.warning(
                f"Skipped {orphans} map entr{'y' if orphans == 1 else 'ies'} "
                "not reachable from the root"
            )
        logger.debug(f"Loaded {attached + 1} mapping(s)")

        try:
            mapper = cls(root, map_file)
        except InvalidArgumentError as e:
            raise MapFileError(str(e)) from e
        mapper.validate()
        return mapper

    @classmethod
    def load(cls, map_file: Path) -> "FilesystemMapper":
        """Load a mapper from a map file.

        Raises:
            MapFileError: If the file is not valid JSON or is malformed
            OSError: If the file cannot be read
        """
        map_file = Path(map_file).absolute()
        with open(map_file, encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise MapFileError(f"{map_file} is not valid JSON: {e}") from e
        return cls.from_dict(data, map_file)

    # =========================
    # Remote replication
    # =========================

    def crawl_remote_dirs(
        self, explorer: "RemoteExplorer", ignorer: Optional[FileIgnorer] = None
    ) -> int:
        """Map every remote folder below the root in one listing.

        All folders are listed once, bucketed by parent and replicated from the
        root down. Ignored folders (and everything below them) are not mapped.
        New mappings are not synced. The map is saved when done if a map file
        is configured.

        Returns:
            Number of new mappings
        """
        folders = explorer.list_all_folders()
        hierarchy: dict[str, list[RemoteItem]] = defaultdict(list)
        for folder in folders:
            for parent_id in folder.parents:
                hierarchy[parent_id].append(folder)
        logger.debug(f"Crawled {len(folders)} remote folder(s)")

        created = 0
        with self._lock:
            pending = [self.root]
            while pending:
                parent = pending.pop()
                for folder in hierarchy.get(parent.remote_id, []):
                    node = self.get_mapping(folder.id)
                    if node is None:
                        path = child_path(parent, folder.name or folder.id)
                        if ignorer is not None and ignorer.is_ignored(path):
                            logger.debug(f"Ignoring {path}")
                            continue
                        node = self.map_subdir(folder.id, path, False, parent)
                        created += 1
                    # Folders with several parents are only descended into once
                    if node.parent is parent:
                        pending.append(node)
                parent.subdirs_up_to_date = True

        if self.map_file is not None:
            self.save()
        return created

    def map_path_to_root(
        self, remote_id: str, explorer: "RemoteExplorer", sync: bool = True
    ) -> DirectoryMapping:
        """Map a remote folder along with its missing ancestors.

        The remote parent chain is walked up to the root and the missing
        mappings are registered top-down. Only the target takes ``sync``;
        intermediate folders are created unsynced.

        Raises:
            InvalidArgumentError: If the folder is not below the root
        """
        existing = self.get_mapping(remote_id)
        if existing is not None:
            return existing

        chain = explorer.get_path_to_root(remote_id, self.root.remote_id)
        if not chain or chain[0].id != remote_id:
            raise InvalidArgumentError(f"{remote_id} is not below {self.root}")

        with self._lock:
            parent = self.root
            for item in reversed(chain):
                node = self.get_mapping(item.id)
                if node is None:
                    path = child_path(parent, item.name or item.id)
                    node = self.map_subdir(
                        item.id, path, sync and item.id == remote_id, parent
                    )
                parent = node
            return parent

    def reconcile_synced(
        self, remote_ids: Iterable[str], explorer: "RemoteExplorer"
    ) -> list[DirectoryMapping]:
        """Make exactly the given folders synced.

        Every sync flag is cleared, then each listed folder is flagged (mapping
        it and its ancestors first when needed). Saves the map when done if a
        map file is configured.

        Returns:
            The synced mappings
        """
        with self._lock:
            for node in self.root.walk_with_self():
                node.sync = False
            synced = []
            for remote_id in remote_ids:
                node = self.map_path_to_root(remote_id, explorer, sync=True)
                node.sync = True
                synced.append(node)

        if self.map_file is not None:
            self.save()
        return synced

    # =========================
    # Rendering / container protocol
    # =========================

    def tree(self) -> str:
        return self.root.tree()

    def __str__(self) -> str:
        return self.tree()

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, remote_id: object) -> bool:
        return remote_id in self._index

    def __iter__(self) -> Iterator[DirectoryMapping]:
        return self.root.walk_with_self()


def _entry(node: DirectoryMapping, remote_name: str, parents: list[str]) -> dict:
    return {
        "remoteName": remote_name,
        "parents": parents,
        "localPath": str(node.local_path),
        "sync": node.sync,
        "subdirsUpToDate": node.subdirs_up_to_date,
    }


def _get_bool(
    entry: dict[str, Any], key: str, remote_id: str, default: Optional[bool] = None
) -> bool:
    value = entry.get(key, default)
    if not isinstance(value, bool):
        raise MapFileError(f"Entry {remote_id}: {key!r} must be a boolean")
    return value


def _validate_entry(remote_id: str, entry: Any) -> str:
    """Check a child entry and return its parent ID."""
    if not isinstance(entry, dict):
        raise MapFileError(f"Entry {remote_id} must be an object")

    parents = entry.get("parents")
    if (
        not isinstance(parents, list)
        or not parents
        or not all(isinstance(p, str) for p in parents)
    ):
        raise MapFileError(f"Entry {remote_id}: 'parents' must be a non-empty list")
    if len(parents) > 1:
        logger.warning(f"Entry {remote_id} has several parents, using {parents[0]}")

    local_path = entry.get("localPath")
    remote_name = entry.get("remoteName")
    if local_path is not None and not isinstance(local_path, str):
        raise MapFileError(f"Entry {remote_id}: 'localPath' must be a string")
    if remote_name is not None and not isinstance(remote_name, str):
        raise MapFileError(f"Entry {remote_id}: 'remoteName' must be a string")
    if local_path is None and remote_name is None:
        raise MapFileError(f"Entry {remote_id} has neither localPath nor remoteName")

    return parents[0]
