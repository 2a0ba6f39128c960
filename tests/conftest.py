"""Shared fixtures: an in-memory remote and a mapper rooted in tmp_path."""

from pathlib import Path
from typing import Optional

import pytest

from pydrivemap.exceptions import (
    DriveDownloadError,
    DriveNetworkError,
    InvalidArgumentError,
)
from pydrivemap.mapping.registry import FilesystemMapper
from pydrivemap.models import RemoteItem

ROOT_ID = "R"
DEFAULT_MTIME = "2024-01-15T10:30:00.000Z"


class FakeRemote:
    """In-memory stand-in for RemoteExplorer.

    Folder listings are recorded in ``listed`` and downloads in
    ``downloaded``. IDs in ``fail_on`` raise remote errors when listed or
    downloaded.
    """

    def __init__(self, root_id: str = ROOT_ID):
        self.root_id = root_id
        self.items: dict[str, RemoteItem] = {
            root_id: RemoteItem.folder(root_id, "My Drive")
        }
        self.content: dict[str, bytes] = {}
        self.listed: list[str] = []
        self.downloaded: list[str] = []
        self.fail_on: set[str] = set()

    def add_folder(self, remote_id: str, name: str, *parents: str) -> RemoteItem:
        item = RemoteItem.folder(remote_id, name, list(parents or (self.root_id,)))
        item.modified_time = DEFAULT_MTIME
        self.items[remote_id] = item
        return item

    def add_file(
        self,
        remote_id: str,
        name: str,
        parent: Optional[str] = None,
        content: bytes = b"",
        modified_time: Optional[str] = DEFAULT_MTIME,
        mime_type: str = "text/plain",
    ) -> RemoteItem:
        item = RemoteItem(
            id=remote_id,
            name=name,
            parents=[parent or self.root_id],
            mime_type=mime_type,
            modified_time=modified_time,
            size=len(content),
            web_view_link=f"https://drive.example/{remote_id}",
        )
        self.items[remote_id] = item
        self.content[remote_id] = content
        return item

    def _children(self, parent_id: str) -> list[RemoteItem]:
        return [
            item
            for item in self.items.values()
            if parent_id in item.parents and not item.trashed
        ]

    # RemoteExplorer interface

    def get_subdirs(self, parent_id: str) -> list[RemoteItem]:
        self.listed.append(parent_id)
        if parent_id in self.fail_on:
            raise DriveNetworkError(f"Listing {parent_id} failed")
        return [item for item in self._children(parent_id) if item.is_folder]

    def get_contents(self, parent_id: str) -> list[RemoteItem]:
        self.listed.append(parent_id)
        if parent_id in self.fail_on:
            raise DriveNetworkError(f"Listing {parent_id} failed")
        return self._children(parent_id)

    def list_all_folders(self) -> list[RemoteItem]:
        return [
            item
            for item in self.items.values()
            if item.is_folder and item.id != self.root_id
        ]

    def find_by_id(self, remote_id: str) -> Optional[RemoteItem]:
        if remote_id == "root":
            return self.items[self.root_id]
        return self.items.get(remote_id)

    def get_path_to_root(self, remote_id: str, root_id: str) -> list[RemoteItem]:
        chain = []
        current_id = remote_id
        while current_id != root_id:
            item = self.items[current_id]
            chain.append(item)
            if not item.parents:
                raise InvalidArgumentError(f"{remote_id} is not below {root_id}")
            current_id = item.parents[0]
        return chain

    def download(self, item: RemoteItem, output_path: Path, progress_callback=None):
        self.downloaded.append(item.id)
        if item.id in self.fail_on:
            raise DriveDownloadError(f"Download of {item.id} failed")
        data = self.content.get(item.id, b"")
        Path(output_path).write_bytes(data)
        if progress_callback:
            progress_callback(len(data), len(data))
        return output_path


@pytest.fixture
def remote():
    """Provide an empty in-memory remote."""
    return FakeRemote()


@pytest.fixture
def local_root(tmp_path):
    """Provide an existing local root directory."""
    root = tmp_path / "Drive"
    root.mkdir()
    return root


@pytest.fixture
def map_file(tmp_path):
    return tmp_path / "map.json"


@pytest.fixture
def mapper(local_root, map_file):
    """Provide a mapper holding only the (synced) root mapping."""
    return FilesystemMapper.bootstrap(ROOT_ID, local_root, map_file)
