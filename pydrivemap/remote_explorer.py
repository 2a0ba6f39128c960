"""Read access to the remote folder hierarchy with automatic pagination."""

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Callable, Optional

from .api import DriveClient
from .exceptions import DriveNotFoundError, InvalidArgumentError
from .models import FOLDER_MIME_TYPE, RemoteItem, RemoteItemsPage
from .utils import DEFAULT_PAGE_SIZE

logger = logging.getLogger(__name__)


def _quote(value: str) -> str:
    """Quote a string literal for a Drive search query."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class RemoteExplorer:
    """Lists and fetches remote items, hiding pagination from callers.

    Every listing returns the complete result as one list. Errors are not
    swallowed: a failure on any page raises a
    :class:`~pydrivemap.exceptions.RemoteIOError`.
    """

    def __init__(self, client: DriveClient, page_size: int = DEFAULT_PAGE_SIZE):
        """Initialize the explorer.

        Args:
            client: Drive API client
            page_size: Number of items requested per page
        """
        self.client = client
        self.page_size = page_size

    def iter_pages(self, query: str) -> Iterator[RemoteItemsPage]:
        """Yield every page of a search query."""
        page_token: Optional[str] = None
        while True:
            result = self.client.list_files(
                query=query, page_size=self.page_size, page_token=page_token
            )
            page = RemoteItemsPage.from_api_response(result)
            yield page
            if page.is_last:
                break
            page_token = page.next_page_token

    def search(self, query: str) -> list[RemoteItem]:
        """All items matching a Drive search query."""
        items: list[RemoteItem] = []
        pages = 0
        for page in self.iter_pages(query):
            items.extend(page.items)
            pages += 1
        logger.debug(
            f"Query {query!r} returned {len(items)} item(s) in {pages} page(s)"
        )
        return items

    def get_subdirs(self, parent_id: str) -> list[RemoteItem]:
        """Immediate subfolders of a folder."""
        return self.search(
            f"{_quote(parent_id)} in parents and "
            f"mimeType = {_quote(FOLDER_MIME_TYPE)} and trashed = false"
        )

    def get_contents(self, parent_id: str) -> list[RemoteItem]:
        """Immediate children (folders and files) of a folder."""
        return self.search(f"{_quote(parent_id)} in parents and trashed = false")

    def list_all_folders(self) -> list[RemoteItem]:
        """Every folder the account can see, in one paginated listing."""
        return self.search(f"mimeType = {_quote(FOLDER_MIME_TYPE)} and trashed = false")

    def find_by_id(self, remote_id: str) -> Optional[RemoteItem]:
        """Metadata of an item, or None if it does not exist."""
        try:
            return RemoteItem.from_dict(self.client.get_file(remote_id))
        except DriveNotFoundError:
            logger.debug(f"Remote item {remote_id} not found")
            return None

    def find_folders_by_name(
        self, name: str, parent_id: Optional[str] = None
    ) -> list[RemoteItem]:
        """Folders with exactly the given name.

        Args:
            name: Folder name
            parent_id: Only search in this folder

        Returns:
            Matching folders; an empty list when there are none
        """
        query = (
            f"name = {_quote(name)} and "
            f"mimeType = {_quote(FOLDER_MIME_TYPE)} and trashed = false"
        )
        if parent_id is not None:
            query = f"{_quote(parent_id)} in parents and {query}"
        try:
            return self.search(query)
        except DriveNotFoundError:
            logger.debug(f"No folder named {name!r}")
            return []

    def get_parents(self, remote_id: str) -> list[str]:
        """Remote IDs of the parents of an item.

        Raises:
            DriveNotFoundError: If the item does not exist
        """
        return RemoteItem.from_dict(self.client.get_file(remote_id)).parents

    def get_path_to_root(self, remote_id: str, root_id: str) -> list[RemoteItem]:
        """Chain of folders from ``remote_id`` up to (excluding) ``root_id``.

        The first element is the item itself, the last is a direct child of
        the root.

        Raises:
            InvalidArgumentError: If the item is not below the root
            DriveNotFoundError: If an item on the way does not exist
        """
        chain: list[RemoteItem] = []
        seen: set[str] = set()
        current_id = remote_id
        while current_id != root_id:
            if current_id in seen:
                raise InvalidArgumentError(f"Parent cycle at {current_id}")
            seen.add(current_id)

            item = RemoteItem.from_dict(self.client.get_file(current_id))
            chain.append(item)
            if not item.parents:
                raise InvalidArgumentError(f"{remote_id} is not below {root_id}")
            current_id = item.parents[0]
        return chain

    def download(
        self,
        item: RemoteItem,
        output_path: Path,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> Path:
        """Download the content of a remote file to ``output_path``."""
        return self.client.download_file(
            item.id, output_path, progress_callback=progress_callback
        )

    def upload(self, file_path: Path, parent_id: str) -> RemoteItem:
        """Upload a local file into a remote folder."""
        return RemoteItem.from_dict(self.client.upload_file(file_path, parent_id))
