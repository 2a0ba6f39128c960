"""Data models for remote Drive items."""

from dataclasses import dataclass, field
from typing import Any, Optional

from .exceptions import DriveInvalidResponseError
from .utils import iso_to_epoch

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"

# Native documents have no downloadable bytes. They are materialised locally as
# small JSON link files carrying one of these extensions.
NATIVE_DOCUMENT_EXTENSIONS: dict[str, str] = {
    "application/vnd.google-apps.document": ".gdoc",
    "application/vnd.google-apps.spreadsheet": ".gsheet",
    "application/vnd.google-apps.presentation": ".gslides",
    "application/vnd.google-apps.drawing": ".gdraw",
    "application/vnd.google-apps.form": ".gform",
    "application/vnd.google-apps.map": ".gmap",
    "application/vnd.google-apps.site": ".gsite",
}

# Fields requested for every listed item
ITEM_FIELDS = "id,name,parents,mimeType,modifiedTime,size,webViewLink,trashed"


@dataclass
class RemoteItem:
    """A remote file or folder as returned by the Drive API."""

    id: str
    name: Optional[str] = None
    parents: list[str] = field(default_factory=list)
    mime_type: Optional[str] = None
    modified_time: Optional[str] = None
    """RFC 3339 timestamp of the last modification"""

    size: Optional[int] = None
    web_view_link: Optional[str] = None
    trashed: bool = False

    @property
    def is_folder(self) -> bool:
        """Whether this item is a folder."""
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def is_native_document(self) -> bool:
        """Whether this item is a native (non-downloadable) document."""
        return self.mime_type in NATIVE_DOCUMENT_EXTENSIONS

    @property
    def native_extension(self) -> Optional[str]:
        """Local extension used for native documents, None otherwise."""
        if self.mime_type is None:
            return None
        return NATIVE_DOCUMENT_EXTENSIONS.get(self.mime_type)

    @property
    def mtime(self) -> Optional[float]:
        """Last modification time as a Unix timestamp."""
        return iso_to_epoch(self.modified_time)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RemoteItem":
        """Create a RemoteItem from an API response object.

        Args:
            data: Item object (``files[]`` element or ``files.get`` body)

        Returns:
            RemoteItem instance

        Raises:
            DriveInvalidResponseError: If the object is malformed
        """
        if not isinstance(data, dict):
            raise DriveInvalidResponseError(
                f"Expected an item object, got {type(data).__name__}"
            )
        try:
            size = data.get("size")
            return cls(
                id=str(data["id"]),
                name=data.get("name"),
                parents=list(data.get("parents") or []),
                mime_type=data.get("mimeType"),
                modified_time=data.get("modifiedTime"),
                size=int(size) if size is not None else None,
                web_view_link=data.get("webViewLink"),
                trashed=bool(data.get("trashed", False)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DriveInvalidResponseError(f"Malformed item {data!r}: {e}") from e

    @classmethod
    def folder(
        cls, id: str, name: str, parents: Optional[list[str]] = None
    ) -> "RemoteItem":
        """Build a folder item (used for synthetic and test entries)."""
        return cls(id=id, name=name, parents=parents or [], mime_type=FOLDER_MIME_TYPE)


@dataclass
class RemoteItemsPage:
    """One page of a ``files.list`` response."""

    items: list[RemoteItem]
    next_page_token: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "RemoteItemsPage":
        """Parse a ``files.list`` response body.

        Args:
            data: Response JSON

        Returns:
            RemoteItemsPage instance

        Raises:
            DriveInvalidResponseError: If the body is not a file list
        """
        if not isinstance(data, dict):
            raise DriveInvalidResponseError(
                f"Expected a file list object, got {type(data).__name__}"
            )
        files = data.get("files", [])
        if not isinstance(files, list):
            raise DriveInvalidResponseError(f"'files' must be a list, got {files!r}")
        return cls(
            items=[RemoteItem.from_dict(f) for f in files],
            next_page_token=data.get("nextPageToken"),
        )

    @property
    def is_last(self) -> bool:
        """Whether this is the last page."""
        return not self.next_page_token
