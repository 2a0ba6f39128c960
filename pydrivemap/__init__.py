"""pydrivemap - Map a remote Drive folder tree onto a local directory."""

from .api import DriveClient
from .exceptions import (
    DriveAPIError,
    DriveAuthenticationError,
    DriveConfigError,
    DriveDownloadError,
    DriveInvalidResponseError,
    DriveMapError,
    DriveNetworkError,
    DriveNotFoundError,
    DrivePermissionError,
    DriveRateLimitError,
    DriveUploadError,
    IllegalStateError,
    InvalidArgumentError,
    MapFileError,
    RemoteIOError,
    UnsupportedOperationError,
)
from .mapping import DirectoryMapping, FileIgnorer, FilesystemMapper
from .remote_explorer import RemoteExplorer
from .sync import DirectorySyncer

__version__ = "0.1.0"

__all__ = [
    "DriveClient",
    "RemoteExplorer",
    "DirectoryMapping",
    "FileIgnorer",
    "FilesystemMapper",
    "DirectorySyncer",
    "DriveMapError",
    "DriveAPIError",
    "DriveAuthenticationError",
    "DriveConfigError",
    "DriveDownloadError",
    "DriveInvalidResponseError",
    "DriveNetworkError",
    "DriveNotFoundError",
    "DrivePermissionError",
    "DriveRateLimitError",
    "DriveUploadError",
    "IllegalStateError",
    "InvalidArgumentError",
    "MapFileError",
    "RemoteIOError",
    "UnsupportedOperationError",
]
