"""Exceptions raised by pydrivemap."""


class DriveMapError(Exception):
    """Base exception for all pydrivemap errors."""

    pass


class InvalidArgumentError(DriveMapError, ValueError):
    """A caller violated a precondition (never retried)."""

    pass


class MapFileError(InvalidArgumentError):
    """The persisted mapping file is malformed."""

    pass


class UnsupportedOperationError(DriveMapError):
    """The operation is intentionally not supported (e.g. re-parenting)."""

    pass


class IllegalStateError(DriveMapError, RuntimeError):
    """An internal invariant was violated."""

    pass


class DriveConfigError(DriveMapError):
    """Configuration is missing or invalid."""

    pass


class RemoteIOError(DriveMapError):
    """Any failure while talking to the remote storage service."""

    pass


class DriveAPIError(RemoteIOError):
    """The remote API returned an error response."""

    pass


class DriveNetworkError(RemoteIOError):
    """Network error while talking to the remote API."""

    pass


class DriveAuthenticationError(DriveAPIError):
    """Access token is missing, expired or invalid."""

    pass


class DrivePermissionError(DriveAPIError):
    """Access to the requested resource is forbidden."""

    pass


class DriveNotFoundError(DriveAPIError):
    """The requested remote resource does not exist."""

    pass


class DriveRateLimitError(DriveAPIError):
    """The remote API rate limit was exceeded."""

    pass


class DriveInvalidResponseError(DriveAPIError):
    """The remote API returned a response that could not be parsed."""

    pass


class DriveDownloadError(RemoteIOError):
    """A file download failed."""

    pass


class DriveUploadError(RemoteIOError):
    """A file upload failed."""

    pass
