"""Utility functions for pydrivemap."""

import os
from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# Constants for remote operations
# =============================================================================

# Page size used when listing remote folders (Drive accepts up to 1000)
DEFAULT_PAGE_SIZE: int = 1000

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Request timeout (1 minute)
DEFAULT_TIMEOUT: float = 60.0

# Characters not allowed in Windows file names
_WINDOWS_ILLEGAL_CHARS = frozenset('"<>|:*?\\/') | frozenset(chr(c) for c in range(32))


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_iso_timestamp(timestamp_str: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp as returned by the remote API.

    Args:
        timestamp_str: Timestamp string (e.g., "2024-01-15T10:30:00.000Z")

    Returns:
        Timezone-aware datetime, or None if the value is missing or invalid
    """
    if not timestamp_str:
        return None

    try:
        # The 'Z' suffix indicates UTC time
        if timestamp_str.endswith("Z"):
            timestamp_str = timestamp_str[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(timestamp_str)
        except ValueError:
            # Older interpreters reject fractional seconds that are not 3 or 6
            # digits long, drop them
            if "." in timestamp_str:
                head, _, tail = timestamp_str.partition(".")
                offset = ""
                for sign in ("+", "-"):
                    if sign in tail:
                        offset = sign + tail.split(sign, 1)[1]
                        break
                return datetime.fromisoformat(head + offset)
            raise
    except (ValueError, AttributeError):
        return None


def iso_to_epoch(timestamp_str: Optional[str]) -> Optional[float]:
    """Convert an RFC 3339 timestamp to a Unix timestamp.

    Naive timestamps are assumed to be UTC.

    Args:
        timestamp_str: Timestamp string

    Returns:
        Seconds since the epoch, or None if the value cannot be parsed
    """
    dt = parse_iso_timestamp(timestamp_str)
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# File name utilities
# =============================================================================


def is_windows() -> bool:
    """Check whether the current operating system is Windows."""
    return os.name == "nt"


def sanitize_filename(file_name: str, windows: Optional[bool] = None) -> str:
    """Replace characters that are not allowed in local file names.

    Remote names may contain characters such as ``/`` that cannot appear in a
    single path component. On Windows the full set of reserved characters is
    replaced; elsewhere only the path separator and NUL are.

    Args:
        file_name: A single file name (not a path)
        windows: Force Windows rules (defaults to the current platform)

    Returns:
        The sanitized file name

    Examples:
        >>> sanitize_filename("a/b.txt", windows=False)
        'a_b.txt'
        >>> sanitize_filename("what?.txt", windows=True)
        'what_.txt'
    """
    if windows is None:
        windows = is_windows()

    if not windows:
        return _avoid_dot_names(file_name.replace("/", "_").replace("\0", "_"))

    file_name = file_name.strip()
    file_name = "".join("_" if ch in _WINDOWS_ILLEGAL_CHARS else ch for ch in file_name)
    return _avoid_dot_names(file_name)


def _avoid_dot_names(file_name: str) -> str:
    # "", "." and ".." would resolve to the parent or the directory itself
    if file_name in ("", ".", ".."):
        return "_" * max(len(file_name), 1)
    return file_name
