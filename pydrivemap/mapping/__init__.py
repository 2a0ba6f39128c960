"""Directory mapping tree, registry and ignore rules."""

from .ignore import IGNORE_FILE_NAME, FileIgnorer, load_ignore_file
from .node import DirectoryMapping
from .registry import FilesystemMapper, child_path

__all__ = [
    "DirectoryMapping",
    "FileIgnorer",
    "FilesystemMapper",
    "IGNORE_FILE_NAME",
    "child_path",
    "load_ignore_file",
]
