"""Pull-only sync of mapped directories."""

from .comparator import FileComparator, SyncAction, SyncDecision
from .operations import SyncOperations, native_document_path
from .syncer import DirectorySyncer

__all__ = [
    "DirectorySyncer",
    "FileComparator",
    "SyncAction",
    "SyncDecision",
    "SyncOperations",
    "native_document_path",
]
