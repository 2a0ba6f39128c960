"""Download operations used by the directory syncer."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

from ..exceptions import DriveDownloadError
from ..models import RemoteItem
from ..remote_explorer import RemoteExplorer

logger = logging.getLogger(__name__)


def native_document_path(remote_file: RemoteItem, local_path: Path) -> Path:
    """Add the link-file extension of a native document to ``local_path``.

    Paths of regular files are returned unchanged.
    """
    extension = remote_file.native_extension
    if extension is None or local_path.name.endswith(extension):
        return local_path
    return local_path.with_name(local_path.name + extension)


class SyncOperations:
    """Writes remote files into the local tree."""

    def __init__(self, explorer: RemoteExplorer):
        """Initialize sync operations.

        Args:
            explorer: Remote explorer used to fetch file content
        """
        self.explorer = explorer

    def download_file(
        self,
        remote_file: RemoteItem,
        local_path: Path,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> Path:
        """Download a remote file to local storage.

        Content is written to a temporary file next to ``local_path`` and moved
        into place when complete. The local modification time is set to the
        remote one so an unchanged file is not fetched again.

        Native documents have no content; a JSON link file is written instead.

        Args:
            remote_file: Remote file to download
            local_path: Local path where file should be saved
            progress_callback: Optional progress callback
                function(bytes_downloaded, total_bytes)

        Returns:
            Path where file was saved

        Raises:
            DriveDownloadError: If the containing directory does not exist or
                the download fails
        """
        if not local_path.parent.is_dir():
            raise DriveDownloadError(
                f"Containing directory {local_path.parent} does not exist"
            )

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{local_path.name}.", suffix=".part", dir=local_path.parent
        )
        tmp_path = Path(tmp_name)
        try:
            if remote_file.is_native_document:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(_link_document(remote_file), f)
                logger.debug(f"Wrote link to document {remote_file.id} at {local_path}")
            else:
                os.close(fd)
                self.explorer.download(remote_file, tmp_path, progress_callback)
                logger.debug(f"Downloaded {remote_file.id} to {local_path}")
            os.replace(tmp_path, local_path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        remote_mtime = remote_file.mtime
        if remote_mtime is not None:
            os.utime(local_path, (remote_mtime, remote_mtime))
        return local_path


def _link_document(remote_file: RemoteItem) -> dict[str, Optional[str]]:
    return {
        "url": remote_file.web_view_link,
        "doc_id": remote_file.id,
        "resource_id": f"document:{remote_file.id}",
    }
