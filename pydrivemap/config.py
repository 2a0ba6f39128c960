"""Configuration management for pydrivemap."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from .exceptions import DriveConfigError
from .mapping.ignore import FileIgnorer
from .utils import DEFAULT_PAGE_SIZE, DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://www.googleapis.com/drive/v3"
DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"
CONFIG_FILE_NAME = "config.json"
MAP_FILE_NAME = "map.json"

# Default global ignore rules, relative to the local root
DEFAULT_IGNORE_RULES: list[str] = [
    r"(.*/)?\.git(/.*)?",
    r"(.*/)?__pycache__(/.*)?",
    r"(.*/)?\.DS_Store",
]

_DEFAULTS: dict[str, Any] = {
    "localRoot": None,
    "remoteRoot": None,
    "mapFile": None,
    "ignoreRules": DEFAULT_IGNORE_RULES,
    "sync": [],
    "crawl": True,
    "timeout": DEFAULT_TIMEOUT,
    "maxPageSize": DEFAULT_PAGE_SIZE,
}


class Config:
    """Persistent settings stored in ``~/.config/pydrivemap/config.json``.

    Values can be overridden with environment variables:

    - ``PYDRIVEMAP_CONFIG_DIR``: configuration directory
    - ``PYDRIVEMAP_ACCESS_TOKEN``: OAuth access token for the Drive API
    - ``PYDRIVEMAP_API_URL``: Drive API base URL
    """

    def __init__(self, config_dir: Optional[Path] = None):
        env_dir = os.environ.get("PYDRIVEMAP_CONFIG_DIR")
        if config_dir is None:
            config_dir = (
                Path(env_dir)
                if env_dir
                else Path.home() / ".config" / "pydrivemap"
            )
        self.config_dir = config_dir
        self._data: dict[str, Any] = dict(_DEFAULTS)
        self._loaded = False

    # =========================
    # Persistence
    # =========================

    def get_config_path(self) -> Path:
        """Path of the configuration file."""
        return self.config_dir / CONFIG_FILE_NAME

    def is_configured(self) -> bool:
        """Whether a configuration file exists."""
        return self.get_config_path().exists()

    def load(self) -> None:
        """Load settings from disk, falling back to defaults."""
        self._data = dict(_DEFAULTS)
        path = self.get_config_path()
        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    stored = json.load(f)
                if isinstance(stored, dict):
                    self._data.update(stored)
                logger.debug(f"Loaded configuration file {path}")
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(
                    f"Failed to load config file {path}, using defaults: {e}"
                )
        else:
            logger.debug(f"Configuration file {path} not found, using defaults")
        self._loaded = True

    def save(self) -> None:
        """Write settings to disk."""
        self._ensure_loaded()
        self.config_dir.mkdir(parents=True, exist_ok=True)
        path = self.get_config_path()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)
        logger.debug(f"Saved configuration to {path}")

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def get(self, key: str, default: Any = None) -> Any:
        """Get a raw setting."""
        self._ensure_loaded()
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a raw setting (call :meth:`save` to persist)."""
        self._ensure_loaded()
        self._data[key] = value

    # =========================
    # Credentials / endpoints
    # =========================

    @property
    def access_token(self) -> Optional[str]:
        """OAuth access token (environment first, then config file)."""
        return os.environ.get("PYDRIVEMAP_ACCESS_TOKEN") or self.get("accessToken")

    @property
    def api_url(self) -> str:
        """Drive API base URL."""
        return os.environ.get("PYDRIVEMAP_API_URL") or self.get(
            "apiUrl", DEFAULT_API_URL
        )

    @property
    def upload_url(self) -> str:
        """Drive upload API base URL."""
        return self.get("uploadUrl", DEFAULT_UPLOAD_URL)

    def save_access_token(self, token: str) -> None:
        """Store an access token in the config file."""
        self.set("accessToken", token)
        self.save()

    # =========================
    # Roots and map file
    # =========================

    @property
    def local_root(self) -> Optional[Path]:
        """Absolute local root, or None if not configured."""
        value = self.get("localRoot")
        return Path(value).absolute() if value else None

    @local_root.setter
    def local_root(self, value: Path) -> None:
        self.set("localRoot", str(Path(value).absolute()))

    @property
    def remote_root(self) -> Optional[str]:
        """Remote root folder ID, or None if not configured."""
        return self.get("remoteRoot")

    @remote_root.setter
    def remote_root(self, value: str) -> None:
        self.set("remoteRoot", value)

    @property
    def map_file(self) -> Path:
        """Path of the persisted directory map."""
        value = self.get("mapFile")
        if value:
            return Path(value).absolute()
        return self.config_dir / MAP_FILE_NAME

    @map_file.setter
    def map_file(self, value: Path) -> None:
        self.set("mapFile", str(Path(value).absolute()))

    # =========================
    # Sync selection and tuning
    # =========================

    @property
    def ignore_rules(self) -> list[str]:
        """Global ignore rules (regular expressions relative to local root)."""
        return list(self.get("ignoreRules") or [])

    @property
    def synced_dir_ids(self) -> list[str]:
        """Remote IDs of folders selected for sync."""
        return list(self.get("sync") or [])

    @synced_dir_ids.setter
    def synced_dir_ids(self, ids: list[str]) -> None:
        # Keep order, drop duplicates
        self.set("sync", list(dict.fromkeys(ids)))

    @property
    def crawl(self) -> bool:
        """Whether the whole remote should be crawled on the next run."""
        return bool(self.get("crawl", True))

    @crawl.setter
    def crawl(self, value: bool) -> None:
        self.set("crawl", bool(value))

    @property
    def timeout(self) -> float:
        """Remote request timeout in seconds."""
        return float(self.get("timeout", DEFAULT_TIMEOUT))

    @property
    def max_page_size(self) -> int:
        """Page size used when listing remote folders."""
        return int(self.get("maxPageSize", DEFAULT_PAGE_SIZE))

    def global_ignorer(self) -> Optional[FileIgnorer]:
        """Build the process-wide ignorer from ``ignoreRules``.

        Rules are relative to the local root. Returns None when the local root
        is not configured or does not exist yet.
        """
        local_root = self.local_root
        if local_root is None or not local_root.is_dir():
            return None
        return FileIgnorer(local_root, self.ignore_rules)

    def require_roots(self) -> tuple[str, Path]:
        """Return the configured (remote_root, local_root) pair.

        Raises:
            DriveConfigError: If either root is not configured
        """
        remote_root = self.remote_root
        local_root = self.local_root
        if not remote_root or local_root is None:
            raise DriveConfigError(
                "Local and remote roots are not configured. Run 'pydrivemap init'."
            )
        return remote_root, local_root


config = Config()
