"""Ignore rules for local paths.

Rules are regular expressions, analogous to ``.gitignore`` entries but anchored
to a base directory: a rule ``build/.*`` loaded for ``/home/me/Drive`` matches
every path under ``/home/me/Drive/build/``. A rule only goes down from its base
directory, never up.

An ignorer may be chained to a process-wide default ignorer. A path ignored by
the default ignorer is ignored everywhere and cannot be un-ignored locally.

Examples:
    >>> global_rules = FileIgnorer(Path("/home/me/Drive"), [r"(.*/)?\\.git(/.*)?"])
    >>> photos = FileIgnorer(Path("/home/me/Drive/Photos"), [r"raw/.*"],
    ...                      default=global_rules)
    >>> photos.is_ignored(Path("/home/me/Drive/Photos/raw/a.nef"))
    True
"""

import logging
import os
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Optional, Union

from ..exceptions import InvalidArgumentError

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".pydrivemapignore"


def _absolute(path: Union[str, Path]) -> str:
    return os.path.abspath(os.fspath(path))


class FileIgnorer:
    """Decides whether local paths are excluded from mapping and sync."""

    def __init__(
        self,
        base_directory: Path,
        rules: Iterable[str] = (),
        default: Optional["FileIgnorer"] = None,
    ):
        """Create an ignorer with the specified rules.

        Args:
            base_directory: Directory the rules are relative to. Must exist.
            rules: Regular expressions, relative to ``base_directory``
            default: Process-wide ignorer consulted in addition to these rules

        Raises:
            InvalidArgumentError: If ``base_directory`` is not a directory or a
                rule is not a valid regular expression
        """
        base_directory = Path(base_directory)
        if not base_directory.is_dir():
            raise InvalidArgumentError(f"{base_directory} is not a directory")

        self.base_directory = Path(_absolute(base_directory))
        self.default = default
        self.rules: list[str] = []
        self._patterns: list[re.Pattern[str]] = []

        # Not going through Path: many regexes are not valid file names
        prefix = re.escape(str(self.base_directory) + os.sep)
        for rule in rules:
            try:
                self._patterns.append(re.compile(prefix + rule))
            except re.error as e:
                raise InvalidArgumentError(f"Invalid ignore rule {rule!r}: {e}") from e
            self.rules.append(rule)

    @classmethod
    def from_file(
        cls, rules_file: Path, default: Optional["FileIgnorer"] = None
    ) -> "FileIgnorer":
        """Load rules from a newline-delimited file.

        The file's containing directory becomes the base directory. Blank lines
        and lines starting with ``#`` are skipped.

        Args:
            rules_file: Rules file
            default: Process-wide ignorer to chain to

        Returns:
            FileIgnorer instance

        Raises:
            OSError: If the file cannot be read
        """
        rules_file = Path(rules_file)
        with open(rules_file, encoding="utf-8") as f:
            lines = [line.rstrip("\r\n") for line in f]
        rules = [line for line in lines if line.strip() and not line.startswith("#")]
        logger.debug(f"Loaded {len(rules)} ignore rule(s) from {rules_file}")
        return cls(rules_file.parent, rules, default=default)

    @classmethod
    def empty(
        cls, base_directory: Path, default: Optional["FileIgnorer"] = None
    ) -> "FileIgnorer":
        """An ignorer with no rules of its own."""
        return cls(base_directory, (), default=default)

    def matches_locally(self, path: Path) -> bool:
        """Whether one of this ignorer's own rules matches ``path``."""
        absolute = _absolute(path)
        return any(pattern.fullmatch(absolute) for pattern in self._patterns)

    def is_ignored(self, path: Path) -> bool:
        """Whether ``path`` is ignored by these rules or by the default ignorer.

        Args:
            path: Path to test. Relative paths are made absolute.

        Returns:
            True if the path is ignored
        """
        if self.default is not None and self.default is not self:
            if self.default.is_ignored(path):
                return True
        return self.matches_locally(path)

    def __repr__(self) -> str:
        return f"FileIgnorer({str(self.base_directory)!r}, rules={self.rules!r})"


def load_ignore_file(
    directory: Path, default: Optional[FileIgnorer] = None
) -> Optional[FileIgnorer]:
    """Load the ignore file of a directory, if it has one.

    Args:
        directory: Directory that may contain an ignore file
        default: Process-wide ignorer to chain to

    Returns:
        FileIgnorer, or None if the directory has no ignore file
    """
    rules_file = Path(directory) / IGNORE_FILE_NAME
    if not rules_file.is_file():
        return None
    return FileIgnorer.from_file(rules_file, default=default)
