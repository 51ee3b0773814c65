"""Directory listing used by the scanning engines."""

import logging
import os
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union

from .exceptions import WalkError

logger = logging.getLogger(__name__)


class ErrorPolicy(str, Enum):
    """What a scanning engine does when a directory cannot be listed."""

    ABORT = "abort"
    """Stop the whole call and raise to the caller"""

    CONTINUE = "continue"
    """Log the failure and carry on with the remaining work"""


@dataclass(frozen=True)
class DirEntry:
    """One entry of a directory listing.

    Symbolic links are described as themselves and never as the directory
    or file they point to.
    """

    name: str
    """Base name of the entry"""

    is_dir: bool
    """Whether the entry is a directory"""

    mod_time: int
    """Last modification time in nanoseconds since the epoch"""

    size: int
    """Size in bytes (0 for directories)"""

    @classmethod
    def from_path(cls, path: Path) -> "DirEntry":
        """Create a DirEntry by lstat-ing ``path``.

        Args:
            path: Path to stat

        Returns:
            DirEntry instance
        """
        st = path.lstat()
        is_dir = stat.S_ISDIR(st.st_mode)
        return cls(
            name=path.name,
            is_dir=is_dir,
            mod_time=st.st_mtime_ns,
            size=0 if is_dir else st.st_size,
        )

    @classmethod
    def from_scandir(cls, entry: "os.DirEntry[str]") -> "DirEntry":
        """Create a DirEntry from an ``os.scandir`` entry without following links."""
        st = entry.stat(follow_symlinks=False)
        is_dir = entry.is_dir(follow_symlinks=False)
        return cls(
            name=entry.name,
            is_dir=is_dir,
            mod_time=st.st_mtime_ns,
            size=0 if is_dir else st.st_size,
        )


class DirectoryWalker:
    """Lists a single directory level.

    Recursion is left to the callers so that each engine can apply its
    own error policy per level. Symbolic links are never reported as
    directories, so a link pointing back up the tree cannot make a caller
    recurse forever.

    Examples:
        >>> walker = DirectoryWalker()
        >>> for entry in walker.list("/home/user/scans"):
        ...     print(entry.name, entry.is_dir)
    """

    def list(self, directory: Union[str, Path]) -> list[DirEntry]:
        """List the entries of ``directory``, sorted by name.

        Entries that vanish between listing and stat are skipped.

        Args:
            directory: Directory to list

        Returns:
            List of DirEntry objects

        Raises:
            WalkError: If the directory or one of its entries cannot be read
        """
        directory = str(directory)
        try:
            with os.scandir(directory) as it:
                items = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise WalkError(directory, e.strerror or str(e)) from e

        entries: list[DirEntry] = []
        for item in items:
            try:
                entries.append(DirEntry.from_scandir(item))
            except FileNotFoundError:
                logger.debug(f"Vanished while listing: {item.path}")
                continue
            except OSError as e:
                raise WalkError(item.path, e.strerror or str(e)) from e
        return entries


def join(directory: Union[str, Path], name: str) -> str:
    """Join a directory and an entry name into the path string used as key."""
    return os.path.join(str(directory), name)
