"""Change tracking for the files within a set of directories.

The manifest remembers, for every tracked file, the modification time and
MD5 digest seen on the last update. A file is re-read only when its
modification time differs from the stored one, and it is then always
reported as changed.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, Iterable, Optional, Union

from .exceptions import ManifestLoadError, WalkError
from .filters import FileFilter, PatternSet
from .utils import md5_digest
from .walker import DirectoryWalker, ErrorPolicy, join

logger = logging.getLogger(__name__)

MANIFEST_FORMAT = "docsync-manifest"
MANIFEST_VERSION = 1


@dataclass(frozen=True)
class ManifestEntry:
    """State recorded for one tracked file."""

    mod_time: int
    """Modification time (nanoseconds) seen on the last read"""

    content_hash: bytes
    """Digest of the file contents (MD5 unless another hasher is used)"""

    def to_dict(self) -> dict:
        return {"mod_time": self.mod_time, "hash": self.content_hash.hex()}

    @classmethod
    def from_dict(cls, data: dict) -> "ManifestEntry":
        if not isinstance(data, dict):
            raise ManifestLoadError(f"entry must be an object, got {data!r}")
        mod_time = data.get("mod_time")
        if not isinstance(mod_time, int) or isinstance(mod_time, bool):
            raise ManifestLoadError(f"invalid mod_time {mod_time!r}")
        raw_hash = data.get("hash")
        if not isinstance(raw_hash, str):
            raise ManifestLoadError(f"invalid hash {raw_hash!r}")
        try:
            content_hash = bytes.fromhex(raw_hash)
        except ValueError as e:
            raise ManifestLoadError(f"invalid hash {raw_hash!r}") from e
        if not content_hash:
            raise ManifestLoadError("empty hash")
        return cls(mod_time=mod_time, content_hash=content_hash)


def _read_bytes(file_path: str) -> bytes:
    with open(file_path, "rb") as f:
        return f.read()


class Manifest:
    """Tracks changes to interesting files within directory trees.

    By default a directory listing failure anywhere in the tree aborts the
    update (``listing_policy`` is :attr:`ErrorPolicy.ABORT`). With
    :attr:`ErrorPolicy.CONTINUE` the failing directory is logged and
    skipped instead. A file that cannot be read is always logged and
    skipped.

    Examples:
        >>> manifest = Manifest(include=[r"\\.pdf$"], exclude=[r"^\\."])
        >>> changed = manifest.update("/home/user/scans")
        >>> with open("manifest.bin", "wb") as f:
        ...     manifest.dump(f)
    """

    listing_policy = ErrorPolicy.ABORT

    def __init__(
        self,
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
        walker: Optional[DirectoryWalker] = None,
        read_file: Callable[[str], bytes] = _read_bytes,
        hasher: Callable[[bytes], bytes] = md5_digest,
    ):
        """Initialize an empty manifest.

        Args:
            include: Regexps a file base name must match (any) to be tracked.
                Empty means every file is tracked.
            exclude: Regexps excluding a file base name when any matches
            walker: Directory walker (defaults to DirectoryWalker())
            read_file: Function reading a whole file
            hasher: Digest function applied to file contents

        Raises:
            PatternError: If any pattern does not compile
        """
        self.entries: dict[str, ManifestEntry] = {}
        self.filter = FileFilter.of(include, exclude)
        self.walker = walker or DirectoryWalker()
        self._read_file = read_file
        self._hasher = hasher

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, file_path: str) -> bool:
        return file_path in self.entries

    @property
    def include(self) -> list[str]:
        """Include patterns, in order, with duplicates dropped."""
        return self.filter.include.to_list()

    @property
    def exclude(self) -> list[str]:
        """Exclude patterns, in order, with duplicates dropped.

        This is the list that gets persisted, so it can be shorter than the
        configured one.
        """
        return self.filter.exclude.to_list()

    def tracks(self, file_path: str) -> bool:
        """Check whether ``file_path`` passes the include/exclude filter."""
        return self.filter.tracks(file_path)

    def update(self, directory: Union[str, Path]) -> list[str]:
        """Track changes in the given directory tree.

        Args:
            directory: Root directory to scan recursively

        Returns:
            Sorted list of paths that changed since the last update

        Raises:
            WalkError: If a directory in the tree cannot be listed and
                ``listing_policy`` is ABORT
        """
        changed = self._update(str(directory))
        return sorted(changed)

    def _update(self, directory: str) -> set[str]:
        changed: set[str] = set()
        try:
            listing = self.walker.list(directory)
        except WalkError as e:
            if self.listing_policy == ErrorPolicy.ABORT:
                raise
            logger.warning(f"Skipping {directory}: {e}")
            return changed

        for entry in listing:
            file_path = join(directory, entry.name)
            if entry.is_dir:
                changed |= self._update(file_path)
                continue

            known = self.entries.get(file_path)
            if known is not None and known.mod_time == entry.mod_time:
                continue
            if not self.tracks(file_path):
                continue

            try:
                data = self._read_file(file_path)
            except OSError as e:
                logger.warning(f"Could not read {file_path}: {e}")
                continue

            changed.add(file_path)
            self.entries[file_path] = ManifestEntry(
                mod_time=entry.mod_time,
                content_hash=self._hasher(data),
            )
        return changed

    def reset(self) -> None:
        """Forget every tracked file, keeping the filters."""
        self.entries.clear()

    # =========================
    # Serialization
    # =========================

    def to_dict(self) -> dict:
        """Convert the manifest to a dictionary for serialization."""
        return {
            "format": MANIFEST_FORMAT,
            "version": MANIFEST_VERSION,
            "include": self.include,
            "exclude": self.exclude,
            "entries": {
                path: entry.to_dict() for path, entry in sorted(self.entries.items())
            },
        }

    def dumps(self) -> bytes:
        """Serialize the manifest state into a binary blob."""
        return json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")

    def dump(self, sink: IO[bytes]) -> None:
        """Write the serialized manifest to a binary file object."""
        sink.write(self.dumps())

    def loads(self, data: bytes) -> None:
        """Replace the manifest state with the one serialized in ``data``.

        Filters are recompiled from their persisted strings. On any error
        the current state is left untouched.

        Raises:
            ManifestLoadError: If the blob is structurally invalid
            PatternError: If a persisted pattern does not compile
        """
        try:
            document = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise ManifestLoadError(f"Manifest is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise ManifestLoadError("Manifest must be a JSON object")
        if document.get("format") != MANIFEST_FORMAT:
            raise ManifestLoadError(
                f"Unknown manifest format {document.get('format')!r}"
            )
        if document.get("version") != MANIFEST_VERSION:
            raise ManifestLoadError(
                f"Unsupported manifest version {document.get('version')!r}"
            )

        for key in ("include", "exclude"):
            if not isinstance(document.get(key), list):
                raise ManifestLoadError(f"Manifest {key} must be a list")
        raw_entries = document.get("entries")
        if not isinstance(raw_entries, dict):
            raise ManifestLoadError("Manifest entries must be an object")

        new_filter = FileFilter(
            include=PatternSet.of(document["include"]),
            exclude=PatternSet.of(document["exclude"]),
        )
        entries = {
            path: ManifestEntry.from_dict(value) for path, value in raw_entries.items()
        }

        self.filter = new_filter
        self.entries = entries
        logger.debug(f"Loaded manifest with {len(entries)} entries")

    def load(self, source: IO[bytes]) -> None:
        """Restore the manifest state from a binary file object."""
        self.loads(source.read())

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        walker: Optional[DirectoryWalker] = None,
        read_file: Callable[[str], bytes] = _read_bytes,
        hasher: Callable[[bytes], bytes] = md5_digest,
    ) -> "Manifest":
        """Create a manifest restored from a serialized blob.

        The digests in ``data`` are only comparable with new ones when
        ``hasher`` is the function that produced them.
        """
        manifest = cls(walker=walker, read_file=read_file, hasher=hasher)
        manifest.loads(data)
        return manifest
