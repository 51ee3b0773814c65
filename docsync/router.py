"""Content-based routing of documents into destination directories.

The router scans a set of source directories, extracts the text of every
supported document it has not seen yet and moves the document to the
destination of the first rule whose patterns all match that text.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence, Union

from .exceptions import DocsyncError, MoveCollisionError, MoveError
from .extract import PdfToTextExtractor, TextExtractor
from .filters import PatternSet
from .utils import sha256_file
from .walker import DirectoryWalker, ErrorPolicy, join

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS: tuple[str, ...] = (".pdf",)

Moves = dict[str, list[str]]


@dataclass(frozen=True)
class Rule:
    """Send documents whose text matches every pattern to ``destination``."""

    patterns: PatternSet
    destination: str

    @classmethod
    def of(cls, patterns: Iterable[str], destination: Union[str, Path]) -> "Rule":
        return cls(patterns=PatternSet.of(patterns), destination=str(destination))

    def matches(self, content: str) -> bool:
        return self.patterns.matches_all(content)


@dataclass
class SeenRecord:
    """What the router last saw for a file."""

    mod_time: int
    """Modification time (nanoseconds)"""

    digest: str
    """SHA-256 hex digest of the contents"""


@dataclass
class ScanResult:
    """Outcome of one router scan."""

    moves: Moves = field(default_factory=dict)
    """Planned moves: destination directory -> sorted source paths"""

    errors: list[MoveError] = field(default_factory=list)
    """Moves that failed, in the order they were attempted"""

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def total(self) -> int:
        """Number of planned moves."""
        return sum(len(files) for files in self.moves.values())

    def raise_for_errors(self) -> None:
        """Raise the first move error, if any."""
        if self.errors:
            raise self.errors[0]


def supported(file_name: str, extensions: Sequence[str] = SUPPORTED_EXTENSIONS) -> bool:
    """Check whether a file name carries one of the handled extensions."""
    return any(file_name.endswith(suffix) for suffix in extensions)


def merge(dst: Moves, src: Moves) -> None:
    """Merge ``src`` moves into ``dst``, keeping every list sorted."""
    for to, files in src.items():
        dst.setdefault(to, []).extend(files)
        dst[to].sort()


class ContentRouter:
    """Moves documents from source directories based on their content.

    Rules are evaluated in order and the first one whose patterns all
    match wins. Source roots are scanned independently: by default a root
    that cannot be scanned is logged and skipped (``root_policy`` is
    :attr:`ErrorPolicy.CONTINUE`). With :attr:`ErrorPolicy.ABORT` the first
    failing root raises out of :meth:`plan`.

    Examples:
        >>> router = ContentRouter(
        ...     sources=["/home/user/inbox"],
        ...     rules=[Rule.of(["bank llc"], "/home/user/bank")],
        ... )
        >>> result = router.scan(dry_run=True)
        >>> result.moves
        {'/home/user/bank': ['/home/user/inbox/statement.pdf']}
    """

    root_policy = ErrorPolicy.CONTINUE

    def __init__(
        self,
        sources: Iterable[Union[str, Path]],
        rules: Iterable[Rule],
        extractor: Optional[TextExtractor] = None,
        walker: Optional[DirectoryWalker] = None,
        digest_file: Callable[[str], str] = sha256_file,
        extensions: Sequence[str] = SUPPORTED_EXTENSIONS,
    ):
        """Initialize the router.

        Args:
            sources: Directories scanned for documents, in order
            rules: Ordered routing rules
            extractor: Text extractor (defaults to PdfToTextExtractor())
            walker: Directory walker (defaults to DirectoryWalker())
            digest_file: Function returning the digest of a file
            extensions: File name suffixes handled by the extractor
        """
        self.sources = [str(s) for s in sources]
        self.rules = list(rules)
        self.extractor = extractor or PdfToTextExtractor()
        self.walker = walker or DirectoryWalker()
        self.extensions = tuple(extensions)
        self._digest_file = digest_file
        self.seen: dict[str, SeenRecord] = {}

    # =========================
    # Planning
    # =========================

    def plan(self) -> Moves:
        """Scan every source root and compute the moves to perform.

        Returns:
            Mapping of destination directory to sorted source paths

        Raises:
            WalkError: If a root cannot be listed and ``root_policy`` is ABORT
            OSError: If a file cannot be digested and ``root_policy`` is ABORT
        """
        moves: Moves = {}
        for root in self.sources:
            try:
                local_moves = self._scan_dir(root)
            except (DocsyncError, OSError) as e:
                if self.root_policy == ErrorPolicy.ABORT:
                    raise
                logger.warning(f"{root!r}: could not scan: {e}")
                continue
            merge(moves, local_moves)
        return moves

    def _scan_dir(self, directory: str) -> Moves:
        moves: Moves = {}
        for entry in self.walker.list(directory):
            full_path = join(directory, entry.name)
            if entry.is_dir:
                merge(moves, self._scan_dir(full_path))
                continue
            if not supported(entry.name, self.extensions):
                continue
            if self.already_seen(full_path, entry.mod_time):
                continue
            to = self.match(full_path)
            if to is None:
                continue
            moves.setdefault(to, []).append(full_path)
        for files in moves.values():
            files.sort()
        return moves

    def already_seen(self, file_path: str, mod_time: int) -> bool:
        """Check whether ``file_path`` was already processed.

        A changed modification time with unchanged contents only refreshes
        the stored time.

        Raises:
            OSError: If the file cannot be read for digesting
        """
        record = self.seen.get(file_path)
        if record is not None and record.mod_time == mod_time:
            return True

        digest = self._digest_file(file_path)
        if record is not None and record.digest == digest:
            record.mod_time = mod_time
            return True

        self.seen[file_path] = SeenRecord(mod_time=mod_time, digest=digest)
        return False

    def match(self, file_path: str) -> Optional[str]:
        """Return the destination of the first rule matching the document.

        Extraction failures are logged and count as no match.
        """
        try:
            pages = self.extractor.extract(file_path)
        except DocsyncError as e:
            logger.warning(f"{file_path!r}: {e}")
            return None

        content = "\n".join(pages)
        for rule in self.rules:
            if rule.matches(content):
                logger.debug(f"{file_path!r} matches rule for {rule.destination!r}")
                return rule.destination
        return None

    # =========================
    # Execution
    # =========================

    def execute(self, moves: Moves) -> list[MoveError]:
        """Move every planned file into its destination directory.

        Each move is attempted independently; an existing file at the
        target is never overwritten.

        Returns:
            Errors for the moves that failed, in order of occurrence
        """
        errors: list[MoveError] = []
        for dst, files in moves.items():
            for file_path in files:
                target = join(dst, os.path.basename(file_path))
                try:
                    self._move(file_path, target)
                except MoveError as e:
                    logger.error(str(e))
                    errors.append(e)
                else:
                    logger.info(f"Moved {file_path!r} -> {target!r}")
        return errors

    @staticmethod
    def _move(source: str, target: str) -> None:
        if os.path.lexists(target):
            raise MoveCollisionError(source, target)
        try:
            os.rename(source, target)
        except OSError as e:
            raise MoveError(source, target, e.strerror or str(e)) from e

    def scan(self, dry_run: bool = False) -> ScanResult:
        """Run once through all source directories.

        Args:
            dry_run: If True, only log the planned moves

        Returns:
            ScanResult with the planned moves and any move errors
        """
        moves = self.plan()
        if dry_run:
            for dst, files in moves.items():
                for file_path in files:
                    target = join(dst, os.path.basename(file_path))
                    logger.info(f"{file_path!r} -> {target!r}")
            return ScanResult(moves=moves)
        return ScanResult(moves=moves, errors=self.execute(moves))
