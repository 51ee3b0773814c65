"""Regular expression filters built from their string form.

Only the pattern strings are ever persisted. The compiled expressions are
derived from them whenever a :class:`PatternSet` is built, so restoring a
manifest always recompiles (and re-validates) its filters.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .exceptions import PatternError


def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Compile a single pattern, raising PatternError on failure."""
    if not isinstance(pattern, str):
        raise PatternError(repr(pattern), "pattern must be a string")
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternError(pattern, str(e)) from e


@dataclass(frozen=True)
class PatternSet:
    """An ordered set of regular expressions.

    Matching uses ``re.search`` semantics: a pattern matches if it is found
    anywhere in the text.

    Examples:
        >>> ps = PatternSet.of(["bank llc", r"#\\d+"])
        >>> ps.matches_all("bank llc #123")
        True
        >>> ps.matches_any("nothing here")
        False
    """

    patterns: tuple[str, ...] = ()
    compiled: tuple["re.Pattern[str]", ...] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        # Keep first occurrence order, drop duplicates
        unique = tuple(dict.fromkeys(self.patterns))
        object.__setattr__(self, "patterns", unique)
        object.__setattr__(
            self, "compiled", tuple(compile_pattern(p) for p in unique)
        )

    @classmethod
    def of(cls, patterns: Optional[Iterable[str]]) -> "PatternSet":
        """Build a PatternSet from any iterable of strings (or None)."""
        if patterns is None:
            return cls()
        if isinstance(patterns, str):
            raise PatternError(patterns, "expected a list of patterns")
        return cls(tuple(patterns))

    def __len__(self) -> int:
        return len(self.patterns)

    def __bool__(self) -> bool:
        return bool(self.patterns)

    def to_list(self) -> list[str]:
        """Return the pattern strings, as persisted."""
        return list(self.patterns)

    def matches_any(self, text: str) -> bool:
        """True if at least one pattern is found in ``text``."""
        return any(regex.search(text) for regex in self.compiled)

    def matches_all(self, text: str) -> bool:
        """True if every pattern is found in ``text``.

        An empty set matches nothing.
        """
        if not self.compiled:
            return False
        return all(regex.search(text) for regex in self.compiled)


@dataclass(frozen=True)
class FileFilter:
    """Include/exclude filter applied to file base names.

    Exclusion takes precedence: a name matching any exclude pattern is never
    tracked. With no include patterns every other name is tracked.
    """

    include: PatternSet = field(default_factory=PatternSet)
    exclude: PatternSet = field(default_factory=PatternSet)

    @classmethod
    def of(
        cls,
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> "FileFilter":
        return cls(include=PatternSet.of(include), exclude=PatternSet.of(exclude))

    def tracks(self, file_path: str) -> bool:
        """Check whether a file path passes the filter.

        Args:
            file_path: Path of the file; only its base name is matched

        Returns:
            True if the file should be tracked
        """
        name = os.path.basename(file_path)
        if self.exclude.matches_any(name):
            return False
        if not self.include:
            return True
        return self.include.matches_any(name)
