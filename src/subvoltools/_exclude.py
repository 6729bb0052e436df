"""Exclusion patterns for backup runs.

Raw pattern strings are classified into one of seven shapes by a fixed
precedence (first matching rule wins), then combined into an
:class:`ExclusionSet` that answers "is this path excluded?" for paths
relative to the source root.

Pattern syntax::

    **/name      name at any depth (file or directory)
    name/**      directory named name (root first, then any depth)
    name/        directories only, any depth
    a/b          anchored at the source root
    .name        dot-named file or directory, any depth
    *.ext        files ending in .ext, any depth
    name         file or directory named name, any depth

Name segments may contain ``*``, ``?`` and ``[...]`` wildcards.  There is
no negation; a directory that matches excludes everything beneath it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from ._glob import _glob_match, _segments_match, _tail_match
from .exceptions import ValidationError

log = logging.getLogger(__name__)


class PatternKind(str, Enum):
    """Shape of an exclusion pattern, in classification order."""
    DOUBLE_WILDCARD_ANY_LEVEL = "any-level"
    DOUBLE_WILDCARD_SUBTREE = "subtree"
    TRAILING_SLASH_DIRECTORY = "directory"
    SLASHED_PATH = "path"
    HIDDEN_DOTTED = "hidden"
    EXTENSION = "extension"
    LITERAL = "literal"

    def __str__(self) -> str:          # noqa: D105
        return self.value

    @property
    def rank(self) -> int:
        """Specificity used to attribute a path matched by several patterns."""
        return _KIND_RANK[self]


_KIND_RANK = {
    PatternKind.SLASHED_PATH: 10,
    PatternKind.TRAILING_SLASH_DIRECTORY: 8,
    PatternKind.DOUBLE_WILDCARD_SUBTREE: 7,
    PatternKind.DOUBLE_WILDCARD_ANY_LEVEL: 6,
    PatternKind.HIDDEN_DOTTED: 5,
    PatternKind.EXTENSION: 4,
    PatternKind.LITERAL: 2,
}


@dataclass(frozen=True)
class ExcludePattern:
    """A classified exclusion pattern.

    Attributes:
        raw: The pattern as given (trimmed).
        kind: :class:`PatternKind` chosen by :func:`classify_pattern`.
        payload: The part of *raw* that is matched against paths.
        anchored: Only match at the source root (leading ``/``).
    """
    raw: str
    kind: PatternKind
    payload: str
    anchored: bool = False
    _parts: tuple[str, ...] = field(default=(), repr=False, compare=False)

    def __post_init__(self) -> None:
        parts = tuple(p for p in self.payload.split("/") if p)
        object.__setattr__(self, "_parts", parts)

    def matches(self, parts: Sequence[str], *, is_dir: bool = False) -> bool:
        """Return True if this pattern names the path itself.

        *parts* is the relative path split on ``/``.  Ancestors are not
        considered here; see :meth:`ExclusionSet.is_excluded`.
        """
        if not parts:
            return False
        pat = list(self._parts)
        path = list(parts)
        kind = self.kind
        if kind is PatternKind.EXTENSION:
            return not is_dir and _glob_match("*." + self.payload, path[-1])
        if kind in (PatternKind.HIDDEN_DOTTED, PatternKind.LITERAL):
            return _glob_match(self.payload, path[-1])
        if kind is PatternKind.SLASHED_PATH:
            return _segments_match(pat, path)
        if kind is PatternKind.DOUBLE_WILDCARD_ANY_LEVEL:
            return _tail_match(pat, path)
        # Directory-only shapes: subtree and trailing slash
        if not is_dir:
            return False
        if _segments_match(pat, path):
            return True
        return not self.anchored and _tail_match(pat, path)

    def __str__(self) -> str:          # noqa: D105
        return self.raw


def classify_pattern(raw: str) -> ExcludePattern:
    """Classify a trimmed pattern string.

    Rules are tried in order and the first match wins, so ``logs/**``
    is a subtree pattern even though it also contains a slash.

    Raises:
        ValueError: If *raw* is empty.
    """
    if not raw:
        raise ValueError("Exclusion pattern must not be empty")

    if raw.startswith("**/"):
        pattern = ExcludePattern(raw, PatternKind.DOUBLE_WILDCARD_ANY_LEVEL,
                                 raw[3:].rstrip("/"))
    elif raw.endswith("/**"):
        prefix = raw[:-3]
        pattern = ExcludePattern(raw, PatternKind.DOUBLE_WILDCARD_SUBTREE,
                                 prefix.lstrip("/"), anchored=prefix.startswith("/"))
    elif raw.endswith("/"):
        name = raw.rstrip("/")
        pattern = ExcludePattern(raw, PatternKind.TRAILING_SLASH_DIRECTORY,
                                 name.lstrip("/"), anchored=name.startswith("/"))
    elif "/" in raw:
        pattern = ExcludePattern(raw, PatternKind.SLASHED_PATH, raw.lstrip("/"),
                                 anchored=True)
    elif raw.startswith("."):
        pattern = ExcludePattern(raw, PatternKind.HIDDEN_DOTTED, raw)
    elif raw.startswith("*."):
        pattern = ExcludePattern(raw, PatternKind.EXTENSION, raw[2:])
    else:
        pattern = ExcludePattern(raw, PatternKind.LITERAL, raw)

    log.debug("pattern %r classified as %s (payload %r)",
              raw, pattern.kind, pattern.payload)
    return pattern


def read_pattern_file(path: str | Path) -> list[str]:
    """Read patterns from a file, one per line.

    Surrounding whitespace is trimmed; blank lines and ``#`` comments
    are skipped.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ValidationError(f"Cannot read exclude file {path}: {exc}")
    patterns: list[str] = []
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return patterns


class ExclusionSet:
    """Ordered collection of :class:`ExcludePattern` values.

    A path is excluded when any pattern matches it or any of its
    ancestor directories.
    """

    def __init__(self, patterns: Iterable[ExcludePattern | str] = ()) -> None:
        seen: set[str] = set()
        items: list[ExcludePattern] = []
        for p in patterns:
            if isinstance(p, str):
                p = p.strip()
                if not p:
                    continue
                p = classify_pattern(p)
            if p.raw in seen:
                continue
            seen.add(p.raw)
            items.append(p)
        self._patterns: tuple[ExcludePattern, ...] = tuple(items)

    @classmethod
    def from_sources(
        cls,
        patterns: Sequence[str] | None = None,
        files: Sequence[str | Path] | None = None,
    ) -> ExclusionSet:
        """Combine command-line patterns with patterns read from *files*."""
        raw: list[str] = list(patterns or ())
        for f in files or ():
            raw.extend(read_pattern_file(f))
        return cls(raw)

    # ------------------------------------------------------------------
    @property
    def patterns(self) -> tuple[ExcludePattern, ...]:
        return self._patterns

    @property
    def active(self) -> bool:
        """True if any pattern is configured."""
        return bool(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def __iter__(self) -> Iterator[ExcludePattern]:
        return iter(self._patterns)

    def __repr__(self) -> str:
        return f"ExclusionSet({[p.raw for p in self._patterns]!r})"

    # ------------------------------------------------------------------
    def match(self, rel_path: str, *, is_dir: bool = False) -> ExcludePattern | None:
        """Return the pattern that names *rel_path* itself, or ``None``.

        When several patterns match, the most specific kind wins; ties go
        to the pattern listed first.
        """
        parts = [p for p in rel_path.split("/") if p]
        best: ExcludePattern | None = None
        for pattern in self._patterns:
            if pattern.matches(parts, is_dir=is_dir):
                if best is None or pattern.kind.rank > best.kind.rank:
                    best = pattern
        return best

    def is_excluded(self, rel_path: str, *, is_dir: bool = False) -> bool:
        """Check *rel_path* and every ancestor directory."""
        if not self._patterns:
            return False
        parts = [p for p in rel_path.split("/") if p]
        for depth in range(1, len(parts)):
            if self._any_match(parts[:depth], is_dir=True):
                return True
        return self._any_match(parts, is_dir=is_dir)

    def _any_match(self, parts: list[str], *, is_dir: bool) -> bool:
        return any(p.matches(parts, is_dir=is_dir) for p in self._patterns)
