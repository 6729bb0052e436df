"""Shared name matching for exclusion patterns."""

from __future__ import annotations

from fnmatch import fnmatchcase as _fnmatch

_MAGIC = frozenset("*?[")


def _has_magic(segment: str) -> bool:
    return any(c in _MAGIC for c in segment)


def _glob_match(pattern: str, name: str) -> bool:
    """Match a single path segment *name* against *pattern*.

    Segments without wildcards compare exactly.  Unlike listing globs,
    ``*`` and ``?`` also match a leading ``.`` here, since an exclusion
    of ``*cache*`` is expected to catch ``.cache`` too.
    """
    if not _has_magic(pattern):
        return pattern == name
    return _fnmatch(name, pattern)


def _segments_match(pattern_parts: list[str], path_parts: list[str]) -> bool:
    """Segment-wise match of equal-length part lists."""
    if len(pattern_parts) != len(path_parts):
        return False
    return all(_glob_match(p, n) for p, n in zip(pattern_parts, path_parts))


def _tail_match(pattern_parts: list[str], path_parts: list[str]) -> bool:
    """True if the last ``len(pattern_parts)`` segments of the path match."""
    n = len(pattern_parts)
    if n == 0 or n > len(path_parts):
        return False
    return _segments_match(pattern_parts, path_parts[-n:])
