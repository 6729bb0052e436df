"""Source tree enumeration against an exclusion set."""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from .._exclude import ExclusionSet
from ..exceptions import EnumerationError
from ._types import ErrorHandlingMode, FailedFile, FileEntry, FileType, Partition

log = logging.getLogger(__name__)


def _rel(base: Path, full: Path) -> str:
    return str(full.relative_to(base)).replace(os.sep, "/")


def _make_entry(base: Path, full: Path, *, is_dir: bool) -> FileEntry:
    """Build a :class:`FileEntry`, stat-ing files for their size."""
    rel = _rel(base, full)
    if is_dir:
        return FileEntry(str(full), rel, FileType.DIRECTORY)
    st = os.lstat(full)
    size = st.st_size if stat.S_ISREG(st.st_mode) else 0
    return FileEntry(str(full), rel, FileType.FILE, size, st.st_mode)


def enumerate_tree(
    source: str | Path,
    exclusions: ExclusionSet | None = None,
    *,
    mode: ErrorHandlingMode = ErrorHandlingMode.STRICT,
) -> Partition:
    """Walk *source* depth-first and partition it against *exclusions*.

    Directory and file names are visited in sorted order, so an
    unchanged tree always yields the same partition.  An excluded
    directory is pruned: no pattern is evaluated beneath it, but its
    members are listed as excluded entries.

    Symlinked directories are recorded as file entries and not descended
    into.

    Unreadable directories and entries that cannot be stat-ed are
    enumeration failures.  In strict mode the first one raises
    :class:`EnumerationError`; otherwise it is recorded in
    ``Partition.errors`` and the walk continues.
    """
    base = Path(source)
    exclusions = exclusions if exclusions is not None else ExclusionSet()
    part = Partition()

    def fail(path: str, error: str) -> None:
        log.debug("enumeration failure: %s: %s", path, error)
        if mode is ErrorHandlingMode.STRICT:
            raise EnumerationError(path, error)
        part.errors.append(FailedFile(path=path, error=error))

    def onerror(exc: OSError) -> None:
        fail(exc.filename or str(base), exc.strerror or str(exc))

    def exclude(entry: FileEntry, raw: str | None) -> None:
        part.excluded.add(entry.rel)
        if raw is not None:
            part.matched[entry.rel] = raw

    for dirpath, dirnames, filenames in os.walk(base, onerror=onerror):
        dp = Path(dirpath)
        dirnames.sort()
        filenames.sort()

        for fname in filenames:
            full = dp / fname
            try:
                entry = _make_entry(base, full, is_dir=False)
            except OSError as exc:
                fail(str(full), exc.strerror or str(exc))
                continue
            part.entries.append(entry)
            pattern = exclusions.match(entry.rel, is_dir=False)
            if pattern is not None:
                exclude(entry, pattern.raw)

        pruned = []
        for dname in dirnames:
            full = dp / dname
            if full.is_symlink():
                # Recorded as a link, never descended into
                pruned.append(dname)
                try:
                    entry = _make_entry(base, full, is_dir=False)
                except OSError as exc:
                    fail(str(full), exc.strerror or str(exc))
                    continue
                part.entries.append(entry)
                pattern = exclusions.match(entry.rel, is_dir=False)
                if pattern is not None:
                    exclude(entry, pattern.raw)
                continue

            entry = _make_entry(base, full, is_dir=True)
            part.entries.append(entry)
            pattern = exclusions.match(entry.rel, is_dir=True)
            if pattern is not None:
                exclude(entry, pattern.raw)
                pruned.append(dname)
                log.debug("pruned %s (pattern %r)", entry.rel, pattern.raw)
                _list_excluded_subtree(base, full, part)

        for dname in pruned:
            dirnames.remove(dname)

    return part


def _list_excluded_subtree(base: Path, top: Path, part: Partition) -> None:
    """Record everything under an excluded directory as excluded.

    Patterns are not evaluated here and read errors are ignored: nothing
    in this subtree is copied.
    """
    for dirpath, dirnames, filenames in os.walk(top):
        dp = Path(dirpath)
        dirnames.sort()
        filenames.sort()
        for fname in filenames:
            try:
                entry = _make_entry(base, dp / fname, is_dir=False)
            except OSError:
                continue
            part.entries.append(entry)
            part.excluded.add(entry.rel)
        for dname in list(dirnames):
            full = dp / dname
            is_link = full.is_symlink()
            try:
                entry = _make_entry(base, full, is_dir=not is_link)
            except OSError:
                continue
            part.entries.append(entry)
            part.excluded.add(entry.rel)
            if is_link:
                dirnames.remove(dname)
