"""Data structures for backup runs."""

from __future__ import annotations

import stat
import threading
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator

if TYPE_CHECKING:
    from .._exclude import ExclusionSet


class FileType(str, Enum):
    """Entry type: ``FILE`` or ``DIRECTORY``.

    Symlinks (including links to directories) are ``FILE`` entries; they
    are copied as links and never followed.
    """
    FILE = "file"
    DIRECTORY = "directory"

    def __str__(self) -> str:          # noqa: D105
        return self.value


class ErrorHandlingMode(str, Enum):
    """``STRICT`` aborts on the first failure; ``CONTINUE`` records and proceeds."""
    STRICT = "strict"
    CONTINUE = "continue"

    def __str__(self) -> str:          # noqa: D105
        return self.value


class CopyStrategy(str, Enum):
    """Concrete copy mechanisms, most preferred first."""
    ARCHIVE = "archive"
    PARALLEL = "parallel"
    PROGRESS_COPY = "progress-copy"
    PLAIN_COPY = "plain-copy"

    def __str__(self) -> str:          # noqa: D105
        return self.value

    @classmethod
    def from_method(cls, method: str) -> CopyStrategy:
        """Map a command-line method name (``tar``, ``parallel``, ...)."""
        try:
            return _METHOD_NAMES[method]
        except KeyError:
            return cls(method)


_METHOD_NAMES = {
    "tar": CopyStrategy.ARCHIVE,
    "parallel": CopyStrategy.PARALLEL,
    "cp": CopyStrategy.PROGRESS_COPY,
    "plain": CopyStrategy.PLAIN_COPY,
}


class RunStatus(IntEnum):
    """Final run status; the value is the process exit code."""
    SUCCESS = 0
    ABORTED = 1
    PARTIAL = 2


@dataclass(frozen=True)
class FileEntry:
    """An enumerated source entry.

    Attributes:
        path: Absolute path on disk.
        rel: Path relative to the source root (forward slashes).
        type: :class:`FileType` of the entry.
        size: Size in bytes (0 for directories).
        mode: ``st_mode`` from ``lstat`` (0 for directories).
    """
    path: str
    rel: str
    type: FileType
    size: int = 0
    mode: int = 0

    @property
    def is_dir(self) -> bool:
        return self.type is FileType.DIRECTORY

    @property
    def is_socket(self) -> bool:
        """Sockets cannot be copied and are skipped by every strategy."""
        return stat.S_ISSOCK(self.mode)


@dataclass(frozen=True)
class FailedFile:
    """A path that failed to enumerate or copy.

    Attributes:
        path: The path that caused the error.
        error: Human-readable error message.
    """
    path: str
    error: str

    def __str__(self) -> str:          # noqa: D105
        return f"{self.path}: {self.error}"


class FailedFileList:
    """Append-only, thread-safe list of :class:`FailedFile` in detection order."""

    def __init__(self, items: Iterable[FailedFile] = ()) -> None:
        self._lock = threading.Lock()
        self._items: list[FailedFile] = list(items)

    def append(self, failure: FailedFile) -> None:
        with self._lock:
            self._items.append(failure)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[FailedFile]:
        with self._lock:
            return iter(list(self._items))

    def __getitem__(self, index: int) -> FailedFile:
        return self._items[index]

    def preview(self, limit: int = 10) -> tuple[list[FailedFile], int]:
        """Return the first *limit* failures and how many were left out."""
        with self._lock:
            shown = self._items[:limit]
            return shown, len(self._items) - len(shown)


@dataclass
class Partition:
    """Result of walking the source tree against an exclusion set.

    Attributes:
        entries: Every enumerated file and directory, in walk order.
        excluded: Relative paths that are excluded (directly or by an
            excluded ancestor).
        matched: ``{rel: raw pattern}`` for entries a pattern named
            directly.
        errors: Enumeration failures recorded in continue mode.
    """
    entries: list[FileEntry] = field(default_factory=list)
    excluded: set[str] = field(default_factory=set)
    matched: dict[str, str] = field(default_factory=dict)
    errors: list[FailedFile] = field(default_factory=list)

    @property
    def files(self) -> list[FileEntry]:
        """Included files, the copy candidates."""
        return [e for e in self.entries if not e.is_dir and e.rel not in self.excluded]

    @property
    def dirs(self) -> list[FileEntry]:
        """Included directories, pre-created at the destination."""
        return [e for e in self.entries if e.is_dir and e.rel not in self.excluded]

    @property
    def excluded_files(self) -> list[FileEntry]:
        return [e for e in self.entries if not e.is_dir and e.rel in self.excluded]

    @property
    def excluded_dirs(self) -> list[FileEntry]:
        return [e for e in self.entries if e.is_dir and e.rel in self.excluded]

    @property
    def total_bytes(self) -> int:
        """Total size of included files."""
        return sum(e.size for e in self.files)

    def by_pattern(self) -> dict[str, list[FileEntry]]:
        """Group directly matched entries by the pattern they are attributed to."""
        groups: dict[str, list[FileEntry]] = {}
        for e in self.entries:
            raw = self.matched.get(e.rel)
            if raw is not None:
                groups.setdefault(raw, []).append(e)
        return groups

    def override(self, kept: Iterable[str]) -> Partition:
        """Return a partition where only *kept* paths stay excluded.

        Every excluded entry that is neither in *kept* nor below a kept
        directory is included again.  Used to apply the outcome of an
        interactive review; the exclusion set itself is not consulted.
        """
        kept_set = {k.strip("/") for k in kept}
        excluded: set[str] = set()
        for rel in self.excluded:
            parts = rel.split("/")
            if any("/".join(parts[:i]) in kept_set for i in range(1, len(parts) + 1)):
                excluded.add(rel)
        matched = {rel: raw for rel, raw in self.matched.items() if rel in excluded}
        return replace(self, excluded=excluded, matched=matched,
                       errors=list(self.errors))


@dataclass(frozen=True)
class StrategyResolution:
    """Outcome of resolving a requested strategy against the host.

    Attributes:
        requested: Strategy the caller asked for.
        resolved: Strategy that will actually run.
        warnings: One message per fallback step taken.
    """
    requested: CopyStrategy
    resolved: CopyStrategy
    warnings: tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return self.requested is not self.resolved


@dataclass
class BackupRun:
    """State of one backup invocation, threaded through every component.

    Attributes:
        source: Source root.
        destination: Destination root.
        exclusions: Exclusion set in effect.
        strategy: Resolved copy strategy.
        mode: :class:`ErrorHandlingMode` for the run.
        partition: Enumerated (and possibly reviewed) source tree.
        failures: Per-file failures, in detection order.
        copied: Number of files copied successfully.
        warnings: Non-fatal messages raised while copying (fallback
            warnings stay on ``strategy``).
        status: Final :class:`RunStatus`, ``None`` until finalized.
    """
    source: Path
    destination: Path
    exclusions: ExclusionSet
    strategy: StrategyResolution
    mode: ErrorHandlingMode = ErrorHandlingMode.STRICT
    partition: Partition = field(default_factory=Partition)
    failures: FailedFileList = field(default_factory=FailedFileList)
    copied: int = 0
    warnings: list[str] = field(default_factory=list)
    status: RunStatus | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def strict(self) -> bool:
        return self.mode is ErrorHandlingMode.STRICT
