from ._exclude import ExcludePattern, ExclusionSet, PatternKind, classify_pattern, read_pattern_file
from .exceptions import (
    BackupError,
    CopyError,
    DependencyUnavailable,
    EnumerationError,
    InterruptedRun,
    ValidationError,
)
from .backup import (
    BackupRun, CopyStrategy, ErrorHandlingMode, FailedFile, FileEntry, FileType,
    HostProbe, Interrupter, Partition, ProgressObserver, RunStatus,
    enumerate_tree, resolve_strategy, run_backup,
)

__all__ = [
    "ExcludePattern", "ExclusionSet", "PatternKind", "classify_pattern", "read_pattern_file",
    "BackupError", "CopyError", "DependencyUnavailable", "EnumerationError",
    "InterruptedRun", "ValidationError",
    "BackupRun", "CopyStrategy", "ErrorHandlingMode", "FailedFile", "FileEntry", "FileType",
    "HostProbe", "Interrupter", "Partition", "ProgressObserver", "RunStatus",
    "enumerate_tree", "resolve_strategy", "run_backup",
]
