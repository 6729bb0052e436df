"""Back up a directory tree to another directory.

The source tree is enumerated against an :class:`~subvoltools.ExclusionSet`,
the requested copy strategy is resolved against what the host provides,
and the included files are copied with per-file failure tracking.
"""

from ._types import (
    BackupRun,
    CopyStrategy,
    ErrorHandlingMode,
    FailedFile,
    FailedFileList,
    FileEntry,
    FileType,
    Partition,
    RunStatus,
    StrategyResolution,
)
from ._walk import enumerate_tree
from ._strategy import HostProbe, check_strategy, fallback_of, resolve_strategy
from ._io import copy_entry, copy_metadata
from ._interrupt import Interrupter
from ._report import finalize_run, record_failure, summary_message
from ._ops import ProgressObserver, run_backup

__all__ = [
    # Public types
    "BackupRun", "CopyStrategy", "ErrorHandlingMode", "FailedFile",
    "FailedFileList", "FileEntry", "FileType", "Partition", "RunStatus",
    "StrategyResolution", "HostProbe", "Interrupter", "ProgressObserver",
    # Public functions
    "enumerate_tree", "resolve_strategy", "check_strategy", "fallback_of",
    "copy_entry", "copy_metadata", "finalize_run", "record_failure",
    "summary_message", "run_backup",
]
