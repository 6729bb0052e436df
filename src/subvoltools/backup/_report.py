"""Failure aggregation and run finalization."""

from __future__ import annotations

import logging

from ..exceptions import CopyError
from ._types import BackupRun, FailedFile, RunStatus

log = logging.getLogger(__name__)


def record_failure(run: BackupRun, path: str, error: str) -> None:
    """Record a failed path under the run's error-handling mode.

    In strict mode the failure is recorded and then raised as
    :class:`CopyError`; in continue mode it is only recorded.
    """
    run.failures.append(FailedFile(path=path, error=error))
    log.debug("failure (%s): %s: %s", run.mode, path, error)
    if run.strict:
        raise CopyError(path, error)


def record_success(run: BackupRun, count: int = 1) -> None:
    with run._lock:
        run.copied += count


def finalize_run(run: BackupRun) -> RunStatus:
    """Set and return the final status of a completed run.

    A strict run never gets here with failures (the first one raised),
    but if it does the run counts as aborted rather than partial.
    """
    if not run.failures:
        run.status = RunStatus.SUCCESS
    elif run.strict:
        run.status = RunStatus.ABORTED
    else:
        run.status = RunStatus.PARTIAL
    log.debug("run finished: %s (%d copied, %d failed)",
              run.status.name, run.copied, len(run.failures))
    return run.status


def summary_message(run: BackupRun) -> str:
    """One-line summary suitable for the end of a run."""
    n = len(run.failures)
    if n == 0:
        return "All files copied successfully"
    noun = "file" if n == 1 else "files"
    return f"{n} {noun} could not be copied"
