"""Copy executors and the backup run orchestration."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable

from .._exclude import ExclusionSet
from ..exceptions import BackupError, CopyError, InterruptedRun, ValidationError
from ._interrupt import Interrupter
from ._io import copy_directory_metadata, copy_entry, make_directory
from ._report import finalize_run, record_failure, record_success
from ._strategy import HostProbe, resolve_strategy
from ._types import (
    BackupRun,
    CopyStrategy,
    ErrorHandlingMode,
    FailedFile,
    FileEntry,
    Partition,
    RunStatus,
    StrategyResolution,
)
from ._walk import enumerate_tree

log = logging.getLogger(__name__)

_PIPE_CHUNK_SIZE = 256 * 1024


class ProgressObserver:
    """Receives progress callbacks from the executor.

    The base class ignores everything; subclasses draw a progress meter.
    Callbacks may arrive from worker threads.
    """

    def start(self, files: int, nbytes: int) -> None:
        pass

    def advance(self, nbytes: int = 0, files: int = 0) -> None:
        pass

    def finish(self) -> None:
        pass


def _describe(exc: OSError) -> str:
    return exc.strerror or str(exc)


# ---------------------------------------------------------------------------
# Directory handling (shared by the per-file strategies)
# ---------------------------------------------------------------------------

def _create_directories(run: BackupRun) -> None:
    """Pre-create every included directory, empty ones included."""
    for entry in run.partition.dirs:
        try:
            make_directory(run.destination / entry.rel)
        except OSError as exc:
            record_failure(run, entry.path, _describe(exc))


def _finish_directories(run: BackupRun) -> None:
    """Copy directory metadata once contents are written, deepest first."""
    for entry in reversed(run.partition.dirs):
        target = run.destination / entry.rel
        if not target.is_dir():
            continue
        try:
            copy_directory_metadata(entry.path, target)
        except OSError as exc:
            run.warnings.append(f"{entry.rel}: cannot preserve metadata: {_describe(exc)}")


def _copy_one(run: BackupRun, entry: FileEntry, progress=None) -> bool:
    try:
        copied = copy_entry(entry.path, run.destination / entry.rel, progress)
    except OSError as exc:
        record_failure(run, entry.path, _describe(exc))
        return False
    if copied:
        record_success(run)
    return copied


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def _copy_sequential(run: BackupRun, interrupter: Interrupter,
                     observer: ProgressObserver, *, show_progress: bool) -> None:
    """Copy included files one at a time (progress-copy and plain-copy)."""
    files = run.partition.files
    _create_directories(run)
    progress = None
    if show_progress:
        observer.start(len(files), run.partition.total_bytes)
        progress = lambda n: observer.advance(nbytes=n)  # noqa: E731
    try:
        for entry in files:
            interrupter.checkpoint()
            _copy_one(run, entry, progress)
            if show_progress:
                observer.advance(files=1)
    finally:
        if show_progress:
            observer.finish()
    _finish_directories(run)


def _copy_progress(run, interrupter, observer, workers=None):
    _copy_sequential(run, interrupter, observer, show_progress=True)


def _copy_plain(run, interrupter, observer, workers=None):
    _copy_sequential(run, interrupter, observer, show_progress=False)


def _copy_parallel(run: BackupRun, interrupter: Interrupter,
                   observer: ProgressObserver, workers: int | None = None) -> None:
    """Copy included files on a bounded worker pool.

    In strict mode the first failure stops the pool: queued files are
    cancelled and copies finishing afterwards are not counted.
    """
    files = run.partition.files
    _create_directories(run)
    observer.start(len(files), run.partition.total_bytes)
    stop = threading.Event()

    def task(entry: FileEntry) -> None:
        if stop.is_set():
            return
        interrupter.checkpoint()
        try:
            copied = copy_entry(entry.path, run.destination / entry.rel)
        except OSError as exc:
            if run.strict:
                with run._lock:
                    if stop.is_set():
                        return
                    stop.set()
            record_failure(run, entry.path, _describe(exc))
            return
        with run._lock:
            if stop.is_set():
                return
            if copied:
                run.copied += 1
        observer.advance(nbytes=entry.size, files=1)

    log.debug("copying %d files with %s workers", len(files), workers)
    try:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(task, e) for e in files]
            try:
                for fut in as_completed(futures):
                    fut.result()
            except BaseException:
                stop.set()
                for fut in futures:
                    fut.cancel()
                raise
    finally:
        observer.finish()
    _finish_directories(run)


def _parse_tar_diagnostic(line: str) -> tuple[str, str] | None:
    """Split a ``tar: <path>: <message>`` line into ``(path, message)``.

    Returns ``None`` for lines that do not name a member.
    """
    if not line.startswith("tar: "):
        return None
    body = line[5:]
    if ": " not in body:
        return None
    path, message = body.split(": ", 1)
    if path.startswith(("Exiting with failure", "Removing leading")):
        return None
    return path, message


def _copy_archive(run: BackupRun, interrupter: Interrupter,
                  observer: ProgressObserver, workers: int | None = None) -> None:
    """Stream the included set through ``tar --create | tar --extract``.

    The byte stream passes through this process, which reports progress
    against the precomputed size of the included files.  Members are
    listed explicitly (no recursion), so excluded paths never enter the
    stream.
    """
    part = run.partition
    # Sockets are skipped, as copy_entry does
    names = [e.rel for e in part.entries
             if e.rel not in part.excluded and not e.is_socket]
    files = [e for e in part.files if not e.is_socket]
    listed = {e.rel: e for e in files}
    observer.start(len(files), part.total_bytes)
    if not names:
        observer.finish()
        return
    listing = b"".join(os.fsencode(n) + b"\0" for n in names)

    create_cmd = [
        "tar", "--create", "--file=-", "--directory", str(run.source),
        "--no-recursion", "--null", "--files-from=-", "--quoting-style=literal",
    ]
    extract_cmd = [
        "tar", "--extract", "--file=-", "--directory", str(run.destination),
        "--preserve-permissions",
    ]
    log.debug("archive pipeline: %s | %s", create_cmd, extract_cmd)

    # Own sessions: a terminal Ctrl-C reaches us, not tar
    create = subprocess.Popen(create_cmd, stdin=subprocess.PIPE, stdout=subprocess.PIPE,
                              stderr=subprocess.PIPE, start_new_session=True)
    extract = subprocess.Popen(extract_cmd, stdin=subprocess.PIPE, stderr=subprocess.PIPE,
                               start_new_session=True)

    diagnostics: list[FailedFile] = []
    extract_err: list[bytes] = []
    first_failure = threading.Event()

    def kill() -> None:
        for proc in (create, extract):
            if proc.poll() is None:
                proc.kill()

    def feed() -> None:
        try:
            create.stdin.write(listing)
            create.stdin.close()
        except BrokenPipeError:
            # tar exited early; its status and stderr report why
            pass

    def read_create_errors() -> None:
        for raw in create.stderr:
            line = os.fsdecode(raw.rstrip(b"\n"))
            parsed = _parse_tar_diagnostic(line)
            if parsed is None:
                continue
            path, message = parsed
            if message.endswith("file changed as we read it"):
                run.warnings.append(f"{path}: {message}")
                continue
            entry = listed.get(path)
            failed = entry.path if entry is not None else str(run.source / path)
            diagnostics.append(FailedFile(failed, message))
            first_failure.set()

    def read_extract_errors() -> None:
        extract_err.append(extract.stderr.read())

    threads = [threading.Thread(target=t, daemon=True)
               for t in (feed, read_create_errors, read_extract_errors)]
    for t in threads:
        t.start()

    with interrupter.terminating(kill):
        try:
            while True:
                interrupter.checkpoint()
                if run.strict and first_failure.is_set():
                    kill()
                    break
                chunk = create.stdout.read1(_PIPE_CHUNK_SIZE)
                if not chunk:
                    break
                try:
                    extract.stdin.write(chunk)
                except BrokenPipeError:
                    kill()
                    break
                observer.advance(nbytes=len(chunk))
        except BaseException:
            kill()
            raise
        finally:
            observer.finish()
            create.stdout.close()
            try:
                extract.stdin.close()
            except BrokenPipeError:
                pass
            create.wait()
            extract.wait()
            for t in threads:
                t.join()

    for failure in diagnostics:
        record_failure(run, failure.path, failure.error)
    if create.returncode != 0 and not diagnostics:
        raise CopyError(str(run.source), f"tar --create exited with status {create.returncode}")
    if extract.returncode != 0:
        err = b"".join(extract_err).decode("utf-8", errors="replace").strip()
        raise CopyError(str(run.destination),
                        err or f"tar --extract exited with status {extract.returncode}")
    failed_files = {f.path for f in diagnostics}
    record_success(run, sum(1 for e in files if e.path not in failed_files))


_EXECUTORS: dict[CopyStrategy, Callable] = {
    CopyStrategy.ARCHIVE: _copy_archive,
    CopyStrategy.PARALLEL: _copy_parallel,
    CopyStrategy.PROGRESS_COPY: _copy_progress,
    CopyStrategy.PLAIN_COPY: _copy_plain,
}


# ---------------------------------------------------------------------------
# Run orchestration
# ---------------------------------------------------------------------------

def _validate_paths(source: Path, destination: Path) -> None:
    if not source.exists():
        raise ValidationError(f"Source directory does not exist: {source}")
    if not source.is_dir():
        raise ValidationError(f"Source is not a directory: {source}")
    if destination.exists() and not destination.is_dir():
        raise ValidationError(f"Destination is not a directory: {destination}")
    src_real = Path(os.path.realpath(source))
    dst_real = Path(os.path.realpath(destination))
    if dst_real == src_real or src_real in dst_real.parents:
        raise ValidationError(
            f"Destination {destination} is inside the source {source}"
        )


def run_backup(
    source: str | Path,
    destination: str | Path,
    *,
    exclusions: ExclusionSet | None = None,
    method: CopyStrategy | str | StrategyResolution = CopyStrategy.ARCHIVE,
    mode: ErrorHandlingMode | str = ErrorHandlingMode.STRICT,
    probe: HostProbe | None = None,
    observer: ProgressObserver | None = None,
    review: Callable[[Partition], Iterable[str]] | None = None,
    confirm_empty: Callable[[], bool] | None = None,
    interrupter: Interrupter | None = None,
    workers: int | None = None,
) -> BackupRun:
    """Copy *source* to *destination*, honoring *exclusions*.

    Args:
        source: Directory to back up.
        destination: Target directory; created if missing.
        exclusions: Patterns to leave out (default: none).
        method: Requested :class:`CopyStrategy` (or CLI name such as
            ``"tar"``); the host may degrade it.  A
            :class:`StrategyResolution` is used as already resolved.
        mode: ``"strict"`` aborts on the first failure, ``"continue"``
            records failures and carries on.
        probe: Host capability probe used to resolve *method*.
        observer: Progress callbacks.
        review: Given the enumerated partition, returns the paths that
            stay excluded (interactive review).
        confirm_empty: Asked before backing up a source with nothing to
            copy; returning ``False`` cancels the run.
        interrupter: Interrupt handling; default aborts on any signal.
        workers: Worker count for the parallel strategy (default: CPUs).

    Returns:
        The finalized :class:`BackupRun`.  ``run.status`` is
        ``SUCCESS`` or ``PARTIAL``.

    Raises:
        ValidationError: Bad source or destination.
        EnumerationError: Unreadable source path in strict mode.
        CopyError: A file failed in strict mode.
        InterruptedRun: Interrupted or cancelled by the operator.

    Errors raised after the run has started carry it as ``exc.run``.
    """
    src = Path(source)
    dst = Path(destination)
    mode = ErrorHandlingMode(mode)
    exclusions = exclusions if exclusions is not None else ExclusionSet()
    probe = probe if probe is not None else HostProbe()

    _validate_paths(src, dst)
    if isinstance(method, StrategyResolution):
        resolution = method
    else:
        resolution = resolve_strategy(method, probe)
    run = BackupRun(
        source=src, destination=dst, exclusions=exclusions,
        strategy=resolution, mode=mode,
    )

    try:
        try:
            dst.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ValidationError(f"Failed to create destination directory {dst}: {_describe(exc)}")

        run.partition = enumerate_tree(src, exclusions, mode=mode)
        for failure in run.partition.errors:
            run.failures.append(failure)
        if review is not None:
            run.partition = run.partition.override(review(run.partition))

        if not run.partition.files:
            log.debug("nothing to copy from %s", src)
            if confirm_empty is not None and not confirm_empty():
                raise InterruptedRun("Operation cancelled")

        if workers is None and resolution.resolved is CopyStrategy.PARALLEL:
            workers = probe.cpu_count()
        interrupter = interrupter if interrupter is not None else Interrupter()
        observer = observer if observer is not None else ProgressObserver()
        with interrupter.installed():
            _EXECUTORS[resolution.resolved](run, interrupter, observer, workers)
    except BackupError as exc:
        run.status = RunStatus.ABORTED
        exc.run = run
        raise

    finalize_run(run)
    return run
