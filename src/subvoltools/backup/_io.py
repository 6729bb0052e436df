"""File I/O helpers: the copy primitive and metadata preservation."""

from __future__ import annotations

import fcntl
import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Callable, Optional

log = logging.getLogger(__name__)

ProgressCallback = Optional[Callable[[int], None]]

_COPY_CHUNK_SIZE = 1024 * 1024

# _IOW(0x94, 9, int) from linux/fs.h
_FICLONE = 0x40049409


# ---------------------------------------------------------------------------
# Data copy
# ---------------------------------------------------------------------------

def _try_clone(fsrc, fdst) -> bool:
    """Share *fsrc*'s extents with *fdst* (reflink). Returns False if unsupported.

    Fails on anything that is not a CoW filesystem, or when source and
    destination live on different filesystems.
    """
    try:
        fcntl.ioctl(fdst.fileno(), _FICLONE, fsrc.fileno())
    except OSError:
        return False
    return True


def _clone_or_copy(src: Path, dst: Path, size: int, progress: ProgressCallback = None) -> None:
    """Reflink *src* to *dst* when possible, else stream the bytes in chunks."""
    with open(src, "rb") as fsrc, open(dst, "wb") as fdst:
        if _try_clone(fsrc, fdst):
            if progress is not None:
                progress(size)
            return
        while True:
            chunk = fsrc.read(_COPY_CHUNK_SIZE)
            if not chunk:
                break
            fdst.write(chunk)
            if progress is not None:
                progress(len(chunk))


def _clear_destination(dst: Path) -> None:
    """Remove whatever is at *dst* so a file entry can take its place."""
    if dst.is_dir() and not dst.is_symlink():
        shutil.rmtree(dst)
    elif dst.exists() or dst.is_symlink():
        dst.unlink()


def copy_entry(src: str | Path, dst: str | Path, progress: ProgressCallback = None) -> bool:
    """Copy one non-directory entry from *src* to *dst*, archive style.

    Regular files are reflinked when the filesystem allows it and
    byte-copied otherwise.  Symlinks are recreated (never followed);
    FIFOs and device nodes are recreated; sockets are skipped.  Missing
    parent directories are created.  Mode, timestamps, and (when running
    as root) ownership are preserved.

    Returns ``False`` if the entry was skipped.

    Raises:
        OSError: If the entry cannot be read or written.
    """
    src = Path(src)
    dst = Path(dst)
    st = os.lstat(src)
    mode = st.st_mode

    if stat.S_ISSOCK(mode):
        log.debug("skipping socket %s", src)
        return False

    dst.parent.mkdir(parents=True, exist_ok=True)
    _clear_destination(dst)

    if stat.S_ISLNK(mode):
        os.symlink(os.readlink(src), dst)
    elif stat.S_ISREG(mode):
        _clone_or_copy(src, dst, st.st_size, progress)
    elif stat.S_ISFIFO(mode):
        os.mkfifo(dst, stat.S_IMODE(mode))
    elif stat.S_ISCHR(mode) or stat.S_ISBLK(mode):
        os.mknod(dst, mode, st.st_rdev)
    else:
        raise OSError(f"Unsupported file type: {src}")

    copy_metadata(dst, st)
    return True


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

def copy_metadata(dst: Path, st: os.stat_result) -> None:
    """Apply ownership, permissions, and timestamps from *st* to *dst*.

    Ownership is only changed when running as root, matching
    ``cp --archive`` for unprivileged users.
    """
    is_link = stat.S_ISLNK(st.st_mode)
    if os.geteuid() == 0:
        os.chown(dst, st.st_uid, st.st_gid, follow_symlinks=False)
    if not is_link:
        os.chmod(dst, stat.S_IMODE(st.st_mode))
    os.utime(dst, ns=(st.st_atime_ns, st.st_mtime_ns), follow_symlinks=False)


def make_directory(dst: Path) -> None:
    """Create *dst* (and parents); replaces a non-directory in the way."""
    if dst.is_symlink() or (dst.exists() and not dst.is_dir()):
        dst.unlink()
    dst.mkdir(parents=True, exist_ok=True)


def copy_directory_metadata(src: str | Path, dst: Path) -> None:
    """Copy metadata for a directory whose contents are already in place."""
    copy_metadata(dst, os.lstat(src))
