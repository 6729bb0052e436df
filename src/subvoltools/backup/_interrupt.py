"""Interrupt handling for backup runs.

A SIGINT/SIGTERM only sets a flag.  Copy loops call
:meth:`Interrupter.checkpoint` between files (and the archive pump
between chunks); that is where the operator is asked whether to resume,
and where an abort terminates in-flight work and raises
:class:`~subvoltools.exceptions.InterruptedRun`.
"""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from ..exceptions import InterruptedRun

log = logging.getLogger(__name__)


class Interrupter:
    """Cancellation state shared by the executor and its workers.

    Args:
        resolver: Called (from whichever thread reaches a checkpoint
            first) after an interrupt; return ``True`` to resume.  With no
            resolver every interrupt aborts, which is the non-interactive
            behavior.
    """

    def __init__(self, resolver: Callable[[], bool] | None = None) -> None:
        self._resolver = resolver
        self._pending = threading.Event()
        self._aborted = threading.Event()
        self._lock = threading.Lock()
        self._hooks: list[Callable[[], None]] = []

    @property
    def interrupted(self) -> bool:
        return self._pending.is_set()

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def trigger(self, signum=None, frame=None) -> None:
        """Mark the run as interrupted (also used as the signal handler)."""
        log.debug("interrupt received (signal %s)", signum)
        self._pending.set()

    def checkpoint(self) -> None:
        """Resolve a pending interrupt, raising if the run must stop."""
        if self._aborted.is_set():
            raise InterruptedRun("Backup cancelled")
        if not self._pending.is_set():
            return
        with self._lock:
            if self._aborted.is_set():
                raise InterruptedRun("Backup cancelled")
            if not self._pending.is_set():
                # Another thread already resumed
                return
            if self._resolver is not None and self._resolver():
                log.debug("operator resumed after interrupt")
                self._pending.clear()
                return
            self._aborted.set()
        self._terminate()
        raise InterruptedRun("Operation interrupted by user")

    # ------------------------------------------------------------------
    @contextmanager
    def terminating(self, hook: Callable[[], None]) -> Iterator[None]:
        """Register *hook* to kill in-flight work if the run is aborted."""
        self._hooks.append(hook)
        try:
            yield
        finally:
            self._hooks.remove(hook)

    def _terminate(self) -> None:
        for hook in list(self._hooks):
            hook()

    @contextmanager
    def installed(self, signals=(signal.SIGINT, signal.SIGTERM)) -> Iterator[Interrupter]:
        """Route *signals* to :meth:`trigger` for the duration of the block.

        Signal handlers can only be set from the main thread; elsewhere
        this is a no-op and interrupts must be triggered explicitly.
        """
        if threading.current_thread() is not threading.main_thread():
            yield self
            return
        previous = {sig: signal.signal(sig, self.trigger) for sig in signals}
        try:
            yield self
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
