"""Copy strategy selection.

Each strategy declares what the host must provide.  Resolution starts at
the requested strategy and walks a fixed successor chain until a
strategy's requirements are met::

    parallel -> archive -> progress-copy -> plain-copy

Plain copy needs nothing beyond the Python runtime, so resolution always
terminates.  The chain only moves forward and never revisits a strategy.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys

from ..exceptions import DependencyUnavailable
from ._types import CopyStrategy, StrategyResolution

log = logging.getLogger(__name__)


class HostProbe:
    """Capability probe for the machine running the backup.

    Override the methods (or pass a stand-in with the same interface)
    to simulate other hosts.
    """

    def has_tool(self, name: str) -> bool:
        """True if executable *name* is on ``PATH``."""
        return shutil.which(name) is not None

    def cpu_count(self) -> int:
        """Number of CPUs this process may run on."""
        if hasattr(os, "sched_getaffinity"):
            return len(os.sched_getaffinity(0))
        return os.cpu_count() or 1

    def has_terminal(self) -> bool:
        """True if a progress meter can be drawn on stderr."""
        return sys.stderr.isatty()


ARCHIVE_TOOLS = ("tar",)

_NEXT: dict[CopyStrategy, CopyStrategy | None] = {
    CopyStrategy.PARALLEL: CopyStrategy.ARCHIVE,
    CopyStrategy.ARCHIVE: CopyStrategy.PROGRESS_COPY,
    CopyStrategy.PROGRESS_COPY: CopyStrategy.PLAIN_COPY,
    CopyStrategy.PLAIN_COPY: None,
}


def fallback_of(strategy: CopyStrategy) -> CopyStrategy | None:
    """Return the strategy tried after *strategy*, or ``None`` at the end."""
    return _NEXT[strategy]


def check_strategy(strategy: CopyStrategy, probe: HostProbe) -> None:
    """Raise :class:`DependencyUnavailable` if *strategy* cannot run."""
    if strategy is CopyStrategy.ARCHIVE:
        missing = [t for t in ARCHIVE_TOOLS if not probe.has_tool(t)]
        if missing:
            raise DependencyUnavailable(strategy, f"{', '.join(missing)} not found")
    elif strategy is CopyStrategy.PARALLEL:
        if probe.cpu_count() < 2:
            raise DependencyUnavailable(strategy, "only one CPU available for workers")
    elif strategy is CopyStrategy.PROGRESS_COPY:
        if not probe.has_terminal():
            raise DependencyUnavailable(strategy, "no terminal for the progress meter")


def resolve_strategy(
    requested: CopyStrategy | str,
    probe: HostProbe | None = None,
) -> StrategyResolution:
    """Resolve *requested* to the first strategy the host can run.

    Every fallback step produces a warning naming the original request
    and the strategy taken instead.
    """
    if isinstance(requested, str) and not isinstance(requested, CopyStrategy):
        requested = CopyStrategy.from_method(requested)
    probe = probe if probe is not None else HostProbe()

    warnings: list[str] = []
    visited: set[CopyStrategy] = set()
    current: CopyStrategy | None = requested
    while current is not None and current not in visited:
        visited.add(current)
        try:
            check_strategy(current, probe)
        except DependencyUnavailable as exc:
            nxt = fallback_of(current)
            if nxt is None:
                raise
            warnings.append(
                f"{exc.reason} for {current}, falling back to {nxt}"
                f" (requested {requested})"
            )
            current = nxt
            continue
        resolution = StrategyResolution(requested, current, tuple(warnings))
        if resolution.degraded:
            log.info("copy strategy %s resolved to %s", requested, current)
        else:
            log.debug("copy strategy %s available", current)
        return resolution

    # Unreachable with the built-in chain: plain copy has no requirements
    raise DependencyUnavailable(requested, "no usable copy strategy")
