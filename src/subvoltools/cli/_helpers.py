"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import logging
import sys
import threading

import click

from .._exclude import ExclusionSet
from ..backup import ProgressObserver
from ..exceptions import ValidationError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _warn(msg):
    click.echo(f"WARNING: {msg}", err=True)


def _build_exclusions(exclude, exclude_from) -> ExclusionSet:
    """Combine --exclude and --exclude-from into an ExclusionSet."""
    try:
        return ExclusionSet.from_sources(exclude, exclude_from)
    except (ValidationError, ValueError) as exc:
        raise click.ClickException(str(exc))


def _exclude_options(f):
    """Shared --exclude / --exclude-from options."""
    f = click.option(
        "--exclude-from", "exclude_from", multiple=True, type=click.Path(dir_okay=False),
        envvar="SUBVOLTOOLS_EXCLUDE_FROM",
        help="Read exclude patterns from file, one per line (repeatable).",
    )(f)
    f = click.option(
        "--exclude", "-x", multiple=True,
        help="Exclude files or directories matching pattern (repeatable).",
    )(f)
    return f


class _ClickProgress(ProgressObserver):
    """Byte-based progress meter on stderr built on ``click.progressbar``."""

    def __init__(self, label: str = "Copying data"):
        self._label = label
        self._bar = None
        self._lock = threading.Lock()

    def start(self, files: int, nbytes: int) -> None:
        self._bar = click.progressbar(
            length=max(nbytes, 1), label=self._label,
            file=click.get_text_stream("stderr"),
        )
        self._bar.__enter__()

    def advance(self, nbytes: int = 0, files: int = 0) -> None:
        if self._bar is None or not nbytes:
            return
        with self._lock:
            self._bar.update(nbytes)

    def finish(self) -> None:
        if self._bar is None:
            return
        with self._lock:
            self._bar.__exit__(None, None, None)
            self._bar = None


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

class _Group(click.Group):
    """Click group that reports usage errors with exit status 1.

    Status 2 is reserved for backups that completed with failed files.
    """

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise


@click.group(cls=_Group)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, verbose):
    """subvoltools: directory backup for btrfs subvolume migration.

    Copy a directory tree to a destination, leaving out paths that match
    exclusion patterns, using the best copy method the host supports.

    \b
    Quick start:
      subvoltools backup -s /home -d /mnt/newhome
      subvoltools backup -s /var -d /mnt/var -m parallel -e continue
      subvoltools exclusions /home -x '*.log' -x .cache

    \b
    Exit status:
      0  all files copied
      1  invalid arguments, missing source, or aborted run
      2  completed, but some files could not be copied
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, stream=sys.stderr,
            format="%(name)s: %(message)s",
        )
