"""The backup and exclusions commands."""

from __future__ import annotations

import click

from ..backup import (
    CopyStrategy,
    ErrorHandlingMode,
    Interrupter,
    RunStatus,
    enumerate_tree,
    resolve_strategy,
    run_backup,
    summary_message,
)
from ..exceptions import BackupError, InterruptedRun
from ._helpers import (
    main,
    _build_exclusions,
    _exclude_options,
    _status,
    _warn,
    _ClickProgress,
)
from ._review import review_exclusions

_FAILED_PREVIEW = 10


def _confirm_empty() -> bool:
    _warn("Source directory contains nothing to copy.")
    return click.confirm(
        "Continue with empty source? This will create an empty backup", default=True,
    )


def _confirm_resume() -> bool:
    click.echo("\nOperation interrupted by user", err=True)
    return click.confirm("Do you want to continue anyway?", default=False)


def _report_failures(run, interactive: bool) -> None:
    """Print the failed-file summary, eliding long lists."""
    if not run.failures:
        click.echo(summary_message(run))
        return
    _warn(summary_message(run))
    shown, rest = run.failures.preview(_FAILED_PREVIEW)
    if rest and interactive and click.confirm(
        "Do you want to see the complete list of failed files?", default=False,
    ):
        shown, rest = list(run.failures), 0
    for failure in shown:
        click.echo(f"ERROR: {failure.path}: {failure.error}", err=True)
    if rest:
        click.echo(f"... and {rest} more", err=True)


# ---------------------------------------------------------------------------
# backup
# ---------------------------------------------------------------------------

@main.command()
@click.option("-s", "--source", required=True, type=click.Path(),
              help="Source directory to back up.")
@click.option("-d", "--destination", required=True, type=click.Path(),
              help="Destination directory (created if missing).")
@click.option("-m", "--method", type=click.Choice(["tar", "parallel"]), default="tar",
              envvar="SUBVOLTOOLS_METHOD", show_default=True,
              help="Copy method; falls back automatically when its tools are missing.")
@click.option("-e", "--error-handling", "error_handling",
              type=click.Choice(["strict", "continue"]), default="strict",
              envvar="SUBVOLTOOLS_ERROR_HANDLING", show_default=True,
              help="strict: stop on first error; continue: skip problem files.")
@_exclude_options
@click.option("-i", "--interactive-exclude", "interactive_exclude", is_flag=True, default=False,
              help="Review matched exclusions interactively before copying.")
@click.option("-n", "--non-interactive", "non_interactive", is_flag=True, default=False,
              envvar="SUBVOLTOOLS_NON_INTERACTIVE",
              help="Run without prompting for user input.")
@click.option("--workers", type=click.IntRange(min=1), default=None,
              envvar="SUBVOLTOOLS_WORKERS",
              help="Worker count for the parallel method (default: CPU count).")
@click.pass_context
def backup(ctx, source, destination, method, error_handling, exclude, exclude_from,
           interactive_exclude, non_interactive, workers):
    """Copy SOURCE to DESTINATION, leaving out excluded paths.

    \b
    Exclude patterns:
        **/name     file or directory at any depth
        name/**     a directory and everything below it
        name/       directories only, at any depth
        a/b         a path relative to the source root
        .name       dot-named file or directory
        *.ext       files with that extension
        name        file or directory with that name

    \b
    Examples:
        subvoltools backup -s /home/user -d /mnt/backup/home
        subvoltools backup -s /var -d /mnt/backup/var -m parallel
        subvoltools backup -s /home -d /mnt/home -e continue -x '*.log' -x .cache
    """
    if interactive_exclude and non_interactive:
        raise click.ClickException(
            "--interactive-exclude cannot be combined with --non-interactive"
        )
    interactive = not non_interactive
    exclusions = _build_exclusions(exclude, exclude_from)
    for pattern in exclusions:
        _status(ctx, f"Exclude pattern {pattern.raw!r}: {pattern.kind}")

    resolution = resolve_strategy(CopyStrategy.from_method(method))
    for w in resolution.warnings:
        _warn(w)

    click.echo(f"Starting backup from {source} to {destination}")
    click.echo(f"Copying data using {resolution.resolved} method...")
    _status(ctx, f"Error handling mode: {error_handling}")

    try:
        run = run_backup(
            source, destination,
            exclusions=exclusions,
            method=resolution,
            mode=ErrorHandlingMode(error_handling),
            observer=_ClickProgress(),
            review=review_exclusions if interactive_exclude else None,
            confirm_empty=_confirm_empty if interactive else None,
            interrupter=Interrupter(_confirm_resume if interactive else None),
            workers=workers,
        )
    except InterruptedRun as exc:
        raise click.ClickException(f"{exc}. Backup cancelled")
    except BackupError as exc:
        copied = getattr(getattr(exc, "run", None), "copied", None)
        if copied is not None:
            _status(ctx, f"{copied} files copied before the failure")
        raise click.ClickException(str(exc))

    for w in run.warnings:
        _warn(w)
    if not run.partition.files:
        click.echo("Empty backup created")
    _report_failures(run, interactive)
    _status(ctx, f"{run.copied} files copied")

    if run.status is RunStatus.PARTIAL:
        _warn("The backup was created but may be missing some files")
        ctx.exit(int(RunStatus.PARTIAL))
    click.echo("Backup completed")


# ---------------------------------------------------------------------------
# exclusions
# ---------------------------------------------------------------------------

@main.command()
@click.argument("source", type=click.Path(exists=True, file_okay=False))
@_exclude_options
@click.pass_context
def exclusions(ctx, source, exclude, exclude_from):
    """Preview what the exclude patterns remove from SOURCE.

    Lists every pattern with its kind and the paths attributed to it,
    then the totals.  Nothing is copied.
    """
    excl = _build_exclusions(exclude, exclude_from)
    if not excl.active:
        click.echo("No exclude patterns provided")
        return

    part = enumerate_tree(source, excl, mode=ErrorHandlingMode.CONTINUE)
    groups = part.by_pattern()
    for pattern in excl:
        click.echo(f"{pattern.raw}  ({pattern.kind})")
        for entry in groups.get(pattern.raw, []):
            click.echo(f"  {entry.rel}{'/' if entry.is_dir else ''}")
    for err in part.errors:
        _warn(f"{err.path}: {err.error}")

    click.echo("Exclude pattern analysis complete:")
    click.echo(f"  - {len(part.excluded_files)} files excluded")
    click.echo(f"  - {len(part.excluded_dirs)} directories excluded")
    click.echo(f"  - {len(part.files)} files to copy")
