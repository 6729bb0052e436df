"""Interactive exclusion review: pattern-level, then item-level checklists."""

from __future__ import annotations

from typing import Callable, Sequence

import click

from ..backup import Partition

Choice = tuple[str, str, bool]
Checklist = Callable[[str, Sequence[Choice]], list[str]]


def _checklist(title: str, choices: Sequence[Choice]) -> list[str]:
    """Terminal checklist over ``(id, label, selected)`` triples.

    The operator toggles entries by number until an empty answer
    accepts the current selection.  Returns the selected ids in order.
    """
    selected = {cid for cid, _label, on in choices if on}
    while True:
        click.echo(title)
        for i, (cid, label, _on) in enumerate(choices, 1):
            mark = "x" if cid in selected else " "
            click.echo(f"  [{mark}] {i:>3}. {label}")
        answer = click.prompt(
            "Numbers to toggle (Enter to accept)", default="", show_default=False,
        )
        tokens = answer.replace(",", " ").split()
        if not tokens:
            return [cid for cid, _label, _on in choices if cid in selected]
        for tok in tokens:
            if not tok.isdigit() or not 1 <= int(tok) <= len(choices):
                click.echo(f"Ignoring invalid choice: {tok}", err=True)
                continue
            cid = choices[int(tok) - 1][0]
            selected.symmetric_difference_update({cid})


def review_exclusions(partition: Partition, checklist: Checklist = _checklist) -> list[str]:
    """Let the operator shrink the excluded set.

    First choose which patterns stay active, then, per active pattern,
    which of its matched items stay excluded.  Returns the relative
    paths that remain excluded, for :meth:`Partition.override`.
    """
    groups = partition.by_pattern()
    if not groups:
        return []

    pattern_choices = []
    for raw, entries in groups.items():
        n_dirs = sum(1 for e in entries if e.is_dir)
        n_files = len(entries) - n_dirs
        pattern_choices.append((raw, f"{raw}  ({n_dirs} dirs, {n_files} files)", True))
    active = checklist("Exclude patterns (unchecked patterns are ignored):", pattern_choices)

    kept: list[str] = []
    for raw in active:
        items = [(e.rel, e.rel + ("/" if e.is_dir else ""), True) for e in groups[raw]]
        kept.extend(checklist(f"Items excluded by {raw}:", items))
    return kept
