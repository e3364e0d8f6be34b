# Copyright (c) Syntropy Systems
"""Rich tables and logging setup shared by CLI commands."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rich.logging import RichHandler
from rich.table import Table

if TYPE_CHECKING:
    from ampsweep.models.sweep import MatchResult, SweepResult
    from ampsweep.models.tracking import ReadTrackingTable


def configure_logging(verbose: bool) -> None:  # noqa: FBT001
    """Send ampsweep log records to the terminal."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


def format_score(score: float | None) -> str:
    """Format a repeatability score; undefined scores show as a dash."""
    if score is None:
        return "-"
    return f"{score:.4f}"


def sweep_table(result: SweepResult, title: str | None = None) -> Table:
    """Render one sweep's rows, highlighting the best configuration."""
    best_index = result.best_row().index if result.defined() else None

    table = Table(title=title or f"Sweep: {result.name}")
    table.add_column("#", style="dim")
    table.add_column("Configuration")
    table.add_column("Repeatability", justify="right")
    table.add_column("Note")

    for row in result.rows:
        score_str = format_score(row.score)
        note = ""
        if row.index == best_index:
            score_str = f"[green]{score_str}[/green]"
            note = "[green]best[/green]"
        elif row.score is None:
            note = f"[red]skipped:[/red] {row.error or 'unknown error'}"
        table.add_row(str(row.index), row.configuration.label, score_str, note)

    return table


def match_table(results: list[MatchResult]) -> Table:
    """Render per-group match results."""
    table = Table(title="Replicate groups")
    table.add_column("Group")
    table.add_column("Matched", justify="right")
    table.add_column("Discordant", justify="right")
    table.add_column("Score", justify="right")

    for result in results:
        table.add_row(
            result.group,
            str(len(result.matched)),
            str(len(result.discordant)),
            format_score(result.score),
        )
    return table


def tracking_table(
    tracking: ReadTrackingTable, flagged: list[str] | None = None
) -> Table:
    """Render read counts per sample and stage."""
    flagged_set = set(flagged or [])

    table = Table(title="Read tracking")
    table.add_column("Sample")
    for stage in tracking.stages:
        table.add_column(stage, justify="right")
    table.add_column("Retained", justify="right")

    for row in tracking.rows:
        fraction = row.retained_fraction()
        retained = "-" if fraction is None else f"{fraction:.1%}"
        if row.sample in flagged_set:
            retained = f"[red]{retained}[/red]"
        table.add_row(row.sample, *(str(n) for n in row.counts), retained)
    return table
