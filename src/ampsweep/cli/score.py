# Copyright (c) Syntropy Systems
"""ampsweep score command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ampsweep.cli.render import configure_logging, match_table
from ampsweep.config import load_config
from ampsweep.errors import AmpsweepError
from ampsweep.models.table import AbundanceTable
from ampsweep.pipeline import read_seqtab
from ampsweep.replicates import ReplicateGroups
from ampsweep.scoring import pooled_repeatability, score_table

console = Console()


def load_table(path: Path) -> AbundanceTable:
    """Load an abundance table from JSON or a tab-separated sequence table."""
    if path.suffix.lower() == ".json":
        return AbundanceTable.load(path)
    return read_seqtab(path)


def score(
    table_file: Path = typer.Argument(
        ...,
        help="Sequence table (.tsv, samples x sequences) or saved table (.json)",
        exists=True,
    ),
    replicates: Path = typer.Option(
        ...,
        "--replicates", "-r",
        help="Replicate groups (.yaml mapping or sample sheet)",
        exists=True,
    ),
    threshold: Optional[int] = typer.Option(
        None,
        "--threshold", "-t",
        help="Reads a variant needs above this count to be called",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Show per-group results",
    ),
) -> None:
    """Score the replicate repeatability of one sequence table.

    Example:
        ampsweep score seqtab.tsv --replicates samples.tsv

    """
    configure_logging(verbose)
    if threshold is None:
        threshold = load_config().detection_threshold

    try:
        groups = ReplicateGroups.load(replicates)
        table = load_table(table_file)
        value, results = score_table(table, groups, threshold)
    except (OSError, AmpsweepError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if verbose:
        console.print(match_table(results))

    console.print(f"[bold]Repeatability:[/bold] {value:.4f}")
    console.print(f"  [dim]groups:[/dim] {len(results)}")
    console.print(f"  [dim]samples:[/dim] {len(table.samples)}")
    console.print(f"  [dim]variants:[/dim] {len(table.variants)}")
    pooled = pooled_repeatability(results)
    console.print(f"  [dim]pooled (not used for selection):[/dim] {pooled:.4f}")
