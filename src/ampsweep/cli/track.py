# Copyright (c) Syntropy Systems
"""ampsweep track command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from ampsweep.cli.render import tracking_table
from ampsweep.config import find_project_dir, load_config
from ampsweep.errors import DataError
from ampsweep.pipeline import read_track
from ampsweep.store import load_session_by_name

console = Console()


def track(
    source: str = typer.Argument(
        ...,
        help="Saved sweep name, or path to a track.tsv file",
    ),
    min_retained: Optional[float] = typer.Option(
        None,
        "--min-retained", "-m",
        help="Flag samples keeping less than this fraction of reads",
    ),
) -> None:
    """Show reads surviving each pipeline stage per sample.

    Examples:
        ampsweep track dada2-filter
        ampsweep track work/abc123/truncQ=2/track.tsv

    """
    project_dir = find_project_dir()
    if min_retained is None:
        min_retained = load_config(project_dir).min_retained

    path = Path(source)
    if path.is_file():
        try:
            tracking = read_track(path)
        except (OSError, DataError) as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e
    else:
        if project_dir is None:
            console.print(
                "[red]Error:[/red] No .ampsweep directory found. "
                "Run 'ampsweep init' first."
            )
            raise typer.Exit(1)
        try:
            session = load_session_by_name(source, project_dir)
        except FileNotFoundError as e:
            console.print(f"[red]Error:[/red] Sweep '{source}' not found")
            raise typer.Exit(1) from e
        if session.tracking is None:
            console.print(
                f"[yellow]No read tracking recorded for '{source}'.[/yellow]"
            )
            raise typer.Exit(1)
        tracking = session.tracking

    flagged = tracking.flag_samples(min_retained)
    console.print(tracking_table(tracking, flagged))
    if flagged:
        console.print(
            f"\n[red]{len(flagged)} sample(s) below {min_retained:.0%} retained:[/red] "
            + ", ".join(flagged)
        )
