# Copyright (c) Syntropy Systems
"""ampsweep show command."""
from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ampsweep.cli.render import format_score, sweep_table
from ampsweep.config import require_project_dir
from ampsweep.store import load_index, load_session_by_name

console = Console()


def show(
    name: Optional[str] = typer.Argument(
        None,
        help="Sweep name (omit to list sweeps)",
    ),
    group_scores: bool = typer.Option(
        False,
        "--groups", "-g",
        help="Show per-group scores of the chosen configuration",
    ),
) -> None:
    """Show the results of a saved sweep.

    Example:
        ampsweep show dada2-filter

    """
    try:
        project_dir = require_project_dir()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if name is None:
        index = load_index(project_dir)
        if not index.root:
            console.print("[dim]No sweeps found[/dim]")
            return
        table = Table(show_header=True, header_style="bold")
        table.add_column("Name")
        table.add_column("ID", style="dim")
        for sweep_name in index.names():
            table.add_row(sweep_name, index.root[sweep_name])
        console.print(table)
        return

    try:
        session = load_session_by_name(name, project_dir)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/red] Sweep '{name}' not found")
        raise typer.Exit(1) from e

    console.print(f"\n[bold]Sweep: {session.name}[/bold]")
    console.print(f"  [dim]session_id:[/dim] {session.session_id}")
    console.print(f"  [dim]created:[/dim] {session.created_at}")

    if not session.stages:
        console.print("[yellow]No results recorded.[/yellow]")
        return

    for result in session.stages:
        console.print(sweep_table(result))

    if session.chosen is None:
        console.print("[red]No configuration chosen[/red] (every point failed)")
    else:
        console.print(f"\n[green]Chosen:[/green] {session.chosen.label}")
        console.print(f"  [dim]repeatability:[/dim] {format_score(session.chosen_score)}")
        if session.table_file:
            console.print(f"  [dim]table:[/dim] {project_dir / session.table_file}")

    skipped = session.skipped()
    if skipped:
        console.print(f"\n[yellow]Skipped {len(skipped)} configuration(s):[/yellow]")
        for stage_idx, configuration, reason in skipped:
            console.print(f"  stage {stage_idx}: {configuration.label} - {reason}")

    if group_scores and session.chosen is not None:
        row = session.stages[-1].best_row()
        console.print(f"  [dim]groups scored:[/dim] {row.n_groups}")
        table = Table(title="Per-group scores")
        table.add_column("Group")
        table.add_column("Score", justify="right")
        for group, value in sorted(row.group_scores.items()):
            table.add_row(group, format_score(value))
        console.print(table)
