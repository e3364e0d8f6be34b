# Copyright (c) Syntropy Systems
"""ampsweep init command."""

from dataclasses import asdict
from pathlib import Path

import typer
import yaml
from rich.console import Console

from ampsweep.config import PROJECT_DIR_NAME, AmpsweepConfig, get_sweeps_dir

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new ampsweep project.

    Creates a .ampsweep directory with a default configuration.
    """
    target = path.resolve()
    project_dir = target / PROJECT_DIR_NAME

    if project_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {project_dir}")
        return

    project_dir.mkdir(parents=True)
    sweeps_dir = get_sweeps_dir(project_dir)
    sweeps_dir.mkdir()

    config_path = project_dir / "config.yaml"
    with config_path.open("w") as f:
        yaml.dump(asdict(AmpsweepConfig()), f, default_flow_style=False)

    console.print(f"[green]Initialized ampsweep project:[/green] {project_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]sweeps:[/dim] {sweeps_dir}")
