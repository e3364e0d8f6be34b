# Copyright (c) Syntropy Systems
"""ampsweep sweep command."""
from __future__ import annotations

from pathlib import Path
from typing import Optional, cast

import typer
import yaml
from rich.console import Console
from rich.table import Table

from ampsweep.cli.render import (
    configure_logging,
    format_score,
    sweep_table,
    tracking_table,
)
from ampsweep.config import get_work_dir, load_config, require_project_dir
from ampsweep.errors import AmpsweepError, SweepExhaustedError
from ampsweep.models.base import JSONValue
from ampsweep.models.sweep import SweepResult, SweepRow
from ampsweep.pipeline import CommandPipeline
from ampsweep.replicates import ReplicateGroups
from ampsweep.store import create_session, save_best_table
from ampsweep.sweep import SweepConfig, generate_grid, run_staged_sweep

console = Console()


def _print_row(row: SweepRow) -> None:
    if row.score is None:
        console.print(
            f"  [red]skip[/red] {row.configuration.label} [dim]({row.error})[/dim]"
        )
    else:
        console.print(f"  [green]done[/green] {row.configuration.label} {row.score:.4f}")


def sweep(  # noqa: PLR0913, PLR0915
    config_file: Path = typer.Argument(
        ...,
        help="Path to sweep configuration YAML file",
        exists=True,
    ),
    replicates: Optional[Path] = typer.Option(
        None,
        "--replicates", "-r",
        help="Replicate groups (overrides 'replicates' in config)",
    ),
    name: Optional[str] = typer.Option(
        None,
        "--name",
        help="Name to save the sweep under (overrides name in config)",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers", "-w",
        help="Configurations to run at once",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run", "-n",
        help="Preview the grid without running the pipeline",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Log pipeline runs and scores",
    ),
) -> None:
    r"""Run the pipeline over a parameter grid and keep the most repeatable result.

    Example sweep.yaml:

    \b
        name: dada2-filter
        pipeline: Rscript dada2.R --truncq {{truncQ}} --maxee {{maxEE}} --out {{outdir}}
        replicates: samples.tsv
        fixed:
          truncQ: 2
          maxEE: 2
        parameters:
          truncQ:
            values: [2, 5, 10, 15]
          maxEE:
            values: [1, 2, 3, 5]
        stages:
          - [truncQ]
          - [maxEE]
    """
    configure_logging(verbose)

    try:
        project_dir = require_project_dir()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    project_config = load_config(project_dir)

    try:
        sweep_config = SweepConfig.from_yaml(config_file)
        stages = sweep_config.stage_parameters()
        preview = generate_grid(stages[0], sweep_config.fixed)
    except (OSError, yaml.YAMLError, AmpsweepError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from e

    replicates_path = replicates
    if replicates_path is None and sweep_config.replicates:
        replicates_path = config_file.parent / sweep_config.replicates
    if replicates_path is None:
        console.print(
            "[red]Error:[/red] No replicate groups given. "
            "Use --replicates or set 'replicates' in the sweep config."
        )
        raise typer.Exit(1)

    try:
        groups = ReplicateGroups.load(replicates_path)
    except (OSError, yaml.YAMLError, AmpsweepError) as e:
        console.print(f"[red]Error loading replicates:[/red] {e}")
        raise typer.Exit(1) from e

    detection = (
        sweep_config.detection_threshold
        if sweep_config.detection_threshold is not None
        else project_config.detection_threshold
    )
    max_workers = workers or sweep_config.max_workers or project_config.max_workers
    sweep_name = name or sweep_config.name or "sweep"

    # Display plan
    table = Table(title=f"Sweep: {sweep_name}")
    table.add_column("Stage", style="dim")
    table.add_column("Parameters")
    table.add_column("Points", justify="right")
    for i, stage in enumerate(stages):
        params_str = ", ".join(
            f"{k}={spec.get('values', [])}" for k, spec in stage.items()
        )
        table.add_row(str(i), params_str, str(len(generate_grid(stage))))

    console.print(table)
    console.print(f"  [dim]replicate groups:[/dim] {len(groups)}")
    console.print(f"  [dim]detection threshold:[/dim] {detection}")
    console.print(f"  [dim]workers:[/dim] {max_workers}")
    console.print(f"  [dim]first point:[/dim] {preview[0].label}")

    if dry_run:
        console.print("\n[yellow]Dry run - pipeline not started[/yellow]")
        return

    settings = cast(
        "dict[str, JSONValue]",
        {
            "config_file": str(config_file),
            "pipeline": sweep_config.pipeline,
            "parameters": sweep_config.parameters,
            "fixed": sweep_config.fixed,
            "stages": sweep_config.stages,
            "replicates": str(replicates_path),
            "detection_threshold": detection,
            "max_workers": max_workers,
        },
    )
    session = create_session(sweep_name, project_dir, settings)

    pipeline = CommandPipeline(
        sweep_config.pipeline,
        output_root=get_work_dir(project_dir, project_config) / session.session_id,
        workdir=Path.cwd(),
    )

    completed: list[SweepResult] = []
    exhausted = False
    try:
        _ = run_staged_sweep(
            stages,
            pipeline,
            groups,
            fixed=sweep_config.fixed,
            detection=detection,
            max_workers=max_workers,
            name=sweep_name,
            on_result=_print_row,
            on_stage=completed.append,
        )
    except SweepExhaustedError as e:
        completed.append(e.result)
        exhausted = True
    except AmpsweepError as e:
        console.print(f"[red]Error:[/red] {e}")
        session.stages = completed
        session.save()
        raise typer.Exit(1) from e

    session.stages = completed
    for result in completed:
        console.print(sweep_table(result))

    if exhausted:
        session.save()
        console.print(
            "\n[red]Error:[/red] every configuration of a stage failed; "
            "nothing chosen"
        )
        raise typer.Exit(1)

    final = completed[-1]
    best = final.best_row()
    session.chosen = best.configuration
    session.chosen_score = best.score

    output = final.best_output
    if output is not None:
        table_path = save_best_table(session, output.table, project_dir)
        session.tracking = output.tracking
        console.print(f"  [dim]table:[/dim] {table_path}")
    session.save()

    console.print(f"\n[green]Chosen:[/green] {best.configuration.label}")
    console.print(f"  [dim]repeatability:[/dim] {format_score(best.score)}")

    skipped = session.skipped()
    if skipped:
        console.print(f"\n[yellow]Skipped {len(skipped)} configuration(s):[/yellow]")
        for stage_idx, configuration, reason in skipped:
            console.print(f"  stage {stage_idx}: {configuration.label} - {reason}")

    if session.tracking is not None:
        flagged = session.tracking.flag_samples(project_config.min_retained)
        console.print(tracking_table(session.tracking, flagged))

    console.print(f"\nShow again: [cyan]ampsweep show {sweep_name}[/cyan]")
