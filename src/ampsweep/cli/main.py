# Copyright (c) Syntropy Systems
"""Main CLI entry point for ampsweep."""

import typer

from ampsweep.cli.init_cmd import init
from ampsweep.cli.score import score
from ampsweep.cli.show import show
from ampsweep.cli.sweep import sweep
from ampsweep.cli.track import track

app = typer.Typer(
    name="ampsweep",
    help=(
        "Tune amplicon filtering parameters by replicate repeatability."
    ),
    no_args_is_help=True,
    add_completion=False,
)

# Register commands
_ = app.command()(init)
_ = app.command()(score)
_ = app.command()(sweep)
_ = app.command()(show)
_ = app.command()(track)


if __name__ == "__main__":
    app()
