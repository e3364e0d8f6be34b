# Copyright (c) Syntropy Systems
"""Run an external amplicon pipeline for one configuration.

The pipeline is any command (typically an ``Rscript`` wrapper around
primer trimming, filtering, error learning, denoising, merging and
chimera removal) that writes into the output directory it is given:

- ``seqtab.tsv``: header ``sample<TAB>SEQ1<TAB>SEQ2...``, then one row per
  sample with integer counts.
- ``track.tsv`` (optional): header ``sample<TAB>input<TAB>filtered...``
  with one column per tracked stage.

Parameters reach the command through ``{{name}}`` placeholders in its argv
and through ``AMPSWEEP_PARAM_<NAME>`` environment variables. ``{{outdir}}``
expands to the configuration's output directory.
"""
from __future__ import annotations

import csv
import hashlib
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from ampsweep.errors import DataError, PipelineError
from ampsweep.models.table import AbundanceTable, PipelineOutput
from ampsweep.models.tracking import STAGES
from ampsweep.runner import PipelineRunner
from ampsweep.tracking import build_read_tracking

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ampsweep.models.base import JSONPrimitive
    from ampsweep.models.sweep import Configuration
    from ampsweep.models.tracking import ReadTrackingTable

logger = logging.getLogger(__name__)

SEQTAB_FILE = "seqtab.tsv"
TRACK_FILE = "track.tsv"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.=-]+")


def substitute_templates(
    argv: list[str], values: Mapping[str, str]
) -> list[str]:
    """Replace ``{{key}}`` placeholders in command argv."""
    result: list[str] = []
    for arg in argv:
        for key, value in values.items():
            arg = arg.replace(f"{{{{{key}}}}}", value)  # noqa: PLW2901
        result.append(arg)
    return result


def command_value(value: JSONPrimitive) -> str:
    """Exact text of a parameter value for argv and the environment."""
    return str(value)


def output_dir_name(configuration: Configuration) -> str:
    """Filesystem-safe directory name, unique per configuration.

    The readable part may collide after sanitizing; the digest of the exact
    parameters keeps names apart.
    """
    readable = "_".join(f"{k}={command_value(v)}" for k, v in configuration.params)
    readable = _UNSAFE_CHARS.sub("_", readable) or "default"
    digest = hashlib.sha256(configuration.model_dump_json().encode()).hexdigest()[:8]
    return f"{readable}-{digest}"


def _parse_count(value: str, where: str) -> int:
    try:
        return int(value)
    except ValueError:
        # R writes whole numbers as 12.0 on some platforms
        try:
            number = float(value)
        except ValueError:
            number = None
        if number is None or not number.is_integer():
            msg = f"Non-integer count {value!r} in {where}"
            raise DataError(msg) from None
        return int(number)


def read_seqtab(path: Path) -> AbundanceTable:
    """Read a samples x sequences count table."""
    with path.open(newline="") as f:
        reader = csv.reader(f, delimiter="\t")
        header = next(reader, None)
        if not header:
            msg = f"Sequence table {path} is empty"
            raise DataError(msg)
        sequences = [seq.strip().upper() for seq in header[1:]]

        samples: list[str] = []
        matrix: list[list[int]] = []
        for line_no, row in enumerate(reader, start=2):
            if not row:
                continue
            samples.append(row[0].strip())
            matrix.append(
                [_parse_count(cell, f"{path}:{line_no}") for cell in row[1:]]
            )

    return AbundanceTable.from_matrix(samples, sequences, matrix)


def read_track(path: Path) -> ReadTrackingTable:
    """Read a per-sample stage count table."""
    with path.open(newline="") as f:
        reader = csv.DictReader(f, delimiter="\t")
        fields = reader.fieldnames or []
        if not fields:
            msg = f"Read tracking table {path} is empty"
            raise DataError(msg)
        sample_field = fields[0]

        samples: list[str] = []
        stage_counts: dict[str, list[int]] = {
            stage: [] for stage in fields[1:] if stage in STAGES
        }
        for line_no, row in enumerate(reader, start=2):
            samples.append((row.get(sample_field) or "").strip())
            for stage, counts in stage_counts.items():
                counts.append(_parse_count(row.get(stage) or "", f"{path}:{line_no}"))

    return build_read_tracking(samples, stage_counts)


class CommandPipeline:
    """Pipeline callable backed by an external command.

    Each configuration runs in ``<output_root>/<name>-<digest>``; distinct
    configurations never share a directory, so instances may be used from
    a concurrent sweep.
    """

    command_argv: list[str]
    output_root: Path
    workdir: Path
    env: dict[str, str]

    def __init__(
        self,
        command_argv: list[str],
        output_root: Path,
        workdir: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        if not command_argv:
            msg = "Pipeline command is empty"
            raise ValueError(msg)
        self.command_argv = list(command_argv)
        self.output_root = output_root
        self.workdir = workdir or Path.cwd()
        self.env = dict(env or {})

    def output_dir(self, configuration: Configuration) -> Path:
        """Directory holding one configuration's pipeline outputs."""
        return self.output_root / output_dir_name(configuration)

    def command_for(self, configuration: Configuration) -> list[str]:
        """Command argv with placeholders filled in for a configuration."""
        values = {k: command_value(v) for k, v in configuration.params}
        values["outdir"] = str(self.output_dir(configuration))
        return substitute_templates(self.command_argv, values)

    def __call__(self, configuration: Configuration) -> PipelineOutput:
        """Run the pipeline and read back its tables."""
        out_dir = self.output_dir(configuration)
        env = dict(self.env)
        env["AMPSWEEP_OUTDIR"] = str(out_dir)
        for key, value in configuration.params:
            env[f"AMPSWEEP_PARAM_{key.upper()}"] = command_value(value)

        runner = PipelineRunner(
            self.command_for(configuration),
            workdir=self.workdir,
            run_dir=out_dir,
            env=env,
        )
        logger.info("Running pipeline for %s in %s", configuration.label, out_dir)
        try:
            exit_code = runner.run()
        except OSError as e:
            msg = f"Could not start pipeline: {e}"
            raise PipelineError(msg, configuration) from e

        if exit_code != 0:
            tail = runner.read_output(tail=5)
            detail = f": {tail[-1]}" if tail else ""
            msg = f"Pipeline exited with code {exit_code}{detail}"
            raise PipelineError(msg, configuration, exit_code)

        seqtab_path = out_dir / SEQTAB_FILE
        if not seqtab_path.exists():
            msg = f"Pipeline wrote no {SEQTAB_FILE} in {out_dir}"
            raise PipelineError(msg, configuration, exit_code)

        try:
            table = read_seqtab(seqtab_path)
            track_path = out_dir / TRACK_FILE
            tracking = read_track(track_path) if track_path.exists() else None
        except DataError as e:
            # Malformed output fails this configuration only
            msg = f"Unreadable pipeline output: {e}"
            raise PipelineError(msg, configuration, exit_code) from e

        return PipelineOutput(table=table, tracking=tracking)
