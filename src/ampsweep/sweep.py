# Copyright (c) Syntropy Systems
"""Sweep configuration, grid generation and the sweep controller."""
from __future__ import annotations

import itertools
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, TypedDict, Union, cast

import yaml
from typing_extensions import TypeAlias

from ampsweep.errors import ConfigurationError, DataError, SweepExhaustedError
from ampsweep.models.sweep import Configuration, SweepResult, SweepRow
from ampsweep.models.table import AbundanceTable, PipelineOutput
from ampsweep.scoring import score_table

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping, Sequence
    from pathlib import Path

    from ampsweep.models.base import JSONPrimitive
    from ampsweep.replicates import Detection, ReplicateGroups

logger = logging.getLogger(__name__)

PipelineCallable: TypeAlias = (
    "Callable[[Configuration], Union[AbundanceTable, PipelineOutput]]"
)
RowCallback: TypeAlias = "Callable[[SweepRow], None]"
StageCallback: TypeAlias = "Callable[[SweepResult], None]"


class SweepParamSpec(TypedDict, total=False):
    """Parameter specification for sweeps."""

    values: list[JSONPrimitive]


def _optional_int(data: Mapping[str, object], key: str, minimum: int) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        msg = f"Sweep config '{key}' must be an integer >= {minimum}, got {value!r}"
        raise ConfigurationError(msg)
    return value


@dataclass
class SweepConfig:
    """Configuration for a parameter sweep."""

    pipeline: list[str]
    parameters: dict[str, SweepParamSpec]
    name: str | None = None
    fixed: dict[str, JSONPrimitive] = field(default_factory=dict)
    stages: list[list[str]] | None = None  # Parameter names swept per stage
    replicates: str | None = None
    detection_threshold: int | None = None
    max_workers: int | None = None

    @classmethod
    def from_yaml(cls, path: Path) -> SweepConfig:
        """Load sweep configuration from YAML file."""
        with path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})

        if "pipeline" not in data:
            msg = "Sweep config must have 'pipeline' field"
            raise ConfigurationError(msg)
        if "parameters" not in data:
            msg = "Sweep config must have 'parameters' field"
            raise ConfigurationError(msg)

        pipeline = data["pipeline"]
        if isinstance(pipeline, str):
            pipeline = pipeline.split()

        config = cls(
            pipeline=[str(arg) for arg in cast("list[object]", pipeline)],
            parameters=cast("dict[str, SweepParamSpec]", data["parameters"]),
            name=cast("Optional[str]", data.get("name")),
            fixed=cast("dict[str, JSONPrimitive]", data.get("fixed") or {}),
            stages=cast("Optional[list[list[str]]]", data.get("stages")),
            replicates=cast("Optional[str]", data.get("replicates")),
            detection_threshold=_optional_int(data, "detection_threshold", minimum=0),
            max_workers=_optional_int(data, "max_workers", minimum=1),
        )
        # Validate stage names now
        _ = config.stage_parameters()
        return config

    def stage_parameters(self) -> list[dict[str, SweepParamSpec]]:
        """Split the swept parameters into the stages they run in.

        Without explicit stages every parameter is swept together.
        """
        if not self.stages:
            return [dict(self.parameters)]

        staged: list[dict[str, SweepParamSpec]] = []
        for i, names in enumerate(self.stages):
            if not names:
                msg = f"Sweep stage {i} lists no parameters"
                raise ConfigurationError(msg)
            stage: dict[str, SweepParamSpec] = {}
            for name in names:
                if name not in self.parameters:
                    msg = f"Sweep stage {i} names unknown parameter '{name}'"
                    raise ConfigurationError(msg)
                stage[name] = self.parameters[name]
            staged.append(stage)
        return staged


def generate_grid_combinations(
    parameters: Mapping[str, SweepParamSpec],
) -> Iterator[dict[str, JSONPrimitive]]:
    """Generate all combinations for a grid sweep.

    Each parameter should have a 'values' key with a list of values.
    """
    param_names: list[str] = []
    param_values: list[list[JSONPrimitive]] = []

    for name, spec in parameters.items():
        if "values" not in spec or not spec["values"]:
            msg = f"Parameter '{name}' must have non-empty 'values' for grid sweep"
            raise ConfigurationError(msg)
        param_names.append(name)
        param_values.append(spec["values"])

    for combo in itertools.product(*param_values):
        yield dict(zip(param_names, combo))


def generate_grid(
    parameters: Mapping[str, SweepParamSpec],
    fixed: Mapping[str, JSONPrimitive] | None = None,
) -> list[Configuration]:
    """Configurations of a grid sweep in declaration order.

    Fixed values are merged into every point; swept values override them.
    """
    base = Configuration.of(fixed)
    return [base.with_values(combo) for combo in generate_grid_combinations(parameters)]


def _as_output(produced: object) -> PipelineOutput:
    if isinstance(produced, PipelineOutput):
        return produced
    if isinstance(produced, AbundanceTable):
        return PipelineOutput(table=produced)
    msg = f"Pipeline returned {type(produced).__name__}, expected an AbundanceTable"
    raise DataError(msg)


def evaluate_point(
    index: int,
    configuration: Configuration,
    run_pipeline: PipelineCallable,
    groups: ReplicateGroups,
    detection: Detection = 0,
) -> tuple[SweepRow, PipelineOutput | None]:
    """Run the pipeline for one configuration and score its table.

    A pipeline failure yields a row without a score. Matching and scoring
    errors are configuration bugs and propagate.
    """
    try:
        produced = run_pipeline(configuration)
    except Exception as e:  # noqa: BLE001
        reason = str(e) or type(e).__name__
        logger.warning("Skipping %s: %s", configuration.label, reason)
        return SweepRow(index=index, configuration=configuration, error=reason), None

    output = _as_output(produced)
    score, results = score_table(output.table, groups, detection)
    logger.info("Scored %s: repeatability=%.4f", configuration.label, score)
    row = SweepRow(
        index=index,
        configuration=configuration,
        score=score,
        group_scores={r.group: r.score for r in results},
    )
    return row, output


def run_sweep(  # noqa: PLR0913
    grid: Sequence[Configuration],
    run_pipeline: PipelineCallable,
    groups: ReplicateGroups,
    *,
    detection: Detection = 0,
    max_workers: int = 1,
    name: str = "sweep",
    on_result: RowCallback | None = None,
) -> SweepResult:
    """Evaluate every configuration of `grid` and collect the scores.

    Points run one after another unless `max_workers` > 1, in which case
    they run on a thread pool; the pipeline must then keep each
    configuration's working files apart. Rows always come back in grid
    order. Only the pipeline output of the best point is kept.

    Raises:
        ConfigurationError: the grid is empty or holds duplicates, or the
            replicate groups do not fit a produced table.
        SweepExhaustedError: every configuration failed.

    """
    if not grid:
        msg = "Sweep grid is empty"
        raise ConfigurationError(msg)
    if len(set(grid)) != len(grid):
        msg = "Sweep grid contains duplicate configurations"
        raise ConfigurationError(msg)

    result = SweepResult(name=name)
    best_output: PipelineOutput | None = None
    best_score: float | None = None

    def record(row: SweepRow, output: PipelineOutput | None) -> None:
        nonlocal best_output, best_score
        result.rows.append(row)
        # Strictly greater keeps the earliest point on ties
        if row.score is not None and (best_score is None or row.score > best_score):
            best_score = row.score
            best_output = output
        if on_result is not None:
            on_result(row)

    if max_workers <= 1:
        for i, configuration in enumerate(grid):
            record(*evaluate_point(i, configuration, run_pipeline, groups, detection))
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [
                pool.submit(evaluate_point, i, c, run_pipeline, groups, detection)
                for i, c in enumerate(grid)
            ]
            for future in futures:
                record(*future.result())

    if best_score is None:
        raise SweepExhaustedError(result)

    result.set_best_output(best_output)
    skipped = len(result.rows) - len(result.defined())
    best = result.best_row()
    logger.info(
        "Sweep %s: best %s (%.4f), %d of %d skipped",
        name,
        best.configuration.label,
        best_score,
        skipped,
        len(result.rows),
    )
    return result


def run_staged_sweep(  # noqa: PLR0913
    stages: Sequence[Mapping[str, SweepParamSpec]],
    run_pipeline: PipelineCallable,
    groups: ReplicateGroups,
    *,
    fixed: Mapping[str, JSONPrimitive] | None = None,
    detection: Detection = 0,
    max_workers: int = 1,
    name: str = "sweep",
    on_result: RowCallback | None = None,
    on_stage: StageCallback | None = None,
) -> list[SweepResult]:
    """Sweep stage after stage, fixing each stage's best values for the next.

    For example a truncation-quality stage followed by an expected-error
    stage that runs with the best truncation value. The best configuration
    of the last stage is the overall choice.

    `on_stage` receives each finished stage, so callers keep the earlier
    stages when a later one raises `SweepExhaustedError`.
    """
    if not stages:
        msg = "Staged sweep needs at least one stage"
        raise ConfigurationError(msg)

    current: dict[str, JSONPrimitive] = dict(fixed or {})
    results: list[SweepResult] = []
    for i, parameters in enumerate(stages):
        stage_name = name if len(stages) == 1 else f"{name}-stage{i}"
        grid = generate_grid(parameters, current)
        result = run_sweep(
            grid,
            run_pipeline,
            groups,
            detection=detection,
            max_workers=max_workers,
            name=stage_name,
            on_result=on_result,
        )
        results.append(result)
        if on_stage is not None:
            on_stage(result)
        current = result.best().as_dict()
    return results
