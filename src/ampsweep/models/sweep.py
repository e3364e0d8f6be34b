# Copyright (c) Syntropy Systems
"""Pydantic models for sweep configurations and results."""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from pydantic import Field, PrivateAttr, field_validator

from ampsweep.errors import SweepExhaustedError

from .base import AmpsweepBaseModel, FrozenModel, JSONPrimitive

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .table import PipelineOutput

SCI_NOTATION_THRESHOLD = 1e-4


def format_value(value: JSONPrimitive) -> str:
    """Render a parameter value for display labels."""
    if isinstance(value, float):
        # Use scientific notation for very small values
        if abs(value) < SCI_NOTATION_THRESHOLD and value != 0.0:
            return f"{value:.2e}"
        return str(value)
    return str(value)


class Configuration(FrozenModel):
    """One point of a parameter grid.

    Parameters keep their declared order. Two configurations are equal when
    they hold the same parameter/value pairs in the same order.
    """

    params: tuple[tuple[str, JSONPrimitive], ...] = ()

    @field_validator("params", mode="before")
    @classmethod
    def _coerce_params(cls, value: object) -> object:
        if isinstance(value, dict):
            return tuple(cast("dict[str, JSONPrimitive]", value).items())
        return value

    @classmethod
    def of(
        cls,
        params: Mapping[str, JSONPrimitive] | None = None,
        **kwargs: JSONPrimitive,
    ) -> Configuration:
        """Build a configuration from a mapping and/or keyword arguments."""
        merged: dict[str, JSONPrimitive] = dict(params or {})
        merged.update(kwargs)
        return cls(params=tuple(merged.items()))

    def as_dict(self) -> dict[str, JSONPrimitive]:
        """Parameters as an ordered dict."""
        return dict(self.params)

    def get(self, name: str, default: JSONPrimitive = None) -> JSONPrimitive:
        """Return a parameter value by name."""
        return self.as_dict().get(name, default)

    def with_values(self, overrides: Mapping[str, JSONPrimitive]) -> Configuration:
        """Copy with some parameters replaced or appended."""
        merged = self.as_dict()
        merged.update(overrides)
        return Configuration(params=tuple(merged.items()))

    @property
    def label(self) -> str:
        """Short human-readable form, e.g. ``truncQ=2,maxEE=2``."""
        return ",".join(f"{k}={format_value(v)}" for k, v in self.params)


class MatchResult(FrozenModel):
    """Variants called in all members of a replicate group vs. only some."""

    group: str
    matched: frozenset[str] = frozenset()
    discordant: frozenset[str] = frozenset()

    @property
    def score(self) -> float:
        """|matched| / (|matched| + |discordant|), 1.0 when nothing was called."""
        total = len(self.matched) + len(self.discordant)
        if total == 0:
            return 1.0
        return len(self.matched) / total


class SweepRow(AmpsweepBaseModel):
    """Outcome of one grid point."""

    index: int
    configuration: Configuration
    score: float | None = None
    error: str | None = None
    group_scores: dict[str, float] = Field(default_factory=dict)

    @property
    def n_groups(self) -> int:
        """Number of replicate groups that were scored."""
        return len(self.group_scores)

    @property
    def defined(self) -> bool:
        """Whether the point was scored."""
        return self.score is not None


class SweepResult(AmpsweepBaseModel):
    """Rows of a sweep in grid order."""

    name: str = "sweep"
    rows: list[SweepRow] = Field(default_factory=list)

    _best_output: PipelineOutput | None = PrivateAttr(default=None)

    @property
    def configurations(self) -> list[Configuration]:
        """Configurations in grid order."""
        return [row.configuration for row in self.rows]

    @property
    def scores(self) -> list[float | None]:
        """Scores in grid order; None marks a failed point."""
        return [row.score for row in self.rows]

    def defined(self) -> list[SweepRow]:
        """Rows that produced a score."""
        return [row for row in self.rows if row.score is not None]

    def skipped(self) -> list[tuple[Configuration, str]]:
        """Failed configurations with the reason they were skipped."""
        return [
            (row.configuration, row.error or "unknown error")
            for row in self.rows
            if row.score is None
        ]

    def best_row(self) -> SweepRow:
        """Row with the highest defined score; the earliest row wins ties."""
        best: SweepRow | None = None
        for row in self.rows:
            if row.score is None:
                continue
            if best is None or row.score > cast("float", best.score):
                best = row
        if best is None:
            raise SweepExhaustedError(self)
        return best

    def best(self) -> Configuration:
        """Configuration with the highest defined score."""
        return self.best_row().configuration

    def score_of(self, configuration: Configuration) -> float | None:
        """Look up the score recorded for a configuration."""
        for row in self.rows:
            if row.configuration == configuration:
                return row.score
        msg = f"Configuration {configuration.label} is not part of this sweep"
        raise KeyError(msg)

    @property
    def best_output(self) -> PipelineOutput | None:
        """Pipeline output kept for the best configuration, if any."""
        return self._best_output

    def set_best_output(self, output: PipelineOutput | None) -> None:
        """Attach the pipeline output of the best configuration."""
        self._best_output = output
