# Copyright (c) Syntropy Systems
"""Pydantic model for per-sample read tracking."""

from __future__ import annotations

from typing import ClassVar

from pydantic import ConfigDict, Field

from .base import AmpsweepBaseModel

# Pipeline stages in the order reads pass through them
STAGES: tuple[str, ...] = (
    "input",
    "filtered",
    "denoisedF",
    "denoisedR",
    "merged",
    "nonchim",
)


class ReadTrackingRow(AmpsweepBaseModel):
    """Reads surviving each stage for one sample."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", frozen=True)

    sample: str
    counts: tuple[int, ...]

    def retained_fraction(self) -> float | None:
        """Fraction of first-stage reads left after the last stage."""
        initial = self.counts[0]
        if initial == 0:
            return None
        return self.counts[-1] / initial


class ReadTrackingTable(AmpsweepBaseModel):
    """One row per sample, one column per stage in `STAGES` order."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", frozen=True)

    stages: tuple[str, ...] = STAGES
    rows: tuple[ReadTrackingRow, ...] = Field(default_factory=tuple)

    @property
    def samples(self) -> tuple[str, ...]:
        """Sample ids in row order."""
        return tuple(row.sample for row in self.rows)

    def row(self, sample: str) -> ReadTrackingRow:
        """Return the row for a sample."""
        for row in self.rows:
            if row.sample == sample:
                return row
        msg = f"Sample '{sample}' not in read tracking table"
        raise KeyError(msg)

    def count(self, sample: str, stage: str) -> int:
        """Reads of `sample` surviving `stage`."""
        return self.row(sample).counts[self.stages.index(stage)]

    def retained_fraction(self, sample: str) -> float | None:
        """Fraction of a sample's input reads surviving every stage."""
        return self.row(sample).retained_fraction()

    def flag_samples(self, min_retained: float) -> list[str]:
        """Samples whose retained fraction falls below `min_retained`.

        Samples with no input reads are always flagged.
        """
        flagged: list[str] = []
        for row in self.rows:
            fraction = row.retained_fraction()
            if fraction is None or fraction < min_retained:
                flagged.append(row.sample)
        return flagged

    def to_rows(self) -> list[dict[str, str | int]]:
        """Rows as plain dicts keyed by `sample` and stage names."""
        records: list[dict[str, str | int]] = []
        for row in self.rows:
            record: dict[str, str | int] = {"sample": row.sample}
            record.update(zip(self.stages, row.counts))
            records.append(record)
        return records
