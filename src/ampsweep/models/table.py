# Copyright (c) Syntropy Systems
"""Sequence-variant abundance table."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar, cast

from pydantic import ConfigDict, Field, field_validator

from ampsweep.errors import ConfigurationError, DataError

from .base import AmpsweepBaseModel
from .tracking import ReadTrackingTable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path


class AbundanceTable(AmpsweepBaseModel):
    """Read counts keyed by sample id, then by variant sequence.

    Variants are keyed by their nucleotide sequence so identical sequences
    compare equal across samples and across configurations. Zero counts are
    dropped on construction.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", frozen=True)

    counts: dict[str, dict[str, int]] = Field(default_factory=dict)

    @field_validator("counts", mode="before")
    @classmethod
    def _check_counts(cls, value: object) -> dict[str, dict[str, int]]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            msg = "Abundance counts must be a mapping of sample -> {sequence: count}"
            raise DataError(msg)
        cleaned: dict[str, dict[str, int]] = {}
        for sample, row in cast("dict[str, object]", value).items():
            if not isinstance(row, dict):
                msg = f"Counts for sample '{sample}' must be a mapping"
                raise DataError(msg)
            sample_counts: dict[str, int] = {}
            for seq, count in cast("dict[str, object]", row).items():
                if isinstance(count, bool) or not isinstance(count, int):
                    msg = f"Count for sample '{sample}' must be an integer, got {count!r}"
                    raise DataError(msg)
                if count < 0:
                    msg = f"Negative count {count} for sample '{sample}'"
                    raise DataError(msg)
                if count:
                    sample_counts[str(seq)] = count
            cleaned[str(sample)] = sample_counts
        return cleaned

    @classmethod
    def from_matrix(
        cls,
        samples: Sequence[str],
        sequences: Sequence[str],
        matrix: Sequence[Sequence[int]],
    ) -> AbundanceTable:
        """Build a table from a samples x sequences count matrix."""
        if len(matrix) != len(samples):
            msg = f"Matrix has {len(matrix)} rows for {len(samples)} samples"
            raise DataError(msg)
        if len(set(samples)) != len(samples):
            msg = "Duplicate sample ids in abundance matrix"
            raise DataError(msg)

        counts: dict[str, dict[str, int]] = {}
        for sample, row in zip(samples, matrix):
            if len(row) != len(sequences):
                msg = (
                    f"Row for sample '{sample}' has {len(row)} counts "
                    f"for {len(sequences)} sequences"
                )
                raise DataError(msg)
            sample_counts: dict[str, int] = {}
            for seq, count in zip(sequences, row):
                # Same sequence may appear twice after trimming; collapse it
                sample_counts[seq] = sample_counts.get(seq, 0) + count
            counts[sample] = sample_counts
        return cls(counts=counts)

    @property
    def samples(self) -> tuple[str, ...]:
        """Sample ids in table order."""
        return tuple(self.counts)

    @property
    def variants(self) -> tuple[str, ...]:
        """All sequences with a nonzero count in any sample, sorted."""
        seen: set[str] = set()
        for row in self.counts.values():
            seen.update(row)
        return tuple(sorted(seen))

    def sample_counts(self, sample: str) -> Mapping[str, int]:
        """Nonzero counts for one sample."""
        if sample not in self.counts:
            msg = f"Sample '{sample}' is not in the abundance table"
            raise ConfigurationError(msg)
        return self.counts[sample]

    def count(self, sample: str, sequence: str) -> int:
        """Reads of `sequence` in `sample` (0 when absent)."""
        return self.sample_counts(sample).get(sequence, 0)

    def presence(self, sample: str, threshold: int = 0) -> frozenset[str]:
        """Sequences called in `sample`: count strictly above `threshold`."""
        return frozenset(
            seq for seq, n in self.sample_counts(sample).items() if n > threshold
        )

    def sample_totals(self) -> dict[str, int]:
        """Total reads per sample."""
        return {sample: sum(row.values()) for sample, row in self.counts.items()}

    @classmethod
    def load(cls, path: Path) -> AbundanceTable:
        """Load a table from JSON file."""
        return cls.model_validate_json(path.read_text())

    def save(self, path: Path) -> None:
        """Save the table to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        _ = path.write_text(self.model_dump_json(indent=2))


class PipelineOutput(AmpsweepBaseModel):
    """What one pipeline execution hands back to the sweep."""

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore", frozen=True)

    table: AbundanceTable
    tracking: ReadTrackingTable | None = None
