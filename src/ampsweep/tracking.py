# Copyright (c) Syntropy Systems
"""Read tracking across pipeline stages."""
from __future__ import annotations

from typing import TYPE_CHECKING

from ampsweep.errors import DataError
from ampsweep.models.tracking import STAGES, ReadTrackingRow, ReadTrackingTable

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


def build_read_tracking(
    samples: Sequence[str],
    stage_counts: Mapping[str, Sequence[int]],
    stages: Sequence[str] = STAGES,
) -> ReadTrackingTable:
    """Assemble per-stage read counts into one row per sample.

    `stage_counts` maps each stage name to a vector of counts aligned with
    `samples`. Columns follow `stages` order whatever order the mapping has.
    """
    missing = [stage for stage in stages if stage not in stage_counts]
    if missing:
        msg = f"Read tracking is missing stage(s): {', '.join(missing)}"
        raise DataError(msg)

    for stage in stages:
        if len(stage_counts[stage]) != len(samples):
            msg = (
                f"Stage '{stage}' has {len(stage_counts[stage])} counts "
                f"for {len(samples)} samples"
            )
            raise DataError(msg)

    rows = tuple(
        ReadTrackingRow(
            sample=sample,
            counts=tuple(int(stage_counts[stage][i]) for stage in stages),
        )
        for i, sample in enumerate(samples)
    )
    return ReadTrackingTable(stages=tuple(stages), rows=rows)
