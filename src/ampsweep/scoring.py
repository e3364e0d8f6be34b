# Copyright (c) Syntropy Systems
"""Repeatability scoring of replicate match results."""
from __future__ import annotations

import math
from typing import TYPE_CHECKING

from ampsweep.errors import ConfigurationError
from ampsweep.replicates import match_replicates

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ampsweep.models.sweep import MatchResult
    from ampsweep.models.table import AbundanceTable
    from ampsweep.replicates import Detection, ReplicateGroups


def group_score(result: MatchResult) -> float:
    """Fraction of a group's called variants that every replicate called.

    A group in which no replicate called anything scores 1.0.
    """
    return result.score


def repeatability(results: Sequence[MatchResult]) -> float:
    """Unweighted mean of the per-group scores.

    Each group counts once regardless of its size or how many variants it
    called, so one large group cannot dominate the score.
    """
    if not results:
        msg = "Cannot score repeatability without replicate groups"
        raise ConfigurationError(msg)
    ordered = sorted(results, key=lambda r: r.group)
    return math.fsum(group_score(r) for r in ordered) / len(ordered)


def pooled_repeatability(results: Sequence[MatchResult]) -> float:
    """Matched variants over all called variants, pooled across groups.

    Reported alongside `repeatability` for comparison only; sweeps never
    select on it.
    """
    if not results:
        msg = "Cannot score repeatability without replicate groups"
        raise ConfigurationError(msg)
    matched = sum(len(r.matched) for r in results)
    total = matched + sum(len(r.discordant) for r in results)
    if total == 0:
        return 1.0
    return matched / total


def score_table(
    table: AbundanceTable,
    groups: ReplicateGroups,
    detection: Detection = 0,
) -> tuple[float, list[MatchResult]]:
    """Match and score one abundance table.

    Returns the repeatability score and the per-group match results.
    """
    results = match_replicates(table, groups, detection)
    return repeatability(results), results
