"""
ampsweep - Replicate-driven parameter sweeps for amplicon pipelines.

Tune filtering parameters by how repeatably replicates recover the same
sequence variants.
"""

from ampsweep.errors import (
    ConfigurationError,
    DataError,
    PipelineError,
    SweepExhaustedError,
)
from ampsweep.models.sweep import Configuration, MatchResult, SweepResult, SweepRow
from ampsweep.models.table import AbundanceTable, PipelineOutput
from ampsweep.models.tracking import ReadTrackingTable
from ampsweep.replicates import ReplicateGroups, match_replicates
from ampsweep.scoring import group_score, repeatability, score_table
from ampsweep.sweep import generate_grid, run_staged_sweep, run_sweep
from ampsweep.tracking import build_read_tracking

__version__ = "0.1.0"
__all__ = [
    "AbundanceTable",
    "Configuration",
    "ConfigurationError",
    "DataError",
    "MatchResult",
    "PipelineError",
    "PipelineOutput",
    "ReadTrackingTable",
    "ReplicateGroups",
    "SweepExhaustedError",
    "SweepResult",
    "SweepRow",
    "__version__",
    "build_read_tracking",
    "generate_grid",
    "group_score",
    "match_replicates",
    "repeatability",
    "run_staged_sweep",
    "run_sweep",
    "score_table",
]
