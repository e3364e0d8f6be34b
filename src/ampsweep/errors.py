# Copyright (c) Syntropy Systems
"""Error types raised by ampsweep."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ampsweep.models.sweep import Configuration, SweepResult


class AmpsweepError(Exception):
    """Base class for ampsweep errors."""


class ConfigurationError(AmpsweepError):
    """Invalid or missing replicate group, sample reference or sweep setting."""


class DataError(AmpsweepError):
    """Shape or content mismatch between derived tables."""


class PipelineError(AmpsweepError):
    """The external pipeline failed for one configuration."""

    configuration: Configuration | None
    exit_code: int | None

    def __init__(
        self,
        message: str,
        configuration: Configuration | None = None,
        exit_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.configuration = configuration
        self.exit_code = exit_code


class SweepExhaustedError(AmpsweepError):
    """Every configuration of a sweep failed in the pipeline."""

    result: SweepResult

    def __init__(self, result: SweepResult) -> None:
        n = len(result.rows)
        super().__init__(f"All {n} configurations failed; no configuration to choose")
        self.result = result
