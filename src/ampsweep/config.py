# Copyright (c) Syntropy Systems
"""Configuration management for ampsweep."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

PROJECT_DIR_NAME = ".ampsweep"


@dataclass
class AmpsweepConfig:
    """Project-wide defaults; sweep files may override them."""

    # Reads a variant needs above this count to be called in a sample
    detection_threshold: int = 0

    # Configurations evaluated at once (1 = sequential)
    max_workers: int = 1

    # Pipeline scratch space, relative to the project root
    workdir: str = "work"

    # Samples keeping less than this fraction of reads get flagged
    min_retained: float = 0.5


def find_project_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .ampsweep directory by walking up from start_path.

    Returns None if no .ampsweep directory is found.
    """
    start = (start_path or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        project_dir = directory / PROJECT_DIR_NAME
        if project_dir.is_dir():
            return project_dir
    return None


def get_global_config_dir() -> Path:
    """Get the global ampsweep config directory (~/.ampsweep)."""
    return Path.home() / PROJECT_DIR_NAME


def load_config(project_dir: Path | None = None) -> AmpsweepConfig:
    """Load configuration from .ampsweep/config.yaml or defaults.

    Looks for config in:
    1. Provided project_dir
    2. Nearest .ampsweep directory walking up
    3. ~/.ampsweep/config.yaml
    4. Defaults
    """
    config = AmpsweepConfig()

    config_path = None

    if project_dir is not None:
        config_path = project_dir / "config.yaml"
    else:
        found_dir = find_project_dir()
        if found_dir is not None:
            config_path = found_dir / "config.yaml"
        else:
            global_config = get_global_config_dir() / "config.yaml"
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})

        detection_threshold = data.get("detection_threshold")
        if isinstance(detection_threshold, (int, float)):
            config.detection_threshold = int(detection_threshold)
        max_workers = data.get("max_workers")
        if isinstance(max_workers, (int, float)):
            config.max_workers = max(1, int(max_workers))
        workdir = data.get("workdir")
        if isinstance(workdir, str) and workdir:
            config.workdir = workdir
        min_retained = data.get("min_retained")
        if isinstance(min_retained, (int, float)):
            config.min_retained = float(min_retained)

    return config


def get_sweeps_dir(project_dir: Path) -> Path:
    """Get the directory holding saved sweep sessions."""
    return project_dir / "sweeps"


def get_work_dir(project_dir: Path, config: AmpsweepConfig) -> Path:
    """Get the pipeline scratch directory."""
    workdir = Path(config.workdir)
    if workdir.is_absolute():
        return workdir
    return project_dir.parent / workdir


def require_project_dir() -> Path:
    """Get the ampsweep directory or raise an error if not found."""
    project_dir = find_project_dir()
    if project_dir is None:
        msg = "No .ampsweep directory found. Run 'ampsweep init' first."
        raise RuntimeError(msg)
    return project_dir
