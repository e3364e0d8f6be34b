# Copyright (c) Syntropy Systems
"""Pydantic models for saved sweep sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from pydantic import Field, PrivateAttr, RootModel
from typing_extensions import override

from .base import AmpsweepBaseModel, JSONValue
from .sweep import Configuration, SweepResult
from .tracking import ReadTrackingTable

if TYPE_CHECKING:
    from pathlib import Path


class SweepSession(AmpsweepBaseModel):
    """A finished (or exhausted) sweep with everything needed to report it."""

    session_id: str
    name: str
    settings: dict[str, JSONValue] = Field(default_factory=dict)
    stages: list[SweepResult] = Field(default_factory=list)
    chosen: Configuration | None = None
    chosen_score: float | None = None
    table_file: str | None = None
    tracking: ReadTrackingTable | None = None
    created_at: str = ""

    _path: Path | None = PrivateAttr(default=None)

    @override
    def model_post_init(self, __context: object, /) -> None:
        if not self.created_at:
            self.created_at = datetime.now(timezone.utc).isoformat()

    @classmethod
    def load(cls, path: Path) -> SweepSession:
        """Load a session from JSON file."""
        session = cls.model_validate_json(path.read_text())
        session.set_path(path)
        return session

    def save(self) -> None:
        """Save session to JSON file."""
        if self._path is None:
            msg = "Session path not set"
            raise ValueError(msg)

        self._path.parent.mkdir(parents=True, exist_ok=True)
        _ = self._path.write_text(self.model_dump_json(indent=2))

    def set_path(self, path: Path) -> None:
        """Set the session file path for persistence."""
        self._path = path

    @property
    def path(self) -> Path | None:
        """Session file path, if set."""
        return self._path

    def skipped(self) -> list[tuple[int, Configuration, str]]:
        """(stage, configuration, reason) for every failed point."""
        return [
            (i, configuration, reason)
            for i, stage in enumerate(self.stages)
            for configuration, reason in stage.skipped()
        ]


class SweepIndex(RootModel[dict[str, str]]):
    """Sweep name -> session_id, stored as a plain JSON object."""

    root: dict[str, str] = Field(default_factory=dict)

    def register(self, name: str, session_id: str) -> None:
        """Point `name` at a session, replacing any earlier one."""
        self.root[name] = session_id

    def names(self) -> list[str]:
        """Sweep names in alphabetical order."""
        return sorted(self.root)
