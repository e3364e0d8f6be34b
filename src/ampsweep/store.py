# Copyright (c) Syntropy Systems
"""Saved sweep sessions under .ampsweep/sweeps."""
from __future__ import annotations

import random
import string
from typing import TYPE_CHECKING

from ampsweep.config import get_sweeps_dir
from ampsweep.models.session import SweepIndex, SweepSession
from ampsweep.models.table import AbundanceTable

if TYPE_CHECKING:
    from pathlib import Path

    from ampsweep.models.base import JSONValue


def generate_session_id() -> str:
    """Generate a short random session ID."""
    chars = string.ascii_lowercase + string.digits
    return "".join(random.choices(chars, k=6))  # noqa: S311


def get_session_path(session_id: str, project_dir: Path) -> Path:
    """Get path to session file by session_id."""
    return get_sweeps_dir(project_dir) / f"{session_id}.json"


def get_table_path(session_id: str, project_dir: Path) -> Path:
    """Get path to the chosen configuration's abundance table."""
    return get_sweeps_dir(project_dir) / session_id / "best_table.json"


def get_index_path(project_dir: Path) -> Path:
    """Get path to index.json."""
    return get_sweeps_dir(project_dir) / "index.json"


def load_index(project_dir: Path) -> SweepIndex:
    """Load the name -> session_id index; empty when nothing was saved."""
    index_path = get_index_path(project_dir)
    if not index_path.exists():
        return SweepIndex()
    return SweepIndex.model_validate_json(index_path.read_text())


def save_index(project_dir: Path, index: SweepIndex) -> None:
    """Write the name -> session_id index."""
    index_path = get_index_path(project_dir)
    index_path.parent.mkdir(parents=True, exist_ok=True)
    _ = index_path.write_text(index.model_dump_json(indent=2))


def session_exists(name: str, project_dir: Path) -> bool:
    """Check if a sweep with the given name exists."""
    return name in load_index(project_dir).root


def load_session_by_name(name: str, project_dir: Path) -> SweepSession:
    """Load a saved sweep by name."""
    entries = load_index(project_dir).root
    if name not in entries:
        msg = f"Sweep '{name}' not found"
        raise FileNotFoundError(msg)
    return SweepSession.load(get_session_path(entries[name], project_dir))


def load_best_table(session: SweepSession, project_dir: Path) -> AbundanceTable | None:
    """Load the persisted abundance table of the chosen configuration."""
    if session.table_file is None:
        return None
    return AbundanceTable.load(project_dir / session.table_file)


def create_session(
    name: str,
    project_dir: Path,
    settings: dict[str, JSONValue] | None = None,
) -> SweepSession:
    """Create and register a new, empty sweep session.

    Re-using a name points the index at the new session; the old session
    file is kept.
    """
    session = SweepSession(
        session_id=generate_session_id(),
        name=name,
        settings=settings or {},
    )
    session.set_path(get_session_path(session.session_id, project_dir))
    session.save()

    index = load_index(project_dir)
    index.register(name, session.session_id)
    save_index(project_dir, index)

    return session


def save_best_table(
    session: SweepSession, table: AbundanceTable, project_dir: Path
) -> Path:
    """Persist the chosen configuration's table and record it on the session."""
    path = get_table_path(session.session_id, project_dir)
    table.save(path)
    session.table_file = str(path.relative_to(project_dir))
    return path
