# Copyright (c) Syntropy Systems
"""Pytest fixtures for ampsweep tests."""

import os
import sys
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

# Store original cwd at module load time
_original_cwd = Path.cwd()

# Stand-in for an amplicon pipeline: replicates A1/A2 agree only at minq=20,
# and minq=22 fails as if filtering removed every read.
FAKE_PIPELINE = '''\
import sys
from pathlib import Path

args = dict(zip(sys.argv[1::2], sys.argv[2::2]))
out = Path(args["--out"])
out.mkdir(parents=True, exist_ok=True)
minq = int(args["--minq"])
if minq == 22:
    sys.exit("filtering removed all reads")

seqs = ["ACGTACGT", "TTGACCAA"]
counts = {
    "A1": [10, 5],
    "A2": [8, 4 if minq == 20 else 0],
    "B1": [3, 0],
    "B2": [6, 0],
}
lines = ["sample\\t" + "\\t".join(seqs)]
lines += [s + "\\t" + "\\t".join(str(n) for n in row) for s, row in counts.items()]
(out / "seqtab.tsv").write_text("\\n".join(lines) + "\\n")

track = ["sample\\tinput\\tfiltered\\tdenoisedF\\tdenoisedR\\tmerged\\tnonchim"]
for s in counts:
    track.append(s + "\\t100\\t90\\t80\\t80\\t70\\t60")
(out / "track.tsv").write_text("\\n".join(track) + "\\n")
'''


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def ampsweep_project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary ampsweep project directory."""
    project_dir = temp_dir / ".ampsweep"
    project_dir.mkdir()
    (project_dir / "sweeps").mkdir()

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def fake_pipeline(temp_dir: Path) -> list[str]:
    """Command template running the fake pipeline script."""
    script = temp_dir / "fake_pipeline.py"
    script.write_text(FAKE_PIPELINE)
    return [sys.executable, str(script), "--minq", "{{minq}}", "--out", "{{outdir}}"]


@pytest.fixture
def replicate_sheet(temp_dir: Path) -> Path:
    """Sample sheet declaring groups A (A1, A2) and B (B1, B2)."""
    path = temp_dir / "samples.tsv"
    path.write_text(
        "sample\treplicate_group\tnote\n"
        "A1\tA\tfirst\n"
        "A2\tA\tsecond\n"
        "B1\tB\t\n"
        "B2\tB\t\n"
        "NC\t\tnegative control\n"
    )
    return path
