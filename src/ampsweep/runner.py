# Copyright (c) Syntropy Systems
"""Blocking subprocess runner for pipeline commands."""
from __future__ import annotations

import contextlib
import ctypes
import logging
import os
import shlex
import signal
import subprocess
import sys
import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

logger = logging.getLogger(__name__)

LOG_FILE = "output.log"


def setup_pdeathsig() -> None:
    """Kill the pipeline if the sweep process dies. Linux only."""
    if sys.platform != "linux":
        return
    try:
        libc = ctypes.CDLL("libc.so.6", use_errno=True)
        pr_set_pdeathsig = 1
        libc.prctl(pr_set_pdeathsig, signal.SIGKILL)
    except (AttributeError, OSError):
        return


def child_setup_hook() -> Callable[[], None] | None:
    """`preexec_fn` for pipeline children, or None where it is unsafe.

    A `preexec_fn` can deadlock the child when other threads are running,
    so concurrent sweeps rely on the process group alone.
    """
    if sys.platform != "linux" or threading.active_count() > 1:
        return None
    return setup_pdeathsig


def _stop_group(process: subprocess.Popen[bytes], grace_period: float) -> None:
    """SIGTERM the pipeline's process group, then SIGKILL stragglers."""
    try:
        pgid = os.getpgid(process.pid)
    except OSError:
        return

    with contextlib.suppress(OSError):
        os.killpg(pgid, signal.SIGTERM)

    deadline = time.monotonic() + grace_period
    while time.monotonic() < deadline:
        if process.poll() is not None:
            return
        time.sleep(0.1)

    with contextlib.suppress(OSError):
        os.killpg(pgid, signal.SIGKILL)
    with contextlib.suppress(subprocess.TimeoutExpired):
        _ = process.wait(timeout=5.0)


class PipelineRunner:
    """One pipeline invocation inside its configuration's scratch directory.

    The command runs without a shell in its own session, with stdout and
    stderr captured to ``output.log`` in `run_dir`. If the sweep is
    interrupted while waiting, the whole process group is stopped before
    the interrupt propagates; R scripts commonly fork helpers that would
    otherwise keep running.
    """

    command_argv: list[str]
    workdir: Path
    run_dir: Path
    env: dict[str, str]
    grace_period: float
    pid: int | None
    exit_code: int | None
    elapsed: float | None

    def __init__(
        self,
        command_argv: list[str],
        workdir: Path,
        run_dir: Path,
        env: dict[str, str] | None = None,
        grace_period: float = 10.0,
    ) -> None:
        self.command_argv = list(command_argv)
        self.workdir = workdir
        self.run_dir = run_dir
        self.env = {**os.environ, **(env or {})}
        self.grace_period = grace_period
        self.pid = None
        self.exit_code = None
        self.elapsed = None

    @property
    def log_path(self) -> Path:
        """Captured stdout and stderr of the command."""
        return self.run_dir / LOG_FILE

    def run(self) -> int:
        """Run the command to completion and return its exit code.

        Raises:
            OSError: the command could not be started.

        """
        self.run_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("Starting %s", shlex.join(self.command_argv))
        started = time.monotonic()

        with self.log_path.open("w") as log:
            process = subprocess.Popen(  # noqa: S603
                self.command_argv,
                stdout=log,
                stderr=subprocess.STDOUT,
                env=self.env,
                cwd=str(self.workdir),
                start_new_session=True,
                preexec_fn=child_setup_hook(),  # noqa: PLW1509
            )
            self.pid = process.pid
            try:
                code = process.wait()
            except BaseException:
                _stop_group(process, self.grace_period)
                raise

        self.exit_code = code
        self.elapsed = time.monotonic() - started
        logger.debug("Pipeline pid %d exited %d after %.1fs", process.pid, code, self.elapsed)
        return code

    def read_output(self, tail: int = 20) -> list[str]:
        """Last `tail` lines of the captured output log."""
        if not self.log_path.exists():
            return []
        lines = self.log_path.read_text(errors="replace").splitlines()
        return lines[-tail:]
