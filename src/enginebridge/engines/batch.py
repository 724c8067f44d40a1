"""Batch command engine -- runs each program as one local OS process.

An ``ExecutionEngine`` for engines that only offer a batch command line
(``sas -sysin prog.sas -log prog.log -print prog.lst``).  Every submission
gets its own working folder::

    <work_dir>/<run_id>/
        program.sas          the wrapped program
        batch.log            engine's native log   ({log})
        batch.lst            engine's native list  ({output})
        stdout.txt           child stdout + stderr
        results/             child cwd; files here are result candidates

The argv template is taken from settings; the placeholders ``{program}``,
``{log}``, ``{output}``, ``{results}`` and ``{server}`` are substituted
token by token (no shell is involved).

Exit codes up to ``max_ok_exit_code`` count as success: batch engines use 1
for "completed with warnings".
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

from enginebridge.core.errors import ExecutionError
from enginebridge.core.timestamps import new_id

from .protocol import BaseEngine

logger = logging.getLogger(__name__)


@dataclass
class BatchRun:
    """Handle for one spawned batch process."""

    folder: Path
    argv: list[str]
    id: str = field(default_factory=new_id)
    process: subprocess.Popen | None = None

    @property
    def program_path(self) -> Path:
        return self.folder / "program.sas"

    @property
    def log_path(self) -> Path:
        return self.folder / "batch.log"

    @property
    def output_path(self) -> Path:
        return self.folder / "batch.lst"

    @property
    def stdout_path(self) -> Path:
        return self.folder / "stdout.txt"

    @property
    def results_dir(self) -> Path:
        return self.folder / "results"


def _read(path: Path) -> str | None:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    return text if text.strip() else None


class BatchCommandEngine(BaseEngine):
    """Spawns ``command`` once per submitted program.

    Example:
        >>> engine = BatchCommandEngine(["sas", "-sysin", "{program}"], work_dir)
        >>> run = engine.submit("proc options; run;", None)
        >>> engine.poll_completion(run)
    """

    name = "batch"

    def __init__(
        self,
        command: list[str],
        work_dir: str | Path,
        *,
        max_ok_exit_code: int = 1,
        kill_timeout_seconds: float = 5.0,
    ) -> None:
        if not command:
            raise ValueError("batch command must not be empty")
        self._command = list(command)
        self._work_dir = Path(work_dir)
        self._max_ok = max_ok_exit_code
        self._kill_timeout = kill_timeout_seconds
        self._runs: dict[str, BatchRun] = {}

    def _build_argv(self, run: BatchRun, server: str | None) -> list[str]:
        values = {
            "{program}": str(run.program_path),
            "{log}": str(run.log_path),
            "{output}": str(run.output_path),
            "{results}": str(run.results_dir),
            "{server}": server or "",
        }
        argv = []
        for token in self._command:
            for placeholder, value in values.items():
                token = token.replace(placeholder, value)
            argv.append(token)
        return argv

    def submit(self, code: str, server: str | None) -> BatchRun:
        run_id = new_id()
        run = BatchRun(folder=self._work_dir / run_id, argv=[], id=run_id)
        run.results_dir.mkdir(parents=True, exist_ok=True)
        run.program_path.write_text(code or "", encoding="utf-8")
        run.argv = self._build_argv(run, server)

        try:
            with run.stdout_path.open("wb") as stdout:
                run.process = subprocess.Popen(
                    run.argv,
                    stdout=stdout,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    cwd=str(run.results_dir),
                )
        except FileNotFoundError as exc:
            raise ExecutionError(
                f"Command not found: {run.argv[0]}", cause=exc, run_id=run.id
            ) from exc
        except OSError as exc:
            raise ExecutionError(
                f"Failed to start process: {exc}", cause=exc, run_id=run.id
            ) from exc

        # only live children are tracked for close()
        self._runs = {
            key: r for key, r in self._runs.items() if r.process and r.process.poll() is None
        }
        self._runs[run.id] = run
        logger.debug("Batch run %s started: %s", run.id, run.argv)
        return run

    def poll_completion(self, handle: BatchRun) -> bool:
        return handle.process is None or handle.process.poll() is not None

    def raise_for_status(self, handle: BatchRun) -> None:
        if handle.process is None:
            raise ExecutionError("batch process was never started", run_id=handle.id)
        code = handle.process.returncode
        if code is not None and code > self._max_ok:
            raise ExecutionError(
                f"engine exited with status {code}", run_id=handle.id, exit_code=code
            )

    def read_log(self, handle: BatchRun) -> str | None:
        return _read(handle.log_path) or _read(handle.stdout_path)

    def read_output(self, handle: BatchRun) -> str | None:
        return _read(handle.output_path)

    def result_paths(self, handle: BatchRun) -> list[Path]:
        if not handle.results_dir.is_dir():
            return []
        return sorted(p for p in handle.results_dir.iterdir() if p.is_file())

    def cancel(self, handle: BatchRun) -> None:
        """Terminate the child behind *handle* (SIGTERM, then SIGKILL)."""
        process = handle.process
        if process is None or process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self._kill_timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
        self._runs.pop(handle.id, None)
        logger.debug("Batch run %s terminated", handle.id)

    def close(self) -> None:
        """Terminate any child still running."""
        for run in list(self._runs.values()):
            self.cancel(run)
        self._runs.clear()
