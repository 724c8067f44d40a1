"""Execution worker -- runs submitted programs against the engine.

Usage::

    worker = ExecutionWorker(engine, registry, jobs_root=settings.jobs_root)

    job = worker.submit(ProgramRequest(code="proc print data=sashelp.class; run;"))
    job.status                      # terminal: completed / failed / timed_out

    queued = worker.submit_async(ProgramRequest(code=...))
    queued.status                   # queued -- poll GET /jobs/{id}

Execute-and-finalize (identical for both paths):
    1. resolve the capture descriptor
    2. wrap the program so log/listing go to the capture targets
    3. acquire the execution gate (FIFO)
    4. ``engine.submit`` on the engine-affinity thread
    5. poll ``engine.poll_completion`` every ``poll_interval`` until done,
       the ceiling elapses or the cancellation signal fires, republishing
       partial log/output on every tick
    6. on ceiling or cancellation, ``engine.cancel`` the run; then stamp
       ``completed_at`` and release the gate
    7. final capture read (engine-side captures fetched first)
    8. harvest artifacts
    9. finalize the record: completed / failed / timed_out

Failure policy:
    Nothing raised inside steps 1-6 escapes; it becomes ``failed`` (or
    ``timed_out`` for the ceiling) with the exception text as ``error``.  When
    no log was captured the formatted traceback is stored as the log.  Only
    request validation raises to the caller.

Architecture:

    .. code-block:: text

        request / pool thread                 engine-affinity thread
        ─────────────────────                 ──────────────────────
        resolve_descriptor ─────────────────▶ create_capture_targets
        gate.hold(job_id)
          submit ───────────────────────────▶ engine.submit
          loop: poll + publish ─────────────▶ engine.poll_completion
          ceiling or cancel ────────────────▶ engine.cancel
        (gate released)
        fetch + read capture ───────────────▶ fetch_capture_files, read_log
        harvest, finalize registry record

Manifesto:
    The engine holds one session and runs one program at a time.  A job
    that gives up on the engine (ceiling or shutdown) abandons its run
    before the gate moves on, so the next program never overlaps it.

Tags:
    engine-bridge, execution, worker, gate, polling, cancellation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
import time
import traceback
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from enginebridge.core.errors import (
    CancelledError,
    CaptureTimeoutError,
    JobNotFoundError,
    ValidationError,
)
from enginebridge.core.logging import LogContext, get_logger
from enginebridge.core.timestamps import utc_now
from enginebridge.engines.protocol import ExecutionEngine

from .affinity import EngineAffinity
from .artifacts import ArtifactHarvester
from .capture import CaptureChannel, first_non_empty, resolve_descriptor, wrap_program
from .gate import ExecutionGate
from .models import Job, JobStatus
from .registry import JobRegistry

log = get_logger(__name__)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


@dataclass
class ProgramRequest:
    """A program submission as received from a client."""

    code: str
    server: str | None = None
    server_log_path: str | None = None
    server_output_path: str | None = None

    def validate(self) -> None:
        """Raise :class:`ValidationError` naming the offending field."""
        if _blank(self.code):
            raise ValidationError("code is required", field="code")
        if _blank(self.server_log_path) != _blank(self.server_output_path):
            raise ValidationError(
                "serverLogPath and serverOutputPath must be provided together",
                field="serverLogPath" if _blank(self.server_log_path) else "serverOutputPath",
            )

    @property
    def target_server(self) -> str | None:
        return None if _blank(self.server) else self.server.strip()


class ExecutionWorker:
    """Owns the submit paths and the per-job execution flow.

    Thread-safety:
        Any number of request threads may call :meth:`submit` and
        :meth:`submit_async`; the gate serializes engine use and the registry
        serializes record updates.  Async flows run on a ``ThreadPoolExecutor``
        of ``max_background_jobs`` threads.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        registry: JobRegistry,
        *,
        jobs_root: Path,
        gate: ExecutionGate | None = None,
        affinity: EngineAffinity | None = None,
        harvester: ArtifactHarvester | None = None,
        poll_interval: float = 0.3,
        poll_timeout: float = 4 * 60 * 60,
        max_background_jobs: int = 4,
        default_log_path: str | None = None,
        default_output_path: str | None = None,
    ):
        """
        Args:
            engine: Adapter every program is submitted to.
            registry: Store that owns the job records.
            jobs_root: Parent folder of per-job capture/artifact folders.
            poll_interval: Seconds between completion polls.
            poll_timeout: Ceiling after which a job ends ``timed_out``.
            default_log_path / default_output_path: Engine-side capture
                targets used when a request carries none.
        """
        self._engine = engine
        self._registry = registry
        self._jobs_root = Path(jobs_root)
        self._gate = gate or ExecutionGate()
        self._affinity = affinity or EngineAffinity()
        self._harvester = harvester or ArtifactHarvester(self._jobs_root)
        self.poll_interval = poll_interval
        self.poll_timeout = poll_timeout
        self._default_log_path = default_log_path
        self._default_output_path = default_output_path

        self._cancel = threading.Event()
        self._pool = ThreadPoolExecutor(
            max_workers=max_background_jobs,
            thread_name_prefix="bridge-job",
        )
        self._futures: dict[str, Future] = {}
        self._futures_lock = threading.Lock()

    @property
    def gate(self) -> ExecutionGate:
        return self._gate

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # ------------------------------------------------------------------
    # Submit paths
    # ------------------------------------------------------------------

    def submit(self, request: ProgramRequest) -> Job:
        """Run *request* to completion and return the terminal snapshot.

        Raises:
            ValidationError: The request is missing ``code`` or carries only
                one of the two engine-side capture paths.
        """
        request.validate()
        now = utc_now()
        job = self._registry.create(
            Job(status=JobStatus.RUNNING, submitted_at=now, started_at=now,
                server=request.target_server)
        )
        log.info("job_submitted", job_id=job.id, mode="sync", server=job.server)
        return self._execute_and_finalize(job.id, request, mark_running=False)

    def submit_async(self, request: ProgramRequest) -> Job:
        """Queue *request* and return the ``queued`` snapshot immediately."""
        request.validate()
        job = self._registry.create(Job(status=JobStatus.QUEUED, server=request.target_server))
        log.info("job_submitted", job_id=job.id, mode="async", server=job.server)

        if self._cancel.is_set():
            return self._finalize(
                job.id, JobStatus.FAILED, str(CancelledError()), None, None, [], None
            )

        future = self._pool.submit(self._run_background, job.id, request)
        with self._futures_lock:
            self._futures[job.id] = future
        future.add_done_callback(lambda _f, job_id=job.id: self._forget(job_id))
        return job

    def _forget(self, job_id: str) -> None:
        with self._futures_lock:
            self._futures.pop(job_id, None)

    def _run_background(self, job_id: str, request: ProgramRequest) -> None:
        try:
            self._execute_and_finalize(job_id, request, mark_running=True)
        except Exception:
            log.exception("job_flow_crashed", job_id=job_id)

    def wait(self, job_id: str, timeout: float | None = None) -> Job:
        """Block until the async flow for *job_id* has finished.

        Returns:
            Snapshot of the job (terminal unless it was never queued here).
        """
        with self._futures_lock:
            future = self._futures.get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self._registry.get(job_id)

    def shutdown(self, wait: bool = True) -> None:
        """Signal cancellation and drain the background pool.

        Polling jobs end ``failed`` with ``cancelled: bridge shutting down``;
        jobs still queued run their flow, observe the signal and fail the same
        way.
        """
        self._cancel.set()
        self._pool.shutdown(wait=wait)
        log.info("worker_shutdown", waited=wait)

    # ------------------------------------------------------------------
    # Execute-and-finalize
    # ------------------------------------------------------------------

    def _execute_and_finalize(
        self, job_id: str, request: ProgramRequest, *, mark_running: bool
    ) -> Job:
        with LogContext(job_id=job_id):
            server = request.target_server
            channel: CaptureChannel | None = None
            handle: Any = None
            completed_at = None
            status = JobStatus.COMPLETED
            error: str | None = None
            trace: str | None = None

            try:
                descriptor = resolve_descriptor(
                    job_id,
                    self._jobs_root,
                    self._engine,
                    server=server,
                    log_target=request.server_log_path or self._default_log_path,
                    output_target=request.server_output_path or self._default_output_path,
                    affinity=self._affinity,
                )
                channel = CaptureChannel(descriptor, self._engine, self._affinity)
                program = wrap_program(request.code, descriptor)

                with self._gate.hold(holder=job_id):
                    try:
                        if self._cancel.is_set():
                            raise CancelledError()
                        if mark_running:
                            self._registry.mutate(job_id, _mark_running)
                        log.debug(
                            "engine_submit", server=server, temp=descriptor.uses_temp_handles
                        )
                        handle = self._affinity.call(self._engine.submit, program, server)
                        channel.handle = handle
                        try:
                            self._await_completion(job_id, channel, handle)
                        except (CaptureTimeoutError, CancelledError):
                            # the run must be gone before the next job gets the gate
                            self._abandon(handle)
                            raise
                        self._affinity.call(self._engine.raise_for_status, handle)
                    finally:
                        completed_at = utc_now()
            except CaptureTimeoutError as exc:
                status, error, trace = JobStatus.TIMED_OUT, str(exc), traceback.format_exc()
            except Exception as exc:
                status = JobStatus.FAILED
                error = str(exc) or type(exc).__name__
                trace = traceback.format_exc()

            if error:
                log.warning("job_execution_failed", status=status.value, error=error)

            log_text = output_text = None
            if channel is not None:
                channel.fetch_engine_files(server)
                log_text, output_text = channel.read()

            artifacts = self._harvester.harvest(
                job_id, log_text, output_text, self._result_roots(handle)
            )
            return self._finalize(
                job_id, status, error, log_text, output_text, artifacts, completed_at, trace
            )

    def _await_completion(self, job_id: str, channel: CaptureChannel, handle: Any) -> None:
        deadline = time.monotonic() + self.poll_timeout
        while True:
            done = self._affinity.call(self._engine.poll_completion, handle)
            channel.publish(self._registry, job_id)
            if done:
                return
            if self._cancel.is_set():
                raise CancelledError()
            if time.monotonic() >= deadline:
                raise CaptureTimeoutError(self.poll_timeout)
            self._cancel.wait(self.poll_interval)

    def _abandon(self, handle: Any) -> None:
        try:
            self._affinity.call(self._engine.cancel, handle)
        except Exception as exc:
            log.warning("engine_cancel_failed", error=str(exc))
        else:
            log.info("engine_run_abandoned")

    def _result_roots(self, handle: Any) -> list[Any]:
        if handle is None:
            return []
        try:
            paths = self._affinity.call(self._engine.result_paths, handle)
        except Exception as exc:
            log.debug("result_paths_failed", error=str(exc))
            paths = ()
        return [list(paths or ()), handle]

    def _finalize(
        self,
        job_id: str,
        status: JobStatus,
        error: str | None,
        log_text: str | None,
        output_text: str | None,
        artifacts: list,
        completed_at: Any,
        trace: str | None = None,
    ) -> Job:
        finished = completed_at or utc_now()

        def apply(job: Job) -> None:
            job.status = status
            job.completed_at = max(finished, job.started_at) if job.started_at else finished
            job.error = error
            job.log = first_non_empty(log_text, job.log, trace if error else None) or ""
            job.output = first_non_empty(output_text, job.output) or ""
            job.artifacts = list(artifacts)

        try:
            current = self._registry.get(job_id)
            if current.status is JobStatus.QUEUED:
                self._registry.mutate(job_id, _mark_running)
            final = self._registry.mutate(job_id, apply)
        except JobNotFoundError:
            # evicted while running; hand back what we would have stored
            log.warning("job_evicted_before_finalize", job_id=job_id)
            final = Job(status=status, id=job_id, error=error)
            apply(final)
            return final

        log.info(
            "job_finished",
            job_id=job_id,
            status=final.status.value,
            artifacts=len(final.artifacts),
        )
        return final


def _mark_running(job: Job) -> None:
    if job.status is JobStatus.QUEUED:
        job.status = JobStatus.RUNNING
        job.started_at = utc_now()
