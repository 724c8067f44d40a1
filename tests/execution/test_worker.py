"""
Tests for ExecutionWorker -- sync/async submission, failure policy,
gate ordering, timeouts and shutdown.
"""

from __future__ import annotations

import threading
import time

import pytest

from enginebridge.core.errors import ValidationError
from enginebridge.engines.simulated import SimulatedEngine
from enginebridge.execution.models import JobStatus
from enginebridge.execution.worker import ProgramRequest
from tests._support.engines import ScriptedEngine


def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.005)


class TestProgramRequest:
    def test_code_required(self):
        with pytest.raises(ValidationError) as exc:
            ProgramRequest(code="  ").validate()
        assert exc.value.field == "code"

    def test_capture_paths_pairwise(self):
        with pytest.raises(ValidationError) as exc:
            ProgramRequest(code="x;", server_log_path="/a.log").validate()
        assert exc.value.field == "serverOutputPath"
        with pytest.raises(ValidationError) as exc:
            ProgramRequest(code="x;", server_output_path="/a.lst").validate()
        assert exc.value.field == "serverLogPath"

    def test_target_server(self):
        assert ProgramRequest(code="x", server="  ").target_server is None
        assert ProgramRequest(code="x", server=" SASApp ").target_server == "SASApp"


class TestSyncSubmit:
    def test_completes_with_captured_log(self, worker_factory):
        engine = ScriptedEngine(polls_until_done=2)
        worker = worker_factory(engine)
        job = worker.submit(ProgramRequest(code="%put hi;", server="SASApp"))

        assert job.status is JobStatus.COMPLETED
        assert job.server == "SASApp"
        assert job.error is None
        assert "scripted run finished" in job.log
        assert job.submitted_at <= job.started_at <= job.completed_at
        assert [a.name for a in job.artifacts] == ["log.txt"]

    def test_program_is_wrapped(self, worker_factory):
        engine = ScriptedEngine()
        worker_factory(engine).submit(ProgramRequest(code="%put hi;"))
        code = engine.submitted[0].code
        assert "proc printto log=_sdvlog print=_sdvlst new;" in code
        assert "%put hi;" in code

    def test_validation_raises_before_any_record(self, worker_factory):
        worker = worker_factory(ScriptedEngine())
        with pytest.raises(ValidationError):
            worker.submit(ProgramRequest(code=""))
        assert len(worker.registry) == 0

    def test_engine_calls_stay_on_one_thread(self, worker_factory):
        engine = ScriptedEngine(polls_until_done=3)
        worker = worker_factory(engine)
        worker.submit(ProgramRequest(code="a;"))
        worker.submit(ProgramRequest(code="b;"))
        assert len(engine.threads) == 1
        assert threading.get_ident() not in engine.threads


class TestFailurePolicy:
    def test_submit_exception_ends_failed(self, worker_factory):
        engine = ScriptedEngine(submit_error=RuntimeError("session lost"))
        worker = worker_factory(engine)
        job = worker.submit(ProgramRequest(code="x;"))

        assert job.status is JobStatus.FAILED
        assert job.error == "session lost"
        assert "Traceback" in job.log
        assert job.completed_at is not None
        assert not worker.gate.locked

    def test_engine_status_error(self, worker_factory):
        engine = ScriptedEngine(status_error="program terminated by %ABORT")
        job = worker_factory(engine).submit(ProgramRequest(code="%abort;"))
        assert job.status is JobStatus.FAILED
        assert job.error == "program terminated by %ABORT"
        assert "scripted run finished" in job.log

    def test_exception_without_message_uses_type(self, worker_factory):
        engine = ScriptedEngine(submit_error=KeyError())
        job = worker_factory(engine).submit(ProgramRequest(code="x;"))
        assert job.error == "KeyError"

    def test_poll_ceiling_times_out(self, worker_factory):
        engine = ScriptedEngine(polls_until_done=10**9)
        worker = worker_factory(engine, poll_timeout=0.05)
        job = worker.submit(ProgramRequest(code="x;"))
        assert job.status is JobStatus.TIMED_OUT
        assert job.error == "engine did not report completion within 0.05 seconds"
        assert not worker.gate.locked

    def test_timed_out_run_is_cancelled_on_engine_thread(self, worker_factory):
        engine = ScriptedEngine(polls_until_done=10**9)
        worker = worker_factory(engine, poll_timeout=0.05)
        worker.submit(ProgramRequest(code="x;"))
        assert engine.cancelled == engine.submitted
        assert engine.active == 0
        assert len(engine.threads) == 1

    def test_next_job_waits_for_abandoned_run(self, worker_factory):
        engine = ScriptedEngine(polls_until_done=10**9)
        worker = worker_factory(engine, poll_timeout=0.05)
        jobs = [worker.submit_async(ProgramRequest(code=f"job{n};")) for n in range(2)]
        for job in jobs:
            assert worker.wait(job.id, timeout=5).status is JobStatus.TIMED_OUT
        assert engine.max_active == 1
        assert len(engine.cancelled) == 2


class TestAsyncSubmit:
    def test_returns_queued_then_completes(self, worker_factory):
        worker = worker_factory(ScriptedEngine(polls_until_done=2))
        queued = worker.submit_async(ProgramRequest(code="x;"))
        assert queued.status is JobStatus.QUEUED
        assert queued.started_at is None

        final = worker.wait(queued.id, timeout=5)
        assert final.status is JobStatus.COMPLETED
        assert final.submitted_at <= final.started_at <= final.completed_at

    def test_async_failure_is_never_raised(self, worker_factory):
        worker = worker_factory(ScriptedEngine(submit_error=OSError("no session")))
        job = worker.submit_async(ProgramRequest(code="x;"))
        final = worker.wait(job.id, timeout=5)
        assert final.status is JobStatus.FAILED
        assert final.error == "no session"

    def test_gate_serializes_jobs(self, worker_factory):
        engine = ScriptedEngine(polls_until_done=4)
        worker = worker_factory(engine)
        first = worker.submit_async(ProgramRequest(code="first;"))
        second = worker.submit_async(ProgramRequest(code="second;"))

        a = worker.wait(first.id, timeout=5)
        b = worker.wait(second.id, timeout=5)
        assert engine.max_active == 1
        earlier, later = sorted([a, b], key=lambda j: j.started_at)
        assert later.started_at >= earlier.completed_at

    def test_running_job_publishes_partial_log(self, worker_factory):
        block = threading.Event()
        engine = ScriptedEngine(block=block, log_text="NOTE: partial\n")
        worker = worker_factory(engine)
        job = worker.submit_async(ProgramRequest(code="x;"))

        _wait_for(lambda: worker.registry.get(job.id).log == "NOTE: partial\n")
        assert worker.registry.get(job.id).status is JobStatus.RUNNING
        block.set()
        assert worker.wait(job.id, timeout=5).status is JobStatus.COMPLETED


class TestShutdown:
    def test_running_job_cancelled(self, worker_factory):
        engine = ScriptedEngine(block=threading.Event())
        worker = worker_factory(engine)
        job = worker.submit_async(ProgramRequest(code="x;"))
        _wait_for(lambda: worker.registry.get(job.id).status is JobStatus.RUNNING)

        worker.shutdown(wait=True)
        final = worker.registry.get(job.id)
        assert final.status is JobStatus.FAILED
        assert final.error == "cancelled: bridge shutting down"
        assert worker.cancelled
        assert engine.cancelled == engine.submitted

    def test_submit_after_shutdown_fails_fast(self, worker_factory):
        worker = worker_factory(ScriptedEngine())
        worker.shutdown()
        job = worker.submit_async(ProgramRequest(code="x;"))
        assert job.status is JobStatus.FAILED
        assert job.error == "cancelled: bridge shutting down"


class TestCaptureTargets:
    def test_default_paths_are_fetched(self, worker_factory):
        engine = ScriptedEngine()
        worker = worker_factory(
            engine, default_log_path="/srv/bridge.log", default_output_path="/srv/bridge.lst"
        )
        worker.submit(ProgramRequest(code="x;"))
        assert engine.fetched and engine.fetched[0].uses_engine_paths
        assert "'/srv/bridge.log'" in engine.submitted[0].code

    def test_request_paths_override_defaults(self, worker_factory):
        engine = ScriptedEngine()
        worker = worker_factory(
            engine, default_log_path="/srv/bridge.log", default_output_path="/srv/bridge.lst"
        )
        worker.submit(
            ProgramRequest(code="x;", server_log_path="/me/a.log", server_output_path="/me/a.lst")
        )
        assert engine.fetched[0].submit_log_target == "/me/a.log"


class TestArtifacts:
    def test_result_files_copied(self, worker_factory, tmp_path):
        report = tmp_path / "engine" / "report.csv"
        report.parent.mkdir()
        report.write_text("a,b\n1,2\n")
        job = worker_factory(ScriptedEngine(result_files=[report])).submit(
            ProgramRequest(code="x;")
        )
        assert [a.name for a in job.artifacts] == ["report.csv"]
        assert job.artifacts[0].size_bytes == report.stat().st_size
        assert report.exists()


class TestSimulatedEngineEndToEnd:
    def test_put_lands_in_log(self, worker_factory):
        job = worker_factory(SimulatedEngine()).submit(ProgramRequest(code="%put hello bridge;"))
        assert job.status is JobStatus.COMPLETED
        assert "hello bridge" in job.log

    def test_proc_print_lands_in_output(self, worker_factory):
        job = worker_factory(SimulatedEngine()).submit(
            ProgramRequest(code="proc print data=sashelp.class(obs=3); run;")
        )
        assert "Alfred" in job.output
        assert "Barbara" in job.output
        assert "Carol" not in job.output
        assert [a.name for a in job.artifacts] == ["output.txt", "log.txt"]

    def test_abort_fails_job(self, worker_factory):
        job = worker_factory(SimulatedEngine()).submit(ProgramRequest(code="%abort;"))
        assert job.status is JobStatus.FAILED
        assert job.error == "program terminated by %ABORT"
        assert "%ABORT" in job.log

    def test_temp_capture_mode(self, worker_factory):
        job = worker_factory(SimulatedEngine(temp_capture=True)).submit(
            ProgramRequest(code="%put via temp;")
        )
        assert job.status is JobStatus.COMPLETED
        assert "via temp" in job.log
