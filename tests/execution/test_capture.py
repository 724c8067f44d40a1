"""
Tests for the capture channel -- target selection, wrapping, tolerant reads.
"""

from __future__ import annotations

from pathlib import Path

from enginebridge.execution.affinity import EngineAffinity
from enginebridge.execution.capture import (
    LOG_FILEREF,
    OUTPUT_FILEREF,
    CaptureChannel,
    CaptureDescriptor,
    capture_folder,
    is_temp_handle,
    read_text,
    resolve_descriptor,
    to_string_literal,
    wrap_program,
)
from enginebridge.execution.models import Job, JobStatus
from enginebridge.execution.registry import JobRegistry
from tests._support.engines import ScriptedEngine


def _local(tmp_path: Path) -> CaptureDescriptor:
    return CaptureDescriptor(
        log_path=tmp_path / "submit.log",
        output_path=tmp_path / "submit.lst",
        submit_log_target=str(tmp_path / "submit.log"),
        submit_output_target=str(tmp_path / "submit.lst"),
    )


class TestResolveDescriptor:
    def test_local_paths_by_default(self, tmp_path):
        d = resolve_descriptor("job1", tmp_path, ScriptedEngine())
        assert d.log_path == tmp_path / "job1" / "capture" / "submit.log"
        assert d.output_path.name == "submit.lst"
        assert d.submit_log_target == str(d.log_path)
        assert not d.uses_engine_paths and not d.uses_temp_handles
        assert not d.needs_fetch
        assert d.log_path.parent.is_dir()

    def test_configured_paths_win(self, tmp_path):
        engine = ScriptedEngine(capture_targets=("#LN00001", "#LN00002"))
        d = resolve_descriptor(
            "job1", tmp_path, engine, log_target="/srv/x.log", output_target="/srv/x.lst"
        )
        assert d.submit_log_target == "/srv/x.log"
        assert d.uses_engine_paths
        assert d.needs_fetch

    def test_one_configured_path_is_ignored(self, tmp_path):
        d = resolve_descriptor("job1", tmp_path, ScriptedEngine(), log_target="/srv/x.log")
        assert not d.uses_engine_paths

    def test_temp_handles(self, tmp_path):
        engine = ScriptedEngine(capture_targets=("#LN00012", "#LN00013"))
        d = resolve_descriptor("job1", tmp_path, engine)
        assert d.uses_temp_handles
        assert d.submit_log_target == LOG_FILEREF
        assert d.submit_output_target == OUTPUT_FILEREF

    def test_engine_offered_paths(self, tmp_path):
        engine = ScriptedEngine(capture_targets=("/remote/a.log", "/remote/a.lst"))
        d = resolve_descriptor("job1", tmp_path, engine)
        assert d.uses_engine_paths
        assert d.submit_output_target == "/remote/a.lst"

    def test_routes_through_affinity(self, tmp_path):
        engine = ScriptedEngine()
        affinity = EngineAffinity()
        try:
            resolve_descriptor("job1", tmp_path, engine, affinity=affinity)
        finally:
            affinity.shutdown()
        assert capture_folder(tmp_path, "job1").is_dir()


class TestTempHandle:
    def test_patterns(self):
        assert is_temp_handle("#LN00012")
        assert not is_temp_handle("/tmp/x.log")
        assert not is_temp_handle("#LN 1")
        assert not is_temp_handle(None)


class TestWrapProgram:
    def test_path_mode(self, tmp_path):
        program = wrap_program("%put hi;", _local(tmp_path))
        lines = program.splitlines()
        assert lines[0] == f"filename {LOG_FILEREF} '{tmp_path / 'submit.log'}';"
        assert f"proc printto log={LOG_FILEREF} print={OUTPUT_FILEREF} new;" in lines
        assert lines.index("%put hi;") < lines.index("proc printto;")
        assert lines[-1] == f"filename {OUTPUT_FILEREF} clear;"

    def test_temp_mode(self, tmp_path):
        d = CaptureDescriptor(
            log_path=tmp_path / "a", output_path=tmp_path / "b",
            submit_log_target=LOG_FILEREF, submit_output_target=OUTPUT_FILEREF,
            uses_temp_handles=True,
        )
        program = wrap_program("run;", d)
        assert program.startswith(f"filename {LOG_FILEREF} temp;\n")
        assert "clear" not in program

    def test_no_descriptor(self):
        assert wrap_program("x;", None) == "x;"

    def test_literals(self):
        assert to_string_literal("/a/b.log") == "'/a/b.log'"
        assert to_string_literal("O'Brien") == "'O''Brien'"
        assert to_string_literal("/a/%x.log") == '"/a/%x.log"'
        assert to_string_literal('/a&"b') == '"/a&""b"'


class TestReadText:
    def test_missing_and_blank(self, tmp_path):
        assert read_text(tmp_path / "nope.log") is None
        blank = tmp_path / "blank.log"
        blank.write_text("   \n")
        assert read_text(blank) is None
        assert read_text(None) is None

    def test_bom_stripped(self, tmp_path):
        path = tmp_path / "bom.log"
        path.write_bytes(b"\xef\xbb\xbfNOTE: ok\n")
        assert read_text(path) == "NOTE: ok\n"

    def test_directory_is_not_text(self, tmp_path):
        assert read_text(tmp_path) is None


class TestChannel:
    def _channel(self, tmp_path, engine):
        affinity = EngineAffinity()
        return CaptureChannel(_local(tmp_path), engine, affinity), affinity

    def test_file_wins_over_engine(self, tmp_path):
        channel, affinity = self._channel(tmp_path, ScriptedEngine(log_text="engine log"))
        try:
            channel.handle = object()
            (tmp_path / "submit.log").write_text("file log")
            assert channel.read() == ("file log", None)
        finally:
            affinity.shutdown()

    def test_engine_fallback(self, tmp_path):
        engine = ScriptedEngine(log_text="engine log", output_text="engine out")
        channel, affinity = self._channel(tmp_path, engine)
        try:
            assert channel.read() == (None, None)
            channel.handle = object()
            assert channel.read() == ("engine log", "engine out")
        finally:
            affinity.shutdown()

    def test_engine_read_errors_swallowed(self, tmp_path):
        engine = ScriptedEngine()

        def broken(handle):
            raise OSError("gone")

        engine.read_log = broken
        channel, affinity = self._channel(tmp_path, engine)
        try:
            channel.handle = object()
            assert channel.read()[0] is None
        finally:
            affinity.shutdown()

    def test_publish_only_non_empty_changes(self, tmp_path):
        registry = JobRegistry()
        job = registry.create(Job(status=JobStatus.RUNNING))
        channel, affinity = self._channel(tmp_path, ScriptedEngine())
        try:
            log_file = tmp_path / "submit.log"
            log_file.write_text("first")
            channel.publish(registry, job.id)
            assert registry.get(job.id).log == "first"

            log_file.write_text("")
            channel.publish(registry, job.id)
            assert registry.get(job.id).log == "first"

            log_file.write_text("second")
            channel.publish(registry, job.id)
            assert registry.get(job.id).log == "second"
        finally:
            affinity.shutdown()

    def test_publish_skips_terminal_and_missing(self, tmp_path):
        registry = JobRegistry()
        job = registry.create(Job(status=JobStatus.RUNNING))
        registry.mutate(job.id, lambda j: setattr(j, "status", JobStatus.COMPLETED))
        channel, affinity = self._channel(tmp_path, ScriptedEngine())
        try:
            (tmp_path / "submit.log").write_text("late")
            channel.publish(registry, job.id)
            channel.publish(registry, "evicted")
            assert registry.get(job.id).log == ""
        finally:
            affinity.shutdown()

    def test_fetch_only_when_needed(self, tmp_path):
        engine = ScriptedEngine()
        channel, affinity = self._channel(tmp_path, engine)
        try:
            channel.fetch_engine_files(None)
            assert engine.fetched == []
        finally:
            affinity.shutdown()
