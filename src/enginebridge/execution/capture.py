"""Capture channel -- where a job's log and listing go, and how we read them.

Each job gets a capture descriptor: two local files under
``<jobs_root>/<job_id>/capture`` plus the targets actually handed to the
engine.  Target selection, in order:

1. explicit engine-side paths (request body or persisted defaults);
2. engine-side targets offered by ``engine.create_capture_targets``;
   when both look like temporary filerefs (``#LN00012``) the program is
   wrapped in temp-handle mode instead of quoting paths;
3. the local files themselves.

The submitted program is wrapped so the engine's native log and listing are
redirected into those targets (``proc printto``) and restored afterwards.

Reads are best-effort.  ``read_text`` and :meth:`CaptureChannel.read` return
``None`` for a missing, unreadable or empty source and never raise, and
:meth:`CaptureChannel.publish` only overwrites a stored ``log``/``output`` with
non-empty text that differs from it, so a transient empty read can never erase
content captured earlier.

Manifesto:
    The log and listing are the only view a client has of a running
    program.  Capture keeps the last good copy of each and lets partial
    progress be published while the engine is still working.

Tags:
    engine-bridge, execution, capture, printto, log-tail

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from enginebridge.core.errors import JobNotFoundError
from enginebridge.core.logging import get_logger
from enginebridge.core.timestamps import sanitize_segment
from enginebridge.engines.protocol import ExecutionEngine

from .affinity import EngineAffinity
from .models import Job
from .registry import JobRegistry

log = get_logger(__name__)

LOG_FILEREF = "_sdvlog"
OUTPUT_FILEREF = "_sdvlst"

_TEMP_HANDLE = re.compile(r"^#[^\\/:\s\"]+$")


@dataclass(frozen=True)
class CaptureDescriptor:
    """Per-job capture targets.

    ``log_path``/``output_path`` are always local files the bridge reads;
    ``submit_*_target`` is what the wrapped program writes to.
    """

    log_path: Path
    output_path: Path
    submit_log_target: str
    submit_output_target: str
    uses_engine_paths: bool = False
    uses_temp_handles: bool = False

    @property
    def needs_fetch(self) -> bool:
        """True when the engine writes somewhere other than our local files."""
        return self.uses_engine_paths or self.uses_temp_handles


def capture_folder(jobs_root: Path, job_id: str) -> Path:
    return Path(jobs_root) / sanitize_segment(job_id, "unknown_job") / "capture"


def is_temp_handle(value: str | None) -> bool:
    """Engine temp filerefs look like ``#LN00012``: no separators or spaces."""
    if not value or not value.strip():
        return False
    return bool(_TEMP_HANDLE.match(value.strip()))


def _normalize(path: str | None) -> str | None:
    if path is None or not path.strip():
        return None
    return path.strip()


def resolve_descriptor(
    job_id: str,
    jobs_root: Path,
    engine: ExecutionEngine,
    server: str | None = None,
    log_target: str | None = None,
    output_target: str | None = None,
    affinity: EngineAffinity | None = None,
) -> CaptureDescriptor:
    """Build the capture descriptor for a job and create its local folder.

    Args:
        log_target / output_target: Engine-side paths configured by the
            request or the persisted defaults; used only when both are set.
    """
    folder = capture_folder(jobs_root, job_id)
    folder.mkdir(parents=True, exist_ok=True)
    local_log = folder / "submit.log"
    local_output = folder / "submit.lst"

    log_target = _normalize(log_target)
    output_target = _normalize(output_target)
    if log_target and output_target:
        return CaptureDescriptor(
            log_path=local_log,
            output_path=local_output,
            submit_log_target=log_target,
            submit_output_target=output_target,
            uses_engine_paths=True,
        )

    if affinity is not None:
        remote_log, remote_output = affinity.call(engine.create_capture_targets, server, folder)
    else:
        remote_log, remote_output = engine.create_capture_targets(server, folder)

    if is_temp_handle(remote_log) and is_temp_handle(remote_output):
        return CaptureDescriptor(
            log_path=local_log,
            output_path=local_output,
            submit_log_target=LOG_FILEREF,
            submit_output_target=OUTPUT_FILEREF,
            uses_temp_handles=True,
        )

    remote_log = _normalize(remote_log)
    remote_output = _normalize(remote_output)
    if remote_log and remote_output:
        return CaptureDescriptor(
            log_path=local_log,
            output_path=local_output,
            submit_log_target=remote_log,
            submit_output_target=remote_output,
            uses_engine_paths=True,
        )

    return CaptureDescriptor(
        log_path=local_log,
        output_path=local_output,
        submit_log_target=str(local_log),
        submit_output_target=str(local_output),
    )


def to_string_literal(value: str) -> str:
    """Quote *value* for the engine; macro characters force double quotes."""
    text = value or ""
    if "%" in text or "&" in text:
        return '"' + text.replace('"', '""') + '"'
    return "'" + text.replace("'", "''") + "'"


def wrap_program(code: str, descriptor: CaptureDescriptor | None) -> str:
    """Redirect the engine's log/listing into the capture targets around *code*."""
    user_code = code or ""
    if descriptor is None:
        return user_code

    if descriptor.uses_temp_handles:
        lines = [
            f"filename {descriptor.submit_log_target} temp;",
            f"filename {descriptor.submit_output_target} temp;",
            f"proc printto log={descriptor.submit_log_target} "
            f"print={descriptor.submit_output_target} new;",
            "run;",
            user_code,
            "proc printto;",
            "run;",
        ]
        return "\n".join(lines) + "\n"

    lines = [
        f"filename {LOG_FILEREF} {to_string_literal(descriptor.submit_log_target)};",
        f"filename {OUTPUT_FILEREF} {to_string_literal(descriptor.submit_output_target)};",
        f"proc printto log={LOG_FILEREF} print={OUTPUT_FILEREF} new;",
        "run;",
        user_code,
        "proc printto;",
        "run;",
        f"filename {LOG_FILEREF} clear;",
        f"filename {OUTPUT_FILEREF} clear;",
    ]
    return "\n".join(lines) + "\n"


def read_text(path: str | Path | None) -> str | None:
    """Read a capture file the engine may still be writing. Never raises."""
    if path is None:
        return None
    try:
        target = Path(path)
        if not target.is_file():
            return None
        text = target.read_text(encoding="utf-8-sig", errors="replace")
    except (OSError, ValueError):
        return None
    return text if text.strip() else None


def first_non_empty(*values: str | None) -> str | None:
    for value in values:
        if value is not None and value.strip():
            return value
    return None


class CaptureChannel:
    """Tolerant, non-blocking reads of one job's log and output."""

    def __init__(
        self,
        descriptor: CaptureDescriptor,
        engine: ExecutionEngine,
        affinity: EngineAffinity,
    ) -> None:
        self.descriptor = descriptor
        self._engine = engine
        self._affinity = affinity
        self.handle: Any = None

    def _engine_text(self, reader: Any) -> str | None:
        if self.handle is None:
            return None
        try:
            return self._affinity.call(reader, self.handle)
        except Exception as exc:
            log.debug("capture_engine_read_failed", error=str(exc))
            return None

    def read(self) -> tuple[str | None, str | None]:
        """Current (log, output); files first, then whatever the engine holds."""
        current_log = first_non_empty(
            read_text(self.descriptor.log_path),
            self._engine_text(self._engine.read_log),
        )
        current_output = first_non_empty(
            read_text(self.descriptor.output_path),
            self._engine_text(self._engine.read_output),
        )
        return current_log, current_output

    def fetch_engine_files(self, server: str | None) -> None:
        """Pull engine-side capture files down to the local paths (best effort)."""
        if not self.descriptor.needs_fetch:
            return
        try:
            self._affinity.call(self._engine.fetch_capture_files, self.descriptor, server)
        except Exception as exc:
            log.warning("capture_fetch_failed", error=str(exc))

    def publish(self, registry: JobRegistry, job_id: str) -> tuple[str | None, str | None]:
        """Copy fresh capture text into the registry record.

        Returns the (log, output) that was read, whether or not it was stored.
        """
        current_log, current_output = self.read()
        if current_log is None and current_output is None:
            return current_log, current_output

        def apply(job: Job) -> None:
            if job.is_terminal:
                return
            if current_log is not None and current_log != job.log:
                job.log = current_log
            if current_output is not None and current_output != job.output:
                job.output = current_output

        try:
            registry.mutate(job_id, apply)
        except JobNotFoundError:
            log.debug("capture_publish_job_gone", job_id=job_id)
        return current_log, current_output
