"""Artifact harvester -- copy a finished job's result files into its folder.

Runs once per job, after the final capture read and before the record is
finalized::

    harvester = ArtifactHarvester(settings.jobs_root)
    artifacts = harvester.harvest(job_id, log, output, [paths, handle])

Discovery:
    ``roots`` are walked to depth 4 (at most 100 items per sequence, each
    object visited once).  Strings, ``Path`` objects and ``file://`` URIs are
    candidates; lists/tuples/sets are iterated; mappings and other objects are
    only descended through result-like names (``path``, ``output_path``,
    ``results``, ...).  A candidate must be an existing file whose extension
    is on the allow-list (extension-less files are accepted).

Copying:
    Files are copied (``shutil.copy2``), never moved, into
    ``<jobs_root>/<job_id>/artifacts``; clashing names become ``stem_1.ext``,
    ``stem_2.ext`` and so on.

Fallback:
    With no real artifacts the output text becomes ``output.html`` (when it
    looks like markup) or ``output.txt``, and the log becomes ``log.txt``.

Every failure is logged and skipped; harvesting never raises.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from enginebridge.core.logging import get_logger
from enginebridge.core.timestamps import new_id, sanitize_segment, utc_now

from .models import Artifact

log = get_logger(__name__)

ALLOWED_EXTENSIONS: frozenset[str] = frozenset({
    ".html", ".htm", ".pdf", ".xls", ".xlsx", ".csv", ".xml",
    ".txt", ".log", ".lst", ".rtf", ".json", ".ods",
})

CONTENT_TYPES: dict[str, str] = {
    ".html": "text/html",
    ".htm": "text/html",
    ".txt": "text/plain",
    ".log": "text/plain",
    ".lst": "text/plain",
    ".xml": "application/xml",
    ".pdf": "application/pdf",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".csv": "text/csv",
    ".rtf": "application/rtf",
    ".json": "application/json",
}

RESULT_MEMBER_NAMES: tuple[str, ...] = (
    "path",
    "file_path",
    "full_path",
    "local_path",
    "output_path",
    "result_path",
    "pdf_path",
    "html_path",
    "excel_path",
    "xlsx_path",
    "artifacts",
    "results",
    "result",
    "output",
)

MAX_WALK_DEPTH = 4
MAX_SEQUENCE_ITEMS = 100
MAX_NAME_ATTEMPTS = 5000


def guess_content_type(name: str | Path) -> str:
    return CONTENT_TYPES.get(Path(name).suffix.lower(), "application/octet-stream")


def looks_like_markup(text: str | None) -> bool:
    if not text or not text.strip():
        return False
    lowered = text.lower()
    return "<html" in lowered or "<table" in lowered or "<body" in lowered


def _as_candidate(value: str | os.PathLike) -> Path | None:
    text = os.fspath(value).strip().strip('"')
    if not text:
        return None
    if text.lower().startswith("file:"):
        text = unquote(urlparse(text).path)
    try:
        path = Path(text)
        if not path.is_file():
            return None
    except (OSError, ValueError):
        return None
    suffix = path.suffix.lower()
    if suffix and suffix not in ALLOWED_EXTENSIONS:
        return None
    return path


def collect_candidate_paths(roots: Iterable[Any]) -> list[Path]:
    """Existing, allow-listed files reachable from *roots*, in discovery order."""
    found: dict[str, Path] = {}
    visited: set[int] = set()

    def walk(value: Any, depth: int) -> None:
        if value is None or depth > MAX_WALK_DEPTH:
            return
        if isinstance(value, (str, os.PathLike)):
            candidate = _as_candidate(value)
            if candidate is not None:
                found.setdefault(os.path.normcase(str(candidate.resolve())), candidate)
            return
        if isinstance(value, (bytes, int, float, bool)):
            return
        if id(value) in visited:
            return
        visited.add(id(value))

        if isinstance(value, Mapping):
            lowered = {str(k).lower(): v for k, v in value.items()}
            for name in RESULT_MEMBER_NAMES:
                if name in lowered:
                    walk(lowered[name], depth + 1)
            return
        if isinstance(value, (list, tuple, set, frozenset)):
            for index, item in enumerate(value):
                if index >= MAX_SEQUENCE_ITEMS:
                    break
                walk(item, depth + 1)
            return
        for name in RESULT_MEMBER_NAMES:
            try:
                member = getattr(value, name, None)
            except Exception:  # properties on engine handles may raise
                continue
            if member is not None and not callable(member):
                walk(member, depth + 1)

    for root in roots or ():
        walk(root, 0)
    return list(found.values())


def unique_path(folder: Path, name: str) -> Path:
    """A path in *folder* for *name* that does not exist yet."""
    safe = sanitize_segment(name, "artifact.bin")
    candidate = folder / safe
    if not candidate.exists():
        return candidate
    stem, suffix = Path(safe).stem, Path(safe).suffix
    for index in range(1, MAX_NAME_ATTEMPTS + 1):
        candidate = folder / f"{stem}_{index}{suffix}"
        if not candidate.exists():
            return candidate
    return folder / f"{stem}_{new_id()}{suffix}"


class ArtifactHarvester:
    """Builds the artifact list of a finished job."""

    def __init__(self, jobs_root: Path) -> None:
        self.jobs_root = Path(jobs_root)

    def artifacts_folder(self, job_id: str) -> Path:
        folder = self.jobs_root / sanitize_segment(job_id, "unknown_job") / "artifacts"
        folder.mkdir(parents=True, exist_ok=True)
        return folder

    def harvest(
        self,
        job_id: str,
        log_text: str | None,
        output_text: str | None,
        roots: Iterable[Any] = (),
    ) -> list[Artifact]:
        try:
            folder = self.artifacts_folder(job_id)
        except OSError as exc:
            log.warning("artifact_folder_failed", job_id=job_id, error=str(exc))
            return []

        created_at = utc_now()
        artifacts: list[Artifact] = []
        copied: set[str] = set()
        for source in collect_candidate_paths(roots):
            try:
                key = os.path.normcase(str(source.resolve()))
                if key in copied or not source.is_file():
                    continue
                copied.add(key)
                destination = unique_path(folder, source.name)
                shutil.copy2(source, destination)
                artifacts.append(self._record(destination, created_at))
            except OSError as exc:
                log.debug("artifact_copy_skipped", job_id=job_id, source=str(source), error=str(exc))

        if not artifacts:
            if output_text and output_text.strip():
                markup = looks_like_markup(output_text)
                artifact = self._write_text(
                    folder,
                    "output.html" if markup else "output.txt",
                    output_text,
                    "text/html" if markup else "text/plain",
                    created_at,
                    job_id,
                )
                if artifact is not None:
                    artifacts.append(artifact)
            if log_text and log_text.strip():
                artifact = self._write_text(
                    folder, "log.txt", log_text, "text/plain", created_at, job_id
                )
                if artifact is not None:
                    artifacts.append(artifact)

        log.debug("artifacts_harvested", job_id=job_id, count=len(artifacts))
        return artifacts

    @staticmethod
    def _record(path: Path, created_at: Any, content_type: str | None = None) -> Artifact:
        return Artifact(
            name=path.name,
            path=str(path.resolve()),
            content_type=content_type or guess_content_type(path),
            size_bytes=path.stat().st_size,
            created_at=created_at,
        )

    def _write_text(
        self,
        folder: Path,
        name: str,
        text: str,
        content_type: str,
        created_at: Any,
        job_id: str,
    ) -> Artifact | None:
        try:
            path = unique_path(folder, name)
            path.write_text(text, encoding="utf-8")
            return self._record(path, created_at, content_type)
        except OSError as exc:
            log.debug("artifact_write_skipped", job_id=job_id, name=name, error=str(exc))
            return None
