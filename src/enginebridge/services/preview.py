"""Dataset preview -- run a marker-delimited export and parse it from the log.

The preview never reads dataset files directly.  It submits a small program
through the synchronous worker path that exports the first *limit* rows as
CSV into a temporary fileref and echoes every exported line into the log::

    __SDV_PREVIEW_BEGIN__
    __SDV_PREVIEW_ROW__|Name,Sex,Age
    __SDV_PREVIEW_ROW__|Alfred,M,14
    __SDV_PREVIEW_END__

Only lines between the begin and end markers that *start* with the row
marker are taken (source echo is switched off for the program, and a
leading-position match keeps echoed statements out even if it is not).
The first row is the header; the rest are data rows.

Failures after the dataset is known to exist (non-completed job, markers
missing, zero rows) raise :class:`PreviewExtractionError`, which the API maps
to 502 -- never to the 404 used for unknown datasets.

Manifesto:
    The engine offers no row API, only a log.  The marker protocol turns
    a slice of that free-form text into rows a client can render.

Tags:
    engine-bridge, services, preview, marker-protocol, csv

Doc-Types:
    api-reference
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from typing import Any

from enginebridge.core.errors import PreviewExtractionError, ValidationError
from enginebridge.core.logging import get_logger
from enginebridge.engines.protocol import ColumnInfo, MetadataProvider
from enginebridge.execution.affinity import EngineAffinity
from enginebridge.execution.models import JobStatus
from enginebridge.execution.worker import ExecutionWorker, ProgramRequest

log = get_logger(__name__)

BEGIN_MARKER = "__SDV_PREVIEW_BEGIN__"
END_MARKER = "__SDV_PREVIEW_END__"
ROW_MARKER = "__SDV_PREVIEW_ROW__|"
DEFAULT_LIMIT = 20
MAX_LIMIT = 500
PREVIEW_FILEREF = "_sdvprvw"


@dataclass
class PreviewResult:
    server: str
    libref: str
    member: str
    job_id: str
    limit: int
    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        return {
            "server": self.server,
            "libref": self.libref,
            "member": self.member,
            "jobId": self.job_id,
            "limit": self.limit,
            "rowCount": self.row_count,
            "columns": list(self.columns),
            "rows": [dict(row) for row in self.rows],
        }


def normalize_limit(requested: int | None) -> int:
    """``<= 0`` → 20, ``> 500`` → 500, anything else unchanged."""
    if requested is None or requested <= 0:
        return DEFAULT_LIMIT
    return min(requested, MAX_LIMIT)


def name_literal(value: str) -> str:
    if not value or not value.strip():
        raise ValidationError("name literal value cannot be empty")
    return "'" + value.replace("'", "''") + "'n"


def build_preview_program(libref: str, member: str, limit: int) -> str:
    dataset = f"{name_literal(libref)}.{name_literal(member)}"
    return "\n".join([
        "options nosource;",
        f"filename {PREVIEW_FILEREF} temp;",
        f"proc export data={dataset}(obs={limit}) outfile={PREVIEW_FILEREF} dbms=csv replace;",
        "run;",
        "data _null_;",
        f"  putlog '{BEGIN_MARKER}';",
        "run;",
        "data _null_;",
        f"  infile {PREVIEW_FILEREF} lrecl=32767 truncover;",
        "  input;",
        f"  putlog '{ROW_MARKER}' _infile_;",
        "run;",
        "data _null_;",
        f"  putlog '{END_MARKER}';",
        "run;",
        f"filename {PREVIEW_FILEREF} clear;",
        "options source;",
    ]) + "\n"


def _starts_with(line: str, marker: str) -> bool:
    return line.lstrip().upper().startswith(marker.upper())


def has_markers(log_text: str | None) -> bool:
    lines = (log_text or "").splitlines()
    return any(_starts_with(ln, BEGIN_MARKER) for ln in lines) and any(
        _starts_with(ln, END_MARKER) for ln in lines
    )


def extract_marker_lines(log_text: str | None) -> list[str]:
    """Row-marker payloads strictly between the begin and end markers."""
    rows: list[str] = []
    inside = False
    for line in (log_text or "").splitlines():
        if _starts_with(line, BEGIN_MARKER):
            inside = True
            continue
        if _starts_with(line, END_MARKER):
            break
        if inside and _starts_with(line, ROW_MARKER):
            rows.append(line.lstrip()[len(ROW_MARKER):].lstrip())
    return rows


def parse_fields(line: str) -> list[str]:
    """One CSV record: quotes, embedded commas and doubled quotes honored."""
    if not line:
        return []
    return next(csv.reader([line], skipinitialspace=False), [])


def build_keys(columns: list[ColumnInfo] | None, header: list[str] | None) -> list[str]:
    """Metadata names, else header fields, else ``col1``; made unique."""
    keys = [c.name for c in columns or [] if c.name and c.name.strip()]
    if not keys and header:
        keys = [name if name.strip() else f"col{i + 1}" for i, name in enumerate(header)]
    if not keys:
        keys = ["col1"]

    used: set[str] = set()
    unique: list[str] = []
    for index, key in enumerate(keys):
        key = key if key.strip() else f"col{index + 1}"
        candidate, suffix = key, 2
        while candidate.lower() in used:
            candidate = f"{key}_{suffix}"
            suffix += 1
        used.add(candidate.lower())
        unique.append(candidate)
    return unique


def _unique_in_row(row: dict[str, str], key: str) -> str:
    taken = {k.lower() for k in row}
    if key.lower() not in taken:
        return key
    suffix = 2
    while f"{key}_{suffix}".lower() in taken:
        suffix += 1
    return f"{key}_{suffix}"


def parse_rows(
    lines: list[str], columns: list[ColumnInfo] | None, limit: int
) -> tuple[list[str], list[dict[str, str]]]:
    """Turn extracted CSV lines into (keys, rows).

    Rows wider than the keys get ``colN`` keys; short rows are padded with
    empty strings.
    """
    if not lines or limit <= 0:
        return [], []
    keys = build_keys(columns, parse_fields(lines[0]))
    ordered = list(keys)
    rows: list[dict[str, str]] = []
    for line in lines[1:]:
        if len(rows) >= limit:
            break
        fields = parse_fields(line)
        if not fields:
            continue
        row: dict[str, str] = {}
        for index in range(max(len(keys), len(fields))):
            key = keys[index] if index < len(keys) else f"col{index + 1}"
            key = _unique_in_row(row, key)
            row[key] = fields[index] if index < len(fields) else ""
            if key not in ordered:
                ordered.append(key)
        rows.append(row)
    return ordered, rows


class PreviewService:
    """Builds tabular previews on top of the execution worker."""

    def __init__(
        self,
        worker: ExecutionWorker,
        metadata: MetadataProvider,
        affinity: EngineAffinity | None = None,
    ) -> None:
        self._worker = worker
        self._metadata = metadata
        self._affinity = affinity

    def _call(self, fn, *args):
        return self._affinity.call(fn, *args) if self._affinity else fn(*args)

    def preview(
        self, server: str | None, libref: str, member: str, limit: int | None = None
    ) -> PreviewResult:
        """Export and parse the first *limit* rows of ``libref.member``.

        Raises:
            ValidationError: ``libref`` or ``member`` is blank.
            NotFoundError: Server, library or member is unknown.
            PreviewExtractionError: The program ran but produced no parseable rows.
        """
        if not libref or not libref.strip():
            raise ValidationError("libref is required", field="libref")
        if not member or not member.strip():
            raise ValidationError("member is required", field="member")

        target = (server or "").strip() or self._call(self._metadata.default_server)
        normalized = normalize_limit(limit)
        columns = self._call(self._metadata.list_columns, target, libref, member)

        job = self._worker.submit(
            ProgramRequest(code=build_preview_program(libref, member, normalized), server=target)
        )
        log.info("preview_job_finished", job_id=job.id, status=job.status.value, limit=normalized)

        if job.status is not JobStatus.COMPLETED:
            raise PreviewExtractionError(
                job.error or "preview program failed", job_id=job.id, status=job.status.value
            )
        if not has_markers(job.log):
            raise PreviewExtractionError(
                "unable to parse dataset preview from the engine log", job_id=job.id
            )
        lines = extract_marker_lines(job.log)
        if not lines:
            raise PreviewExtractionError("no preview data was captured from the engine log",
                                         job_id=job.id)

        keys, rows = parse_rows(lines, columns, normalized)
        return PreviewResult(
            server=target,
            libref=libref,
            member=member,
            job_id=job.id,
            limit=normalized,
            columns=keys,
            rows=rows,
        )
