"""Simulated engine -- an in-process stand-in for a single engine session.

Runs the small statement dialect the bridge itself emits, so capture
redirection, previews and artifact harvesting behave end-to-end without a
licensed engine.  Supported statements::

    options source | nosource;
    filename <ref> temp | '<path>' | clear;
    libname ...;                                   (acknowledged, no effect)
    %put <text>;   %abort;
    proc printto [log=<ref>] [print=<ref>] [new]; run;
    proc export data=<lib>.<mem>[(obs=N)] outfile=<ref>|'<path>' dbms=csv; run;
    proc print data=<lib>.<mem>[(obs=N)]; run;
    data _null_;
        [infile <ref>|'<path>';] [input;] [file print|<ref>|'<path>';]
        putlog <items>;  put <items>;
    run;

``put``/``putlog`` items are quoted literals and ``_infile_``.  Any other
statement is echoed to the log and otherwise ignored.  Files written to a
quoted path (``outfile='...'`` or ``file '...'``) are reported as result
paths of the run.

Session state (filerefs, ``printto`` redirection, source echo) persists across
submissions, like a real session.  The whole program is interpreted at
submit time; ``run_seconds`` only delays when :meth:`poll_completion` starts
answering True.

Thread-safety: none -- the bridge calls every engine method from the single
engine-affinity thread.
"""

from __future__ import annotations

import csv
import io
import itertools
import re
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from enginebridge.core.errors import ExecutionError
from enginebridge.core.logging import get_logger
from enginebridge.core.timestamps import new_id

from .catalog import SampleCatalog, SampleTable
from .protocol import BaseEngine, ColumnInfo, DatasetInfo, LibraryInfo, ServerInfo

if TYPE_CHECKING:
    from enginebridge.execution.capture import CaptureDescriptor

log = get_logger(__name__)

_QUOTED = r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\""
_NAME = rf"(?:(?:{_QUOTED})n|[A-Za-z_][\w]*)"
_DATASET = re.compile(
    rf"^\s*({_NAME})\s*\.\s*({_NAME})\s*(?:\(\s*obs\s*=\s*(\d+)\s*\))?",
    re.IGNORECASE,
)
_OPTION = re.compile(rf"(\w+)\s*=\s*({_QUOTED}|[^\s()]+(?:\([^)]*\))?)", re.IGNORECASE)
_ITEM = re.compile(rf"{_QUOTED}|\S+")


class _Abort(Exception):
    """Raised by ``%abort`` to stop interpreting the program."""


@dataclass
class SimulatedRun:
    """Handle returned by :meth:`SimulatedEngine.submit`."""

    server: str
    ready_at: float
    id: str = field(default_factory=new_id)
    log_lines: list[str] = field(default_factory=list)
    listing_lines: list[str] = field(default_factory=list)
    results: list[Path] = field(default_factory=list)
    error: str | None = None


@dataclass
class _TempFile:
    lines: list[str] = field(default_factory=list)


def unquote(token: str) -> str:
    """Strip one level of quotes (and doubled inner quotes) from *token*."""
    text = token.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        quote = text[0]
        return text[1:-1].replace(quote * 2, quote)
    return text


def parse_name(token: str) -> str:
    """``'My Lib'n`` → ``My Lib``; plain names pass through."""
    text = token.strip()
    if len(text) >= 3 and text[-1] in "nN" and text[0] in "'\"" and text[-2] == text[0]:
        return unquote(text[:-1])
    return text


def split_statements(code: str) -> list[str]:
    """Split *code* on ``;`` outside quotes; blank statements are dropped."""
    statements: list[str] = []
    current: list[str] = []
    quote: str | None = None
    for ch in code or "":
        if quote:
            current.append(ch)
            if ch == quote:
                quote = None
        elif ch in "'\"":
            quote = ch
            current.append(ch)
        elif ch == ";":
            text = "".join(current).strip()
            if text:
                statements.append(text)
            current = []
        else:
            current.append(ch)
    tail = "".join(current).strip()
    if tail:
        statements.append(tail)
    return statements


class SimulatedEngine(BaseEngine):
    """In-process engine session backed by a :class:`SampleCatalog`.

    Args:
        catalog: Datasets ``proc export``/``proc print`` can read.
        run_seconds: Delay before a submitted run reports completion.
        temp_capture: Offer temporary filerefs from
            :meth:`create_capture_targets`, so the bridge wraps programs in
            temp-handle mode and fetches the captures afterwards.
    """

    name = "simulated"

    def __init__(
        self,
        catalog: SampleCatalog | None = None,
        *,
        run_seconds: float = 0.0,
        temp_capture: bool = False,
    ) -> None:
        self.catalog = catalog or SampleCatalog()
        self.run_seconds = run_seconds
        self.temp_capture = temp_capture
        self._filerefs: dict[str, Path | _TempFile] = {}
        self._log_target: str | None = None
        self._print_target: str | None = None
        self._echo_source = True
        self._line_numbers = itertools.count(1)
        self._temp_counter = itertools.count(1)
        self._run: SimulatedRun | None = None

    # ── ExecutionEngine ──────────────────────────────────────────

    def submit(self, code: str, server: str | None) -> SimulatedRun:
        target = self.catalog.server(server)
        run = SimulatedRun(server=target.name, ready_at=time.monotonic() + self.run_seconds)
        self._run = run
        log.debug("simulated_submit", run_id=run.id, server=run.server)
        try:
            self._interpret(code)
        except _Abort:
            run.error = "program terminated by %ABORT"
            self._write_log("ERROR: Execution terminated by an %ABORT statement.")
            self._log_target = self._print_target = None
        finally:
            self._run = None
        return run

    def poll_completion(self, handle: SimulatedRun) -> bool:
        return time.monotonic() >= handle.ready_at

    def cancel(self, handle: SimulatedRun) -> None:
        handle.ready_at = min(handle.ready_at, time.monotonic())

    def raise_for_status(self, handle: SimulatedRun) -> None:
        if handle.error:
            raise ExecutionError(handle.error, run_id=handle.id)

    def read_log(self, handle: SimulatedRun) -> str | None:
        return "\n".join(handle.log_lines) + "\n" if handle.log_lines else None

    def read_output(self, handle: SimulatedRun) -> str | None:
        return "\n".join(handle.listing_lines) + "\n" if handle.listing_lines else None

    def result_paths(self, handle: SimulatedRun) -> list[Path]:
        return list(handle.results)

    def create_capture_targets(
        self, server: str | None, seed_folder: Path
    ) -> tuple[str | None, str | None]:
        if not self.temp_capture:
            return None, None
        return f"#LN{next(self._temp_counter):05d}", f"#LN{next(self._temp_counter):05d}"

    def fetch_capture_files(self, descriptor: CaptureDescriptor, server: str | None) -> None:
        pairs = (
            (descriptor.submit_log_target, descriptor.log_path),
            (descriptor.submit_output_target, descriptor.output_path),
        )
        for source, destination in pairs:
            Path(destination).parent.mkdir(parents=True, exist_ok=True)
            if descriptor.uses_temp_handles:
                temp = self._filerefs.get(source.lower())
                if isinstance(temp, _TempFile):
                    Path(destination).write_text("\n".join(temp.lines) + "\n", encoding="utf-8")
            elif Path(source).is_file():
                shutil.copyfile(source, destination)

    # ── MetadataProvider (delegated to the catalog) ─────────────

    def default_server(self) -> str:
        return self.catalog.default_server()

    def list_servers(self) -> list[ServerInfo]:
        return self.catalog.list_servers()

    def list_libraries(self, server: str) -> list[LibraryInfo]:
        return self.catalog.list_libraries(server)

    def list_datasets(self, server: str, libref: str) -> list[DatasetInfo]:
        return self.catalog.list_datasets(server, libref)

    def list_columns(self, server: str, libref: str, member: str) -> list[ColumnInfo]:
        return self.catalog.list_columns(server, libref, member)

    def download_dataset(
        self, server: str, libref: str, member: str, folder: Path, row_limit: int = 0
    ) -> Path:
        return self.catalog.download_dataset(server, libref, member, folder, row_limit)

    # ── sinks ────────────────────────────────────────────────────

    def _append(self, target: str | None, line: str, session: list[str]) -> None:
        if target is None:
            session.append(line)
            return
        ref = self._filerefs.get(target.lower())
        if isinstance(ref, _TempFile):
            ref.lines.append(line)
        elif isinstance(ref, Path):
            ref.parent.mkdir(parents=True, exist_ok=True)
            with ref.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        else:
            session.append(line)

    def _write_log(self, line: str) -> None:
        if self._run is not None:
            self._append(self._log_target, line, self._run.log_lines)

    def _write_print(self, line: str) -> None:
        if self._run is not None:
            self._append(self._print_target, line, self._run.listing_lines)

    def _truncate(self, ref_name: str | None) -> None:
        ref = self._filerefs.get((ref_name or "").lower())
        if isinstance(ref, _TempFile):
            ref.lines.clear()
        elif isinstance(ref, Path):
            ref.parent.mkdir(parents=True, exist_ok=True)
            ref.write_text("", encoding="utf-8")

    def _resolve_file(self, token: str) -> Path | _TempFile | None:
        """A fileref name or a quoted path; quoted paths count as results."""
        token = token.strip()
        if token[:1] in "'\"":
            path = Path(unquote(token))
            if self._run is not None and path not in self._run.results:
                self._run.results.append(path)
            return path
        return self._filerefs.get(token.lower())

    def _write_lines(self, target: Path | _TempFile | None, lines: list[str]) -> None:
        if isinstance(target, _TempFile):
            target.lines[:] = lines
        elif isinstance(target, Path):
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def _read_lines(self, source: Path | _TempFile | None) -> list[str]:
        if isinstance(source, _TempFile):
            return list(source.lines)
        if isinstance(source, Path) and source.is_file():
            return source.read_text(encoding="utf-8", errors="replace").splitlines()
        return []

    # ── interpreter ──────────────────────────────────────────────

    def _interpret(self, code: str) -> None:
        step: tuple[str, str, list[str]] | None = None  # (kind, header, body)
        for statement in split_statements(code):
            if self._echo_source:
                for text in statement.splitlines():
                    self._write_log(f"{next(self._line_numbers):<6}{text.strip()};")
            keyword = statement.split(None, 1)[0].lower()
            rest = statement[len(keyword):].strip()

            if keyword in ("run", "quit"):
                if step is not None:
                    self._run_step(*step)
                step = None
            elif keyword == "data":
                if step is not None:
                    self._run_step(*step)
                step = ("data", rest, [])
            elif keyword == "proc":
                if step is not None:
                    self._run_step(*step)
                step = ("proc", rest, [])
            elif keyword in ("options", "filename", "libname", "%put", "%abort"):
                self._global_statement(keyword, rest)
            elif keyword.startswith("*"):
                continue
            elif step is not None:
                step[2].append(statement)
        if step is not None:
            self._run_step(*step)

    def _global_statement(self, keyword: str, rest: str) -> None:
        if keyword == "options":
            for option in rest.lower().split():
                if option == "nosource":
                    self._echo_source = False
                elif option == "source":
                    self._echo_source = True
        elif keyword == "filename":
            parts = rest.split(None, 1)
            if not parts:
                return
            ref = parts[0].lower()
            spec = parts[1].strip() if len(parts) > 1 else ""
            if spec.lower() == "clear":
                self._filerefs.pop(ref, None)
            elif spec.lower() == "temp":
                self._filerefs[ref] = _TempFile()
            elif spec[:1] in "'\"":
                self._filerefs[ref] = Path(unquote(spec))
        elif keyword == "libname":
            libref = rest.split(None, 1)[0].upper() if rest else ""
            self._write_log(f"NOTE: Libref {libref} was assigned.")
        elif keyword == "%put":
            self._write_log(rest)
        elif keyword == "%abort":
            raise _Abort()

    def _run_step(self, kind: str, header: str, body: list[str]) -> None:
        if kind == "data":
            self._data_step(body)
            return
        parts = header.split(None, 1)
        proc = parts[0].lower() if parts else ""
        options = parts[1] if len(parts) > 1 else ""
        if proc == "printto":
            self._proc_printto(options)
        elif proc == "export":
            self._proc_export(options)
        elif proc == "print":
            self._proc_print(options)
        else:
            self._write_log(f"NOTE: PROCEDURE {proc.upper()} used.")

    def _options(self, text: str) -> dict[str, str]:
        return {m.group(1).lower(): m.group(2) for m in _OPTION.finditer(text)}

    def _proc_printto(self, options: str) -> None:
        values = self._options(options)
        truncate = bool(re.search(r"\bnew\b", options, re.IGNORECASE))
        if not values:
            self._log_target = None
            self._print_target = None
            return
        if "log" in values:
            self._log_target = values["log"]
            if truncate:
                self._truncate(self._log_target)
        if "print" in values:
            self._print_target = values["print"]
            if truncate:
                self._truncate(self._print_target)

    def _dataset(self, options: str) -> tuple[SampleTable | None, str, int]:
        match = re.search(r"\bdata\s*=\s*(.*)$", options, re.IGNORECASE | re.DOTALL)
        ds = _DATASET.match(match.group(1)) if match else None
        if ds is None:
            return None, "", 0
        libref, member = parse_name(ds.group(1)), parse_name(ds.group(2))
        obs = int(ds.group(3)) if ds.group(3) else 0
        server = self._run.server if self._run else None
        table = self.catalog.find_table(server, libref, member)
        label = f"{libref.upper()}.{member.upper()}"
        if table is None:
            self._write_log(f"ERROR: File {label}.DATA does not exist.")
        return table, label, obs

    def _proc_export(self, options: str) -> None:
        table, label, obs = self._dataset(options)
        outfile = self._options(options).get("outfile")
        if table is None or outfile is None:
            return
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(table.column_names)
        rows = table.head(obs)
        writer.writerows(rows)
        self._write_lines(self._resolve_file(outfile), buffer.getvalue().splitlines())
        self._write_log(f"NOTE: {len(rows)} records were written from {label}.")

    def _proc_print(self, options: str) -> None:
        table, label, obs = self._dataset(options)
        if table is None:
            return
        names = table.column_names
        rows = table.head(obs)
        widths = [
            max([len(name)] + [len(row[i]) for row in rows]) for i, name in enumerate(names)
        ]
        self._write_print(f"The dataset {label}")
        self._write_print("")
        self._write_print("  ".join(n.rjust(w) for n, w in zip(names, widths, strict=True)))
        for row in rows:
            self._write_print("  ".join(v.rjust(w) for v, w in zip(row, widths, strict=True)))
        self._write_log(f"NOTE: There were {len(rows)} observations read from {label}.")

    def _data_step(self, body: list[str]) -> None:
        infile: Path | _TempFile | None = None
        has_infile = False
        out_target: str | Path | _TempFile | None = None
        puts: list[tuple[str, str]] = []
        for statement in body:
            parts = statement.split(None, 1)
            keyword = parts[0].lower()
            rest = parts[1].strip() if len(parts) > 1 else ""
            token = _ITEM.match(rest)
            if keyword == "infile":
                has_infile = True
                infile = self._resolve_file(token.group(0)) if token else None
            elif keyword == "file":
                name = token.group(0) if token else "log"
                if name.lower() == "print":
                    out_target = "print"
                elif name.lower() == "log":
                    out_target = None
                else:
                    out_target = self._resolve_file(name)
            elif keyword in ("put", "putlog"):
                puts.append((keyword, rest))

        records = self._read_lines(infile) if has_infile else [""]
        written: list[str] = []
        for record in records:
            for keyword, items in puts:
                line = self._render(items, record)
                if keyword == "putlog" or out_target is None:
                    self._write_log(line)
                elif out_target == "print":
                    self._write_print(line)
                else:
                    written.append(line)
        if isinstance(out_target, (Path, _TempFile)):
            self._write_lines(out_target, written)
        if has_infile:
            self._write_log(f"NOTE: {len(records)} records were read from the infile.")

    @staticmethod
    def _render(items: str, record: str) -> str:
        parts: list[str] = []
        for token in _ITEM.findall(items):
            if token[:1] in "'\"":
                parts.append(unquote(token))
            elif token.lower() == "_infile_":
                parts.append(record)
        return "".join(parts)
