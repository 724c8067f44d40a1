"""Engine protocols -- the narrow boundary between the bridge and the engine.

The bridge never reaches into an engine object looking for members.  An
adapter implements these two protocols and nothing else is assumed.

ARCHITECTURE
────────────
::

    ExecutionEngine (Protocol)
      ├── .submit(code, server)          ─ start a program, return a handle
      ├── .poll_completion(handle)       ─ True once the program finished
      ├── .raise_for_status(handle)      ─ raise ExecutionError if it failed
      ├── .read_log(handle)              ─ engine-side log text (or None)
      ├── .read_output(handle)           ─ engine-side listing text (or None)
      ├── .result_paths(handle)          ─ roots to search for result files
      ├── .create_capture_targets(...)   ─ engine-side capture handles (optional)
      ├── .fetch_capture_files(...)      ─ copy engine-side captures locally
      └── .close()                       ─ release the session at shutdown

    MetadataProvider (Protocol)
      ├── .default_server()
      ├── .list_servers() / .list_libraries() / .list_datasets() / .list_columns()
      └── .download_dataset(...)         ─ materialize a member as a local file

    Implementations:
      SimulatedEngine     ─ in-process engine + catalog (dev, tests, default)
      BatchCommandEngine  ─ one OS process per program (batch engine CLI)

:class:`BaseEngine` supplies the optional capabilities as no-ops so adapters
only override what their engine supports.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from enginebridge.execution.capture import CaptureDescriptor


# ── Catalog records ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class ServerInfo:
    name: str
    is_assigned: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "isAssigned": self.is_assigned}


@dataclass(frozen=True)
class LibraryInfo:
    name: str
    libref: str
    is_assigned: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "libref": self.libref, "isAssigned": self.is_assigned}


@dataclass(frozen=True)
class DatasetInfo:
    member: str
    libref: str
    server: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    label: str | None = None
    type: str | None = None
    length: int | None = None
    format: str | None = None
    informat: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# ── Protocols ────────────────────────────────────────────────────────────


@runtime_checkable
class ExecutionEngine(Protocol):
    """Adapter around one engine session.

    All methods are called from the bridge's single engine-affinity thread.
    """

    name: str

    def submit(self, code: str, server: str | None) -> Any:
        """Start *code* on *server* (None = engine default); return a handle.

        Raises:
            ExecutionError: The engine refused the submission.
        """
        ...

    def poll_completion(self, handle: Any) -> bool:
        """True once the program behind *handle* has finished."""
        ...

    def raise_for_status(self, handle: Any) -> None:
        """Raise :class:`ExecutionError` if the finished program failed."""
        ...

    def read_log(self, handle: Any) -> str | None: ...

    def read_output(self, handle: Any) -> str | None: ...

    def result_paths(self, handle: Any) -> Iterable[Any]:
        """Roots (paths, lists, mappings, records) that may name result files."""
        ...

    def create_capture_targets(
        self, server: str | None, seed_folder: Path
    ) -> tuple[str | None, str | None]:
        """Engine-side (log, output) capture targets, or (None, None)."""
        ...

    def fetch_capture_files(self, descriptor: CaptureDescriptor, server: str | None) -> None:
        """Copy engine-side capture targets to the descriptor's local paths."""
        ...

    def cancel(self, handle: Any) -> None:
        """Abandon the program behind *handle* (poll ceiling or shutdown)."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class MetadataProvider(Protocol):
    """Catalog of execution targets, libraries and dataset members.

    Unknown names raise the matching ``NotFoundError`` subclass.
    """

    def default_server(self) -> str: ...

    def list_servers(self) -> list[ServerInfo]: ...

    def list_libraries(self, server: str) -> list[LibraryInfo]: ...

    def list_datasets(self, server: str, libref: str) -> list[DatasetInfo]: ...

    def list_columns(self, server: str, libref: str, member: str) -> list[ColumnInfo]: ...

    def download_dataset(
        self, server: str, libref: str, member: str, folder: Path, row_limit: int = 0
    ) -> Path:
        """Write the member into *folder* and return the produced file."""
        ...


class BaseEngine:
    """Defaults for the optional engine capabilities."""

    name = "base"

    def raise_for_status(self, handle: Any) -> None:
        return None

    def read_log(self, handle: Any) -> str | None:
        return None

    def read_output(self, handle: Any) -> str | None:
        return None

    def result_paths(self, handle: Any) -> Iterable[Any]:
        return ()

    def create_capture_targets(
        self, server: str | None, seed_folder: Path
    ) -> tuple[str | None, str | None]:
        return None, None

    def fetch_capture_files(self, descriptor: CaptureDescriptor, server: str | None) -> None:
        return None

    def cancel(self, handle: Any) -> None:
        return None

    def close(self) -> None:
        """Release the session; called once at bridge shutdown."""
        return None
