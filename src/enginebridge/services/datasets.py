"""Dataset export -- materialize a member as a local file for ``POST /datasets/open``.

Files land in ``<exports_root>/<server>/<libref>/<MEMBER>.sas7bdat`` (each
segment sanitized).  A previous export of the same member is replaced.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from enginebridge.core.errors import BridgeError, ValidationError
from enginebridge.core.logging import get_logger
from enginebridge.core.timestamps import sanitize_segment
from enginebridge.engines.protocol import MetadataProvider
from enginebridge.execution.affinity import EngineAffinity

log = get_logger(__name__)

SUPPORTED_FORMATS = ("sas7bdat",)


@dataclass(frozen=True)
class DatasetExport:
    server: str
    libref: str
    member: str
    path: Path
    size_bytes: int
    content_type: str = "application/octet-stream"

    @property
    def filename(self) -> str:
        return self.path.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "server": self.server,
            "libref": self.libref,
            "member": self.member,
            "path": str(self.path),
            "filename": self.filename,
            "sizeBytes": self.size_bytes,
            "contentType": self.content_type,
        }


class DatasetExporter:
    def __init__(
        self,
        metadata: MetadataProvider,
        exports_root: Path,
        affinity: EngineAffinity | None = None,
    ) -> None:
        self._metadata = metadata
        self._exports_root = Path(exports_root)
        self._affinity = affinity

    def _call(self, fn, *args):
        return self._affinity.call(fn, *args) if self._affinity else fn(*args)

    def export(
        self,
        server: str | None,
        libref: str,
        member: str,
        row_limit: int = 0,
        format: str | None = None,
    ) -> DatasetExport:
        """Download ``libref.member`` and report where it went.

        Raises:
            ValidationError: Blank libref/member, negative row limit or an
                unsupported format.
            NotFoundError: Server, library or member is unknown.
        """
        if not libref or not libref.strip():
            raise ValidationError("libref is required", field="libref")
        if not member or not member.strip():
            raise ValidationError("member is required", field="member")
        if row_limit is not None and row_limit < 0:
            raise ValidationError("rowLimit must not be negative", field="rowLimit")
        if format and format.strip().lower() not in SUPPORTED_FORMATS:
            raise ValidationError(f"unsupported format '{format}'", field="format")

        target = (server or "").strip() or self._call(self._metadata.default_server)
        # unknown names raise NotFoundError before anything is written
        self._call(self._metadata.list_columns, target, libref, member)
        folder = (
            self._exports_root
            / sanitize_segment(target, "default")
            / sanitize_segment(libref.strip(), "library")
        )
        folder.mkdir(parents=True, exist_ok=True)
        desired = folder / f"{sanitize_segment(member.strip().upper(), 'dataset')}.sas7bdat"
        desired.unlink(missing_ok=True)

        log.info("dataset_export_started", server=target, libref=libref, member=member)
        produced = Path(
            self._call(
                self._metadata.download_dataset, target, libref, member, folder, row_limit or 0
            )
        )
        if not produced.is_file():
            raise BridgeError(f"dataset download completed but no file was produced in {folder}")
        if produced.resolve() != desired.resolve():
            produced.replace(desired)
            produced = desired

        result = DatasetExport(
            server=target,
            libref=libref,
            member=member,
            path=produced.resolve(),
            size_bytes=produced.stat().st_size,
        )
        log.info("dataset_export_finished", path=str(result.path), size_bytes=result.size_bytes)
        return result
