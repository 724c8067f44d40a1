"""In-memory catalog of servers, libraries and dataset members.

``SampleCatalog`` is the :class:`MetadataProvider` the bridge falls back to
when the engine adapter does not describe its own catalog.  It ships a small
fixed set of targets so the REST surface is browsable without a live engine::

    SASApp (assigned)
      ├── SASHELP: CLASS, CARS, FISH
      └── WORK:    TEMP_USERS
    SASAppVA
      └── PUBLIC:  CUSTOMERS

Lookups are case-insensitive; unknown names raise the matching
``NotFoundError`` subclass.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from pathlib import Path

from enginebridge.core.errors import (
    DatasetNotFoundError,
    LibraryNotFoundError,
    ServerNotFoundError,
)
from enginebridge.core.timestamps import sanitize_segment

from .protocol import ColumnInfo, DatasetInfo, LibraryInfo, ServerInfo


@dataclass
class SampleTable:
    """Column metadata plus the rows a member holds."""

    member: str
    columns: list[ColumnInfo]
    rows: list[tuple[str, ...]] = field(default_factory=list)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def head(self, limit: int = 0) -> list[tuple[str, ...]]:
        """First *limit* rows; ``0`` or less means all of them."""
        return list(self.rows) if limit <= 0 else list(self.rows[:limit])


@dataclass
class SampleLibrary:
    libref: str
    name: str
    tables: dict[str, SampleTable] = field(default_factory=dict)


@dataclass
class SampleServer:
    name: str
    is_assigned: bool = False
    libraries: dict[str, SampleLibrary] = field(default_factory=dict)


def _char(name: str, length: int, label: str | None = None) -> ColumnInfo:
    return ColumnInfo(name=name, label=label, type="char", length=length, format=f"${length}.")


def _num(name: str, label: str | None = None, fmt: str = "BEST12.") -> ColumnInfo:
    return ColumnInfo(name=name, label=label, type="num", length=8, format=fmt)


def _default_servers() -> list[SampleServer]:
    class_table = SampleTable(
        member="CLASS",
        columns=[
            _char("Name", 8),
            _char("Sex", 1),
            _num("Age"),
            _num("Height"),
            _num("Weight"),
        ],
        rows=[
            ("Alfred", "M", "14", "69", "112.5"),
            ("Alice", "F", "13", "56.5", "84"),
            ("Barbara", "F", "13", "65.3", "98"),
            ("Carol", "F", "14", "62.8", "102.5"),
            ("Henry", "M", "14", "63.5", "102.5"),
            ("James", "M", "12", "57.3", "83"),
            ("Jane", "F", "12", "59.8", "84.5"),
            ("Janet", "F", "15", "62.5", "112.5"),
            ("Jeffrey", "M", "13", "62.5", "84"),
            ("John", "M", "12", "59", "99.5"),
            ("Joyce", "F", "11", "51.3", "50.5"),
            ("Judy", "F", "14", "64.3", "90"),
            ("Louise", "F", "12", "56.3", "77"),
            ("Mary", "F", "15", "66.5", "112"),
            ("Philip", "M", "16", "72", "150"),
            ("Robert", "M", "12", "64.8", "128"),
            ("Ronald", "M", "15", "67", "133"),
            ("Thomas", "M", "11", "57.5", "85"),
            ("William", "M", "15", "66.5", "112"),
        ],
    )
    cars_table = SampleTable(
        member="CARS",
        columns=[
            _char("Make", 13),
            _char("Model", 40),
            _char("Type", 8),
            _char("Origin", 6),
            _num("MSRP", fmt="DOLLAR8."),
        ],
        rows=[
            ("Acura", "MDX", "SUV", "Asia", "36945"),
            ("Acura", "RSX Type S 2dr", "Sedan", "Asia", "23820"),
            ("Audi", "A4 1.8T 4dr", "Sedan", "Europe", "25940"),
            ("BMW", "X3 3.0i", "SUV", "Europe", "37000"),
            ("Buick", "Rainier", "SUV", "USA", "37895"),
            ("Chevrolet", "Corvette 2dr", "Sports", "USA", "44535"),
        ],
    )
    fish_table = SampleTable(
        member="FISH",
        columns=[_char("Species", 9), _num("Weight"), _num("Length1"), _num("Height")],
        rows=[
            ("Bream", "242", "23.2", "11.52"),
            ("Bream", "290", "24", "12.48"),
            ("Roach", "40", "12.9", "4.1472"),
            ("Pike", "200", "30", "5.568"),
            ("Smelt", "6.7", "9.3", "1.7388"),
        ],
    )
    temp_users = SampleTable(
        member="TEMP_USERS",
        columns=[_num("ID", fmt="8."), _char("NAME", 32), _char("VALUE", 32)],
        rows=[("1", "alpha", "10"), ("2", "beta", "20"), ("3", "gamma", "30")],
    )
    customers = SampleTable(
        member="CUSTOMERS",
        columns=[
            _num("ID", fmt="8."),
            _char("NAME", 40, label="Customer name"),
            _char("COUNTRY", 2),
        ],
        rows=[
            ("100", "Acme, Inc.", "US"),
            ("101", 'The "Blue" Shop', "GB"),
            ("102", "Kaffee Haus", "DE"),
            ("103", "Nordic Foods", "SE"),
        ],
    )

    def library(libref: str, name: str, *tables: SampleTable) -> SampleLibrary:
        return SampleLibrary(libref=libref, name=name, tables={t.member.upper(): t for t in tables})

    return [
        SampleServer(
            name="SASApp",
            is_assigned=True,
            libraries={
                "SASHELP": library("SASHELP", "SASHELP", class_table, cars_table, fish_table),
                "WORK": library("WORK", "WORK", temp_users),
            },
        ),
        SampleServer(
            name="SASAppVA",
            libraries={"PUBLIC": library("PUBLIC", "Public Data", customers)},
        ),
    ]


class SampleCatalog:
    """Fixed, browsable catalog implementing ``MetadataProvider``."""

    def __init__(self, servers: list[SampleServer] | None = None) -> None:
        self._servers = servers if servers is not None else _default_servers()

    # ── lookup helpers ───────────────────────────────────────────

    def server(self, name: str | None) -> SampleServer:
        wanted = (name or "").strip() or self.default_server()
        for server in self._servers:
            if server.name.lower() == wanted.lower():
                return server
        raise ServerNotFoundError(wanted)

    def library(self, server: str | None, libref: str) -> SampleLibrary:
        target = self.server(server)
        found = target.libraries.get((libref or "").strip().upper())
        if found is None:
            raise LibraryNotFoundError(target.name, libref)
        return found

    def table(self, server: str | None, libref: str, member: str) -> SampleTable:
        lib = self.library(server, libref)
        found = lib.tables.get((member or "").strip().upper())
        if found is None:
            raise DatasetNotFoundError(lib.libref, member)
        return found

    def find_table(self, server: str | None, libref: str, member: str) -> SampleTable | None:
        """Like :meth:`table` but returns ``None`` instead of raising."""
        try:
            return self.table(server, libref, member)
        except (ServerNotFoundError, LibraryNotFoundError, DatasetNotFoundError):
            return None

    # ── MetadataProvider ─────────────────────────────────────────

    def default_server(self) -> str:
        for server in self._servers:
            if server.is_assigned:
                return server.name
        if not self._servers:
            raise ServerNotFoundError("(default)")
        return self._servers[0].name

    def list_servers(self) -> list[ServerInfo]:
        return [ServerInfo(name=s.name, is_assigned=s.is_assigned) for s in self._servers]

    def list_libraries(self, server: str) -> list[LibraryInfo]:
        target = self.server(server)
        return [LibraryInfo(name=lib.name, libref=lib.libref) for lib in target.libraries.values()]

    def list_datasets(self, server: str, libref: str) -> list[DatasetInfo]:
        target = self.server(server)
        lib = self.library(target.name, libref)
        return [
            DatasetInfo(member=t.member, libref=lib.libref, server=target.name)
            for t in lib.tables.values()
        ]

    def list_columns(self, server: str, libref: str, member: str) -> list[ColumnInfo]:
        return list(self.table(server, libref, member).columns)

    def download_dataset(
        self, server: str, libref: str, member: str, folder: Path, row_limit: int = 0
    ) -> Path:
        """Write the member as ``<folder>/<MEMBER>.sas7bdat`` (CSV payload)."""
        table = self.table(server, libref, member)
        folder = Path(folder)
        folder.mkdir(parents=True, exist_ok=True)
        target = folder / f"{sanitize_segment(table.member.upper(), 'dataset')}.sas7bdat"
        with target.open("w", encoding="utf-8", newline="") as fh:
            writer = csv.writer(fh, lineterminator="\n")
            writer.writerow(table.column_names)
            writer.writerows(table.head(row_limit))
        return target
