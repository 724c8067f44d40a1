"""
Tests for dataset export (``POST /datasets/open`` backend).
"""

from __future__ import annotations

import pytest

from enginebridge.core.errors import (
    DatasetNotFoundError,
    ServerNotFoundError,
    ValidationError,
)
from enginebridge.engines.catalog import SampleCatalog
from enginebridge.services.datasets import DatasetExporter


@pytest.fixture()
def exporter(tmp_path) -> DatasetExporter:
    return DatasetExporter(SampleCatalog(), tmp_path / "exports")


class TestExport:
    def test_writes_under_server_and_library(self, exporter, tmp_path):
        export = exporter.export(None, "sashelp", "class")
        expected = tmp_path / "exports" / "SASApp" / "sashelp" / "CLASS.sas7bdat"
        assert export.path == expected.resolve()
        assert export.size_bytes == expected.stat().st_size
        assert export.server == "SASApp"
        data = export.to_dict()
        assert data["filename"] == "CLASS.sas7bdat"
        assert data["sizeBytes"] == export.size_bytes

    def test_row_limit(self, exporter):
        export = exporter.export("SASApp", "SASHELP", "CLASS", row_limit=3)
        assert len(export.path.read_text().splitlines()) == 4

    def test_previous_export_replaced(self, exporter):
        full = exporter.export("SASApp", "SASHELP", "CLASS")
        full_size = full.size_bytes
        small = exporter.export("SASApp", "SASHELP", "CLASS", row_limit=1)
        assert small.path == full.path
        assert small.size_bytes < full_size
        assert small.size_bytes == small.path.stat().st_size

    def test_segments_sanitized(self, tmp_path):
        from enginebridge.engines.catalog import SampleLibrary, SampleServer, SampleTable
        from enginebridge.engines.protocol import ColumnInfo

        catalog = SampleCatalog([
            SampleServer(
                name="App:Server",
                libraries={
                    "LIB": SampleLibrary(
                        "LIB", "LIB", {"T": SampleTable("T", [ColumnInfo(name="A")], [("1",)])}
                    )
                },
            )
        ])
        export = DatasetExporter(catalog, tmp_path).export("App:Server", "LIB", "T")
        assert export.path.parent.parent.name == "App_Server"


class TestValidation:
    @pytest.mark.parametrize(
        "libref,member,kwargs,field",
        [
            ("", "CLASS", {}, "libref"),
            ("SASHELP", "  ", {}, "member"),
            ("SASHELP", "CLASS", {"row_limit": -1}, "rowLimit"),
            ("SASHELP", "CLASS", {"format": "xlsx"}, "format"),
        ],
    )
    def test_rejects(self, exporter, libref, member, kwargs, field):
        with pytest.raises(ValidationError) as exc:
            exporter.export(None, libref, member, **kwargs)
        assert exc.value.field == field

    def test_unknown_member_writes_nothing(self, exporter, tmp_path):
        with pytest.raises(DatasetNotFoundError):
            exporter.export(None, "SASHELP", "NOPE")
        with pytest.raises(ServerNotFoundError):
            exporter.export("Nowhere", "SASHELP", "CLASS")
        assert not (tmp_path / "exports").exists()
