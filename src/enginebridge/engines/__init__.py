"""Engine adapters.

Usage:
    from enginebridge.engines import build_engine

    engine = build_engine(settings)          # "simulated" or "batch"
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .batch import BatchCommandEngine
from .catalog import SampleCatalog
from .protocol import (
    BaseEngine,
    ColumnInfo,
    DatasetInfo,
    ExecutionEngine,
    LibraryInfo,
    MetadataProvider,
    ServerInfo,
)
from .simulated import SimulatedEngine

if TYPE_CHECKING:
    from enginebridge.core.settings import BridgeBaseSettings


def build_engine(settings: BridgeBaseSettings) -> ExecutionEngine:
    """Construct the adapter named by ``settings.engine``."""
    if settings.engine == "batch":
        return BatchCommandEngine(settings.batch_command, settings.data_dir / "batch")
    return SimulatedEngine()


def metadata_for(engine: ExecutionEngine) -> MetadataProvider:
    """The engine itself when it describes a catalog, else the sample catalog."""
    if isinstance(engine, MetadataProvider):
        return engine
    return SampleCatalog()


__all__ = [
    "BaseEngine",
    "BatchCommandEngine",
    "ColumnInfo",
    "DatasetInfo",
    "ExecutionEngine",
    "LibraryInfo",
    "MetadataProvider",
    "SampleCatalog",
    "ServerInfo",
    "SimulatedEngine",
    "build_engine",
    "metadata_for",
]
