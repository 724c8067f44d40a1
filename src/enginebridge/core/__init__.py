"""Engine-bridge core -- errors, logging, settings and time helpers.

Layer 1 -- Type System & Errors
    errors.py          Structured error hierarchy (BridgeError and friends)
    timestamps.py      UTC helpers and job identifiers

Layer 2 -- Runtime configuration
    logging.py         structlog configuration and scoped context
    settings.py        Shared pydantic-settings base class
"""

from enginebridge.core.errors import (
    ArtifactNotFoundError,
    BridgeError,
    DatasetNotFoundError,
    ExecutionError,
    JobNotFoundError,
    LibraryNotFoundError,
    NotFoundError,
    PreviewExtractionError,
    ServerNotFoundError,
    ValidationError,
)

__all__ = [
    "ArtifactNotFoundError",
    "BridgeError",
    "DatasetNotFoundError",
    "ExecutionError",
    "JobNotFoundError",
    "LibraryNotFoundError",
    "NotFoundError",
    "PreviewExtractionError",
    "ServerNotFoundError",
    "ValidationError",
]
