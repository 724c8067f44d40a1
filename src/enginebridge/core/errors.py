"""
Structured error types for the engine bridge.

Every error the bridge raises on purpose extends :class:`BridgeError`.  Each
carries a machine-readable ``code`` that the API layer maps to an HTTP status,
a category for log routing, and an optional chained cause.

Taxonomy:
    ::

        BridgeError
          ├── ValidationError          VALIDATION_FAILED   400
          ├── NotFoundError            NOT_FOUND           404
          │     ├── ServerNotFoundError
          │     ├── LibraryNotFoundError
          │     ├── DatasetNotFoundError
          │     ├── JobNotFoundError
          │     └── ArtifactNotFoundError
          ├── ExecutionError           EXECUTION_FAILED    (job state only)
          │     └── CaptureTimeoutError  TIMED_OUT
          └── PreviewExtractionError   EXTRACTION_FAILED   502

Propagation rules:
    - Validation failures are the only errors surfaced synchronously by the
      submit endpoints.
    - Engine and parse failures inside a running job become job state
      (``failed`` / ``timed_out``) and are never re-raised to the submitter.
    - Capture reads and artifact copies swallow their own errors.

Examples:
    >>> err = ValidationError("code is required", field="code")
    >>> err.code
    'VALIDATION_FAILED'
    >>> err.to_dict()["field"]
    'code'
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Coarse classification used for log routing."""

    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    ENGINE = "ENGINE"
    PARSE = "PARSE"
    STORAGE = "STORAGE"
    INTERNAL = "INTERNAL"


class BridgeError(Exception):
    """Base exception for all engine-bridge errors.

    Attributes:
        message: Human-readable description (also ``str(exc)``).
        code: Machine-readable error code, mapped to an HTTP status by
            :func:`enginebridge.api.middleware.errors.status_for_error_code`.
        category: :class:`ErrorCategory` for log routing.
        cause: Wrapped underlying exception, if any.
    """

    default_code: str = "INTERNAL"
    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        category: ErrorCategory | None = None,
        cause: Exception | None = None,
        **metadata: Any,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.category = category or self.default_category
        self.cause = cause
        self.metadata = metadata

        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "category": self.category.value,
        }
        result.update(self.metadata)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, code={self.code})"


# =============================================================================
# REQUEST ERRORS
# =============================================================================


class ValidationError(BridgeError):
    """A request is missing a required field or carries an invalid one.

    The message always names the offending field so the caller can fix the
    request without reading server logs.
    """

    default_code = "VALIDATION_FAILED"
    default_category = ErrorCategory.VALIDATION

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any):
        super().__init__(message, field=field, **kwargs)
        self.field = field


class NotFoundError(BridgeError):
    """A named resource does not exist (or was evicted)."""

    default_code = "NOT_FOUND"
    default_category = ErrorCategory.NOT_FOUND


class ServerNotFoundError(NotFoundError):
    def __init__(self, server: str):
        super().__init__(f"Server '{server}' was not found.", server=server)


class LibraryNotFoundError(NotFoundError):
    def __init__(self, server: str, libref: str):
        super().__init__(
            f"Library '{libref}' was not found on server '{server}'.",
            server=server,
            libref=libref,
        )


class DatasetNotFoundError(NotFoundError):
    def __init__(self, libref: str, member: str):
        super().__init__(
            f"Dataset '{member}' was not found in '{libref}'.",
            libref=libref,
            member=member,
        )


class JobNotFoundError(NotFoundError):
    """Unknown job id: it never existed or the registry evicted it."""

    def __init__(self, job_id: str):
        super().__init__(f"Job '{job_id}' was not found.", job_id=job_id)
        self.job_id = job_id


class ArtifactNotFoundError(NotFoundError):
    def __init__(self, job_id: str, artifact_id: str):
        super().__init__(
            f"Artifact '{artifact_id}' was not found for job '{job_id}'.",
            job_id=job_id,
            artifact_id=artifact_id,
        )


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExecutionError(BridgeError):
    """The engine rejected or failed a submission.

    Raised inside the execution worker and converted to ``failed`` job state;
    it never reaches an HTTP caller directly.
    """

    default_code = "EXECUTION_FAILED"
    default_category = ErrorCategory.ENGINE


class CaptureTimeoutError(ExecutionError):
    """The engine did not report completion within the polling ceiling."""

    default_code = "TIMED_OUT"

    def __init__(self, timeout: float):
        super().__init__(
            f"engine did not report completion within {timeout:g} seconds",
            timeout=timeout,
        )
        self.timeout = timeout


class CancelledError(ExecutionError):
    """The worker's cancellation signal fired while a job was polling."""

    default_code = "CANCELLED"

    def __init__(self, reason: str = "bridge shutting down"):
        super().__init__(f"cancelled: {reason}")


class PreviewExtractionError(BridgeError):
    """The preview program ran but its log could not be turned into rows.

    Distinct from :class:`DatasetNotFoundError`: the dataset exists, the
    marker protocol failed (missing markers, zero rows, failed submission).
    """

    default_code = "EXTRACTION_FAILED"
    default_category = ErrorCategory.PARSE


__all__ = [
    "ErrorCategory",
    "BridgeError",
    "ValidationError",
    "NotFoundError",
    "ServerNotFoundError",
    "LibraryNotFoundError",
    "DatasetNotFoundError",
    "JobNotFoundError",
    "ArtifactNotFoundError",
    "ExecutionError",
    "CaptureTimeoutError",
    "CancelledError",
    "PreviewExtractionError",
]
