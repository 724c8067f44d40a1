"""
Common API schemas -- shared envelopes and RFC 7807 errors.

Every endpoint returns either :class:`SuccessResponse` (200/202) or
:class:`ProblemDetail` (4xx/5xx).  Artifact downloads are the one exception:
they stream the file itself.

Response Envelope Conventions:
    - Wire names are camelCase (``elapsedMs``); Python attributes stay snake_case
    - ``elapsedMs`` tracks server-side processing time
    - ``warnings`` contains non-fatal issues
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for wire models: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── RFC 7807 Problem Detail ─────────────────────────────────────────────


class ErrorDetail(CamelModel):
    """Field-level error detail (request validation)."""

    code: str = Field(description="Machine-readable error code (e.g., 'VALIDATION_FAILED')")
    message: str = Field(description="Human-readable error description")
    field: str | None = Field(default=None, description="Offending field, if any")


class ProblemDetail(CamelModel):
    """RFC 7807 «Problem Details for HTTP APIs».

    Error Codes:
        - ``VALIDATION_FAILED`` (400): Missing or invalid request field
        - ``NOT_FOUND`` (404): Unknown server, library, dataset, job or artifact
        - ``EXTRACTION_FAILED`` (502): Preview ran but produced no parseable rows
        - ``INTERNAL`` (500): Unexpected server error

    Example:
        {
            "type": "about:blank",
            "title": "Not Found",
            "status": 404,
            "detail": "Job 'abc' was not found.",
            "instance": "/jobs/abc",
            "errors": []
        }
    """

    type: str = Field(default="about:blank", description="Error type URI")
    title: str = Field(description="Short human-readable error summary")
    status: int = Field(description="HTTP status code")
    detail: str = Field(default="", description="Human-readable explanation of the error")
    instance: str = Field(default="", description="URI of the failing request")
    errors: list[ErrorDetail] = Field(default_factory=list)


# ── Success Envelope ────────────────────────────────────────────────────


class SuccessResponse(CamelModel, Generic[T]):
    """Standard success envelope."""

    data: T = Field(description="Response payload (type varies by endpoint)")
    elapsed_ms: float = Field(default=0.0, description="Server-side processing time in ms")
    warnings: list[str] = Field(default_factory=list, description="Non-fatal warnings")
