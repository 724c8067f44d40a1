"""
Tests for the bridge error taxonomy.
"""

from __future__ import annotations

import pytest

from enginebridge.core.errors import (
    ArtifactNotFoundError,
    BridgeError,
    CancelledError,
    CaptureTimeoutError,
    DatasetNotFoundError,
    ErrorCategory,
    ExecutionError,
    JobNotFoundError,
    LibraryNotFoundError,
    NotFoundError,
    PreviewExtractionError,
    ServerNotFoundError,
    ValidationError,
)


class TestBridgeError:
    def test_defaults(self):
        err = BridgeError("boom")
        assert str(err) == "boom"
        assert err.code == "INTERNAL"
        assert err.category is ErrorCategory.INTERNAL

    def test_cause_is_chained(self):
        cause = OSError("disk")
        err = BridgeError("wrapped", cause=cause)
        assert err.__cause__ is cause
        assert err.to_dict()["cause"] == "disk"

    def test_metadata_in_dict(self):
        err = BridgeError("x", job_id="abc")
        assert err.to_dict()["job_id"] == "abc"


class TestValidationError:
    def test_names_field(self):
        err = ValidationError("code is required", field="code")
        assert err.code == "VALIDATION_FAILED"
        assert err.field == "code"
        assert err.to_dict()["field"] == "code"


class TestNotFoundFamily:
    @pytest.mark.parametrize(
        "err",
        [
            ServerNotFoundError("SASApp"),
            LibraryNotFoundError("SASApp", "NOPE"),
            DatasetNotFoundError("SASHELP", "NOPE"),
            JobNotFoundError("abc"),
            ArtifactNotFoundError("abc", "log.txt"),
        ],
    )
    def test_all_map_to_not_found(self, err):
        assert isinstance(err, NotFoundError)
        assert err.code == "NOT_FOUND"

    def test_job_message(self):
        assert str(JobNotFoundError("abc")) == "Job 'abc' was not found."


class TestExecutionErrors:
    def test_timeout_message(self):
        err = CaptureTimeoutError(14400)
        assert isinstance(err, ExecutionError)
        assert err.code == "TIMED_OUT"
        assert str(err) == "engine did not report completion within 14400 seconds"

    def test_cancelled_message(self):
        assert str(CancelledError()) == "cancelled: bridge shutting down"

    def test_extraction_code(self):
        assert PreviewExtractionError("no rows").code == "EXTRACTION_FAILED"
