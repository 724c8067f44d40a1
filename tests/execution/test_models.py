"""
Tests for job/artifact records and the status transition graph.
"""

from __future__ import annotations

import pytest

from enginebridge.core.timestamps import utc_now
from enginebridge.execution.models import (
    Artifact,
    InvalidTransitionError,
    Job,
    JobStatus,
    validate_job_transition,
)


class TestJobStatus:
    def test_terminal_set(self):
        assert JobStatus.COMPLETED.is_terminal
        assert JobStatus.FAILED.is_terminal
        assert JobStatus.TIMED_OUT.is_terminal
        assert not JobStatus.RUNNING.is_terminal
        assert not JobStatus.QUEUED.is_terminal

    def test_values_are_wire_names(self):
        assert JobStatus.TIMED_OUT.value == "timed_out"


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (JobStatus.QUEUED, JobStatus.RUNNING),
            (JobStatus.RUNNING, JobStatus.COMPLETED),
            (JobStatus.RUNNING, JobStatus.FAILED),
            (JobStatus.RUNNING, JobStatus.TIMED_OUT),
            (JobStatus.RUNNING, JobStatus.RUNNING),
        ],
    )
    def test_allowed(self, current, target):
        validate_job_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (JobStatus.QUEUED, JobStatus.FAILED),
            (JobStatus.COMPLETED, JobStatus.RUNNING),
            (JobStatus.FAILED, JobStatus.COMPLETED),
        ],
    )
    def test_rejected(self, current, target):
        with pytest.raises(InvalidTransitionError):
            validate_job_transition(current, target)


class TestJob:
    def _artifact(self, name: str) -> Artifact:
        return Artifact(
            name=name, path=f"/tmp/{name}", content_type="text/plain",
            size_bytes=1, created_at=utc_now(),
        )

    def test_find_artifact_by_id_then_name(self):
        log_artifact = self._artifact("log.txt")
        job = Job(status=JobStatus.COMPLETED, artifacts=[log_artifact])
        assert job.find_artifact(log_artifact.id) is log_artifact
        assert job.find_artifact("LOG.TXT") is log_artifact
        assert job.find_artifact("missing") is None
        assert job.find_artifact("") is None

    def test_status_dict_camel_case(self):
        job = Job(status=JobStatus.QUEUED, server="SASApp")
        data = job.status_dict()
        assert data["jobId"] == job.id
        assert data["status"] == "queued"
        assert data["startedAt"] is None
        assert set(data) >= {"submittedAt", "completedAt", "error"}

    def test_artifact_dict(self):
        data = self._artifact("a.csv").to_dict()
        assert data["sizeBytes"] == 1
        assert data["contentType"] == "text/plain"
        assert "createdAt" in data
