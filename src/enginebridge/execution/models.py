"""Execution domain models.

Defines the records the job registry owns:

- :class:`Job` -- one submitted program and its tracked lifecycle
- :class:`Artifact` -- a result file copied into the job's folder
- :class:`JobStatus` -- lifecycle states and the legal transitions

Records are plain dataclasses.  They are only ever mutated on private copies
inside :meth:`JobRegistry.mutate`; everything handed out of the registry is a
snapshot.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from enginebridge.core.timestamps import new_id, to_iso8601, utc_now


class InvalidTransitionError(ValueError):
    """Raised when an illegal status transition is attempted.

    Transition validation is strict: a terminal job never moves again and a
    queued job cannot skip ``running``.
    """

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid JobStatus transition: {current} → {target}")


class JobStatus(str, Enum):
    """Status of a submitted program.

    Valid transition graph::

        QUEUED  → RUNNING
        RUNNING → COMPLETED | FAILED | TIMED_OUT
        COMPLETED, FAILED, TIMED_OUT → (terminal)

    Synchronous submissions are created directly in ``RUNNING``.
    """

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.TIMED_OUT,
})

JOB_VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: TERMINAL_STATUSES,
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.TIMED_OUT: frozenset(),
}


def validate_job_transition(current: JobStatus, target: JobStatus) -> None:
    """Raise :class:`InvalidTransitionError` if *current → target* is illegal.

    Staying in the same non-terminal state is allowed (progress updates while
    running do not change status).
    """
    if current == target and not current.is_terminal:
        return
    if target not in JOB_VALID_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current.value, target.value)


@dataclass
class Artifact:
    """A result file associated with a terminal job.

    ``path`` always points inside the job's own artifact folder; the source
    file the engine produced is left untouched.
    """

    name: str
    path: str
    content_type: str
    size_bytes: int
    created_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "contentType": self.content_type,
            "sizeBytes": self.size_bytes,
            "createdAt": to_iso8601(self.created_at),
        }


@dataclass
class Job:
    """One submitted program and its tracked state."""

    status: JobStatus
    submitted_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)
    server: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error: str | None = None
    log: str = ""
    output: str = ""
    artifacts: list[Artifact] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> Job:
        """Independent deep copy -- the only form handed out of the registry."""
        return copy.deepcopy(self)

    def find_artifact(self, artifact_id: str) -> Artifact | None:
        """Look up an artifact by id, falling back to a case-insensitive name match."""
        if not artifact_id:
            return None
        wanted = artifact_id.lower()
        for artifact in self.artifacts:
            if artifact.id.lower() == wanted:
                return artifact
        for artifact in self.artifacts:
            if artifact.name.lower() == wanted:
                return artifact
        return None

    def status_dict(self) -> dict[str, Any]:
        """Wire shape of ``GET /jobs/{id}`` and the submit responses."""
        return {
            "jobId": self.id,
            "status": self.status.value,
            "server": self.server,
            "submittedAt": to_iso8601(self.submitted_at),
            "startedAt": to_iso8601(self.started_at),
            "completedAt": to_iso8601(self.completed_at),
            "error": self.error,
        }
