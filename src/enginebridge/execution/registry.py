"""Job registry -- the single owner of every job's mutable state.

Usage::

    registry = JobRegistry(capacity=200)
    registry.create(Job(status=JobStatus.QUEUED))

    snapshot = registry.get(job_id)            # deep copy, safe to read
    registry.mutate(job_id, lambda j: setattr(j, "log", text))

Thread-safety:
    ``create``, ``get`` and ``mutate`` share one ``threading.Lock`` that is
    held only for dictionary work and record copying -- never for file or
    engine I/O.  Callers always receive snapshots, so a reader can never race
    with the worker that is updating the same job.

Bounding:
    Insertion order is tracked with an ``OrderedDict``.  Once more than
    ``capacity`` jobs are stored, the oldest-inserted ids are evicted.  A
    lookup of an evicted id raises :class:`JobNotFoundError` exactly like an id
    that never existed.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import Callable

from enginebridge.core.errors import JobNotFoundError
from enginebridge.core.logging import get_logger

from .models import InvalidTransitionError, Job, validate_job_transition

log = get_logger(__name__)

DEFAULT_CAPACITY = 200


class JobRegistry:
    """Thread-safe, bounded store of :class:`Job` records keyed by id."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._jobs: OrderedDict[str, Job] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def create(self, job: Job) -> Job:
        """Insert *job* and return a snapshot of what was stored.

        Re-creating an existing id replaces the record but keeps its original
        insertion position.
        """
        stored = job.snapshot()
        evicted: list[str] = []
        with self._lock:
            self._jobs[stored.id] = stored
            while len(self._jobs) > self._capacity:
                oldest, _ = self._jobs.popitem(last=False)
                evicted.append(oldest)
            result = stored.snapshot()

        for job_id in evicted:
            log.debug("job_evicted", job_id=job_id, capacity=self._capacity)
        return result

    def get(self, job_id: str) -> Job:
        """Return an immutable snapshot of the job.

        Raises:
            JobNotFoundError: The id never existed or has been evicted.
        """
        with self._lock:
            record = self._jobs.get(job_id) if job_id else None
            if record is None:
                raise JobNotFoundError(job_id)
            return record.snapshot()

    def mutate(self, job_id: str, update_fn: Callable[[Job], None]) -> Job:
        """Apply *update_fn* to a copy of the job and store the copy.

        This is the only path that changes a job.  A status change made by
        *update_fn* is validated against the lifecycle graph; an illegal one
        raises :class:`InvalidTransitionError` and nothing is stored.

        Returns:
            Snapshot of the stored record.

        Raises:
            JobNotFoundError: The id never existed or has been evicted.
        """
        with self._lock:
            current = self._jobs.get(job_id) if job_id else None
            if current is None:
                raise JobNotFoundError(job_id)

            updated = current.snapshot()
            update_fn(updated)
            if updated.id != current.id:
                raise ValueError("update_fn must not change the job id")
            if current.is_terminal:
                # Terminal records are frozen; a no-op update is tolerated.
                if updated != current:
                    raise InvalidTransitionError(current.status.value, updated.status.value)
                return updated
            validate_job_transition(current.status, updated.status)

            self._jobs[job_id] = updated
            return updated.snapshot()

    def list(self) -> list[Job]:
        """Snapshots of all retained jobs, oldest first."""
        with self._lock:
            return [job.snapshot() for job in self._jobs.values()]

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)
