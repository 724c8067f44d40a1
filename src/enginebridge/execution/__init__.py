"""Job execution and tracking.

    models.py      Job / Artifact records and the status transition graph
    registry.py    JobRegistry -- bounded, snapshotting store (sole mutation path)
    gate.py        ExecutionGate -- one program against the engine at a time
    affinity.py    EngineAffinity -- the single thread engine calls run on
    capture.py     Capture descriptor, program wrapping, tolerant reads
    artifacts.py   ArtifactHarvester -- result-file discovery and copying
    worker.py      ExecutionWorker -- sync/async submit, execute-and-finalize
"""

from .affinity import EngineAffinity
from .artifacts import ArtifactHarvester
from .capture import CaptureChannel, CaptureDescriptor, resolve_descriptor, wrap_program
from .gate import ExecutionGate
from .models import Artifact, InvalidTransitionError, Job, JobStatus
from .registry import JobRegistry
from .worker import ExecutionWorker, ProgramRequest

__all__ = [
    "Artifact",
    "ArtifactHarvester",
    "CaptureChannel",
    "CaptureDescriptor",
    "EngineAffinity",
    "ExecutionGate",
    "ExecutionWorker",
    "InvalidTransitionError",
    "Job",
    "JobRegistry",
    "JobStatus",
    "ProgramRequest",
    "resolve_descriptor",
    "wrap_program",
]
