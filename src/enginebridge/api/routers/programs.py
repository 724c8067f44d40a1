"""
Programs router -- submit code to the engine.

Endpoints:
    POST /programs/submit          Run and wait; returns the terminal job
    POST /programs/submit/async    Queue and return at once (202)
"""

from __future__ import annotations

from fastapi import APIRouter

from enginebridge.api.deps import Runtime
from enginebridge.api.schemas.domains import ProgramSubmitBody
from enginebridge.api.utils import envelope, started
from enginebridge.execution.worker import ProgramRequest

router = APIRouter(prefix="/programs")


def _to_request(body: ProgramSubmitBody) -> ProgramRequest:
    return ProgramRequest(
        code=body.code or "",
        server=body.server,
        server_log_path=body.server_log_path,
        server_output_path=body.server_output_path,
    )


@router.post("/submit")
def submit_program(body: ProgramSubmitBody, runtime: Runtime):
    """Execute synchronously.

    The response carries the job's terminal status; engine failures show up
    as ``status: failed`` with ``error`` set, not as an HTTP error.
    """
    start = started()
    job = runtime.worker.submit(_to_request(body))
    return envelope(job.status_dict(), start)


@router.post("/submit/async", status_code=202)
def submit_program_async(body: ProgramSubmitBody, runtime: Runtime):
    """Queue for background execution; poll ``GET /jobs/{jobId}``."""
    start = started()
    job = runtime.worker.submit_async(_to_request(body))
    return envelope(job.status_dict(), start, status_code=202)
