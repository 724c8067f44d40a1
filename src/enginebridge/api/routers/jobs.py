"""
Jobs router -- status, log tail, output and artifacts of submitted programs.

Endpoints:
    GET /jobs/{job_id}
    GET /jobs/{job_id}/log?offset=N
    GET /jobs/{job_id}/output
    GET /jobs/{job_id}/artifacts
    GET /jobs/{job_id}/artifacts/{artifact_id}    (file download)

Every endpoint answers 404 for an id the registry does not hold.
"""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Query
from fastapi.responses import FileResponse

from enginebridge.api.deps import Runtime
from enginebridge.api.utils import envelope, started
from enginebridge.core.errors import ArtifactNotFoundError

router = APIRouter(prefix="/jobs")


@router.get("/{job_id}")
def get_job(job_id: str, runtime: Runtime):
    start = started()
    return envelope(runtime.registry.get(job_id).status_dict(), start)


@router.get("/{job_id}/log")
def get_job_log(
    job_id: str,
    runtime: Runtime,
    offset: int = Query(default=0, description="Character offset already consumed"),
):
    """Incremental log tail.

    ``offset`` is clamped into ``[0, len(log)]``; pass the returned
    ``nextOffset`` back to read only what was appended since.
    """
    start = started()
    job = runtime.registry.get(job_id)
    text = job.log or ""
    offset = min(max(offset, 0), len(text))
    return envelope(
        {
            "jobId": job.id,
            "status": job.status.value,
            "log": text[offset:],
            "offset": offset,
            "nextOffset": len(text),
            "isComplete": job.is_terminal,
        },
        start,
    )


@router.get("/{job_id}/output")
def get_job_output(job_id: str, runtime: Runtime):
    start = started()
    job = runtime.registry.get(job_id)
    return envelope(
        {"jobId": job.id, "status": job.status.value, "output": job.output or ""},
        start,
    )


@router.get("/{job_id}/artifacts")
def list_artifacts(job_id: str, runtime: Runtime):
    start = started()
    job = runtime.registry.get(job_id)
    return envelope(
        {
            "jobId": job.id,
            "status": job.status.value,
            "artifacts": [a.to_dict() for a in job.artifacts],
        },
        start,
    )


@router.get("/{job_id}/artifacts/{artifact_id}")
def download_artifact(job_id: str, artifact_id: str, runtime: Runtime):
    """Stream one artifact as an attachment, matched by id then by name."""
    job = runtime.registry.get(job_id)
    artifact = job.find_artifact(artifact_id)
    if artifact is None or not Path(artifact.path).is_file():
        raise ArtifactNotFoundError(job_id, artifact_id)
    return FileResponse(
        artifact.path,
        media_type=artifact.content_type or "application/octet-stream",
        filename=artifact.name,
    )
