"""
Discovery router -- service banner and liveness.

Endpoints:
    GET /          Service name, version and the list of routes
    GET /health    Liveness plus gate/registry gauges
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from enginebridge import __version__
from enginebridge.api.deps import Runtime, Settings
from enginebridge.api.utils import envelope, started

router = APIRouter()


@router.get("/")
def banner(request: Request, settings: Settings):
    """Service banner listing every routed endpoint."""
    start = started()
    endpoints = sorted(
        f"{method.upper()} {path}"
        for path, operations in request.app.openapi()["paths"].items()
        for method in operations
    )
    return envelope(
        {"service": settings.api_title, "version": __version__, "endpoints": endpoints},
        start,
    )


@router.get("/health")
def health(runtime: Runtime):
    start = started()
    gate = runtime.worker.gate
    return envelope(
        {
            "status": "ok",
            "version": __version__,
            "engine": runtime.engine.name,
            "jobs": len(runtime.registry),
            "activeJobs": sum(1 for job in runtime.registry.list() if not job.is_terminal),
            "gateLocked": gate.locked,
            "queueDepth": gate.waiting,
        },
        start,
    )
