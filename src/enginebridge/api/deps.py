"""
FastAPI dependency injection -- settings and the bridge runtime.

Usage in routers::

    from enginebridge.api.deps import Runtime

    @router.get("/jobs/{job_id}")
    def get_job(job_id: str, runtime: Runtime):
        ...
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from enginebridge.api.settings import BridgeAPISettings
from enginebridge.runtime import BridgeRuntime

# ── Settings (singleton) ─────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_settings() -> BridgeAPISettings:
    """Cached settings -- loaded once per process."""
    return BridgeAPISettings()


# ── Runtime (built in the app lifespan) ──────────────────────────────────


def get_runtime(request: Request) -> BridgeRuntime:
    """The runtime created at startup and stored on ``app.state``."""
    return request.app.state.runtime


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[BridgeAPISettings, Depends(get_settings)]
Runtime = Annotated[BridgeRuntime, Depends(get_runtime)]
