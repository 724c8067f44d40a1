"""
Shared API router utilities.

- ``envelope()`` -- wrap a payload in :class:`SuccessResponse` with ``elapsedMs``
- ``started()`` -- the matching ``perf_counter`` start mark

Routers stay thin: they call the runtime, then hand the plain-dict payload
to :func:`envelope`.
"""

from __future__ import annotations

import time
from typing import Any

from fastapi.responses import JSONResponse

from enginebridge.api.schemas.common import SuccessResponse


def started() -> float:
    return time.perf_counter()


def envelope(
    data: Any,
    start: float,
    *,
    status_code: int = 200,
    warnings: list[str] | None = None,
) -> JSONResponse:
    """Serialize *data* inside the success envelope."""
    body = SuccessResponse[Any](
        data=data,
        elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
        warnings=warnings or [],
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, mode="json"))
