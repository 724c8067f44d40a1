"""CORS middleware -- permissive origin header and blanket preflight answers.

Every response gets ``Access-Control-Allow-Origin``.  ``OPTIONS`` on any path
is answered directly with ``204`` and the allowed methods/headers, whether or
not a route exists for it.  Exceptions escaping the app are turned into the
500 envelope here so they keep the header too.
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from enginebridge.api.middleware.errors import unhandled_exception_handler

ALLOW_METHODS = "GET,POST,OPTIONS"
ALLOW_HEADERS = "Content-Type"


class PermissiveCORSMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, allow_origin: str = "*") -> None:
        super().__init__(app)
        self.allow_origin = allow_origin

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS":
            return Response(
                status_code=204,
                headers={
                    "Access-Control-Allow-Origin": self.allow_origin,
                    "Access-Control-Allow-Methods": ALLOW_METHODS,
                    "Access-Control-Allow-Headers": ALLOW_HEADERS,
                },
            )
        try:
            response = await call_next(request)
        except Exception as exc:
            response = await unhandled_exception_handler(request, exc)
        response.headers["Access-Control-Allow-Origin"] = self.allow_origin
        return response
