"""REST transport: FastAPI application factory, routers and envelopes."""

from enginebridge.api.app import create_app

__all__ = ["create_app"]
