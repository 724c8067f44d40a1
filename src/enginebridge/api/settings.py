"""
API-specific settings.

Extends :class:`~enginebridge.core.settings.BridgeBaseSettings` with the
parameters that only the REST transport uses.  All values can be overridden
through ``BRIDGE_``-prefixed environment variables or a ``.env`` file.
"""

from __future__ import annotations

from pydantic import Field

from enginebridge import __version__
from enginebridge.core.settings import BridgeBaseSettings


class BridgeAPISettings(BridgeBaseSettings):
    """Settings for the engine-bridge REST API.

    Order of precedence (highest → lowest):
        1. Environment variables (``BRIDGE_PORT``, ``BRIDGE_ENGINE``, ...)
        2. ``.env`` file
        3. Defaults below
    """

    api_title: str = Field(default="engine-bridge API", description="OpenAPI title")
    api_version: str = Field(default=__version__, description="OpenAPI version string")
    cors_allow_origin: str = Field(
        default="*", description="Value of Access-Control-Allow-Origin on every response"
    )
    docs_enabled: bool = Field(default=True, description="Serve /docs and /openapi.json")
