"""Shared base settings for the engine bridge.

``BridgeBaseSettings`` holds everything the execution side of the bridge needs
(capture defaults, polling cadence and ceiling, registry bounds, engine
selection).  :class:`enginebridge.api.settings.BridgeAPISettings` extends it
with the REST transport knobs.

Settings are read once at startup; nothing in the bridge writes them back.
The two ``default_server_*_path`` fields are the persisted default capture
targets: when both are set, every submission that does not carry its own
engine-side paths redirects its log/output there.

Examples:
    >>> settings = BridgeBaseSettings(poll_timeout_seconds=60)
    >>> settings.jobs_root.name
    'jobs'
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeBaseSettings(BaseSettings):
    """Common settings shared by the worker, services and API.

    Fields
    ──────
    host / port          : Bind address for the HTTP transport
    debug / log_level    : Observability
    data_dir             : Root for capture files, artifacts and exports
    default_server_*     : Persisted engine-side capture targets
    poll_*               : Completion polling cadence and hard ceiling
    registry_capacity    : Jobs retained before the oldest is evicted
    max_background_jobs  : Thread pool size for async submissions
    engine / batch_*     : Which engine adapter to build
    """

    model_config = SettingsConfigDict(
        env_prefix="BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Network ──────────────────────────────────────────────────
    host: str = "127.0.0.1"
    port: int = Field(default=17832, ge=1, le=65535)

    # ── Observability ────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool | None = Field(default=None, description="None = auto (JSON when not a TTY)")

    # ── Storage ──────────────────────────────────────────────────
    data_dir: Path = Field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "enginebridge",
        description="Root directory for capture files, artifacts and exports",
    )

    # ── Capture defaults ─────────────────────────────────────────
    default_server_log_path: str | None = None
    default_server_output_path: str | None = None

    # ── Execution ────────────────────────────────────────────────
    poll_interval_seconds: float = Field(default=0.3, gt=0)
    poll_timeout_seconds: float = Field(default=4 * 60 * 60, gt=0)
    registry_capacity: int = Field(default=200, ge=1)
    max_background_jobs: int = Field(default=4, ge=1)

    # ── Engine ───────────────────────────────────────────────────
    engine: Literal["simulated", "batch"] = "simulated"
    batch_command: list[str] = Field(
        default_factory=lambda: ["sas", "-sysin", "{program}", "-log", "{log}", "-print", "{output}"],
        description="argv template for the batch engine",
    )

    @model_validator(mode="after")
    def _capture_paths_together(self) -> BridgeBaseSettings:
        has_log = bool((self.default_server_log_path or "").strip())
        has_output = bool((self.default_server_output_path or "").strip())
        if has_log != has_output:
            raise ValueError(
                "default_server_log_path and default_server_output_path must be provided together"
            )
        return self

    @property
    def jobs_root(self) -> Path:
        """Per-job capture and artifact folders live under here."""
        return Path(self.data_dir).expanduser() / "jobs"

    @property
    def exports_root(self) -> Path:
        """Datasets materialized by ``POST /datasets/open``."""
        return Path(self.data_dir).expanduser() / "exports"
