"""
Shared pytest fixtures for engine-bridge tests.

This module provides:
- ``settings``: API settings rooted in ``tmp_path`` with fast polling
- ``runtime``: a fully wired runtime on the simulated engine
- ``client``: a ``TestClient`` over ``create_app`` (lifespan included)
- ``worker_factory``: builds an ``ExecutionWorker`` around any engine
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from enginebridge.api.app import create_app
from enginebridge.api.settings import BridgeAPISettings
from enginebridge.execution import EngineAffinity, ExecutionGate, ExecutionWorker, JobRegistry
from enginebridge.runtime import BridgeRuntime, build_runtime


@pytest.fixture()
def settings(tmp_path: Path) -> BridgeAPISettings:
    return BridgeAPISettings(
        _env_file=None,
        data_dir=tmp_path / "bridge",
        poll_interval_seconds=0.01,
        poll_timeout_seconds=10,
        log_json=False,
        log_level="WARNING",
    )


@pytest.fixture()
def runtime(settings: BridgeAPISettings) -> Generator[BridgeRuntime, None, None]:
    rt = build_runtime(settings)
    yield rt
    rt.close()


@pytest.fixture()
def client(settings: BridgeAPISettings) -> Generator[TestClient, None, None]:
    app = create_app(settings=settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def worker_factory(tmp_path: Path) -> Generator[Callable[..., ExecutionWorker], None, None]:
    """Build workers around a given engine; all are shut down afterwards."""
    created: list[tuple[ExecutionWorker, EngineAffinity]] = []

    def make(engine, **kwargs) -> ExecutionWorker:
        affinity = kwargs.pop("affinity", None) or EngineAffinity()
        worker = ExecutionWorker(
            engine,
            kwargs.pop("registry", None) or JobRegistry(),
            jobs_root=tmp_path / "jobs",
            gate=kwargs.pop("gate", None) or ExecutionGate(),
            affinity=affinity,
            poll_interval=kwargs.pop("poll_interval", 0.01),
            **kwargs,
        )
        created.append((worker, affinity))
        return worker

    yield make
    for worker, affinity in created:
        worker.shutdown(wait=True)
        affinity.shutdown(wait=True)
