"""Runtime container -- the long-lived objects one bridge process owns.

Built once at application startup and stored on ``app.state.runtime``::

    runtime = build_runtime(settings)
    runtime.worker.submit(ProgramRequest(code="..."))
    runtime.close()
"""

from __future__ import annotations

from dataclasses import dataclass

from enginebridge.core.logging import get_logger
from enginebridge.core.settings import BridgeBaseSettings
from enginebridge.engines import build_engine, metadata_for
from enginebridge.engines.protocol import ExecutionEngine, MetadataProvider
from enginebridge.execution import (
    ArtifactHarvester,
    EngineAffinity,
    ExecutionGate,
    ExecutionWorker,
    JobRegistry,
)
from enginebridge.services import DatasetExporter, PreviewService

log = get_logger(__name__)


@dataclass
class BridgeRuntime:
    settings: BridgeBaseSettings
    engine: ExecutionEngine
    metadata: MetadataProvider
    registry: JobRegistry
    affinity: EngineAffinity
    worker: ExecutionWorker
    previews: PreviewService
    exporter: DatasetExporter

    def call(self, fn, *args, **kwargs):
        """Run an engine or metadata call on the engine-affinity thread."""
        return self.affinity.call(fn, *args, **kwargs)

    def close(self) -> None:
        """Cancel in-flight jobs, drain the pool and release the engine."""
        self.worker.shutdown(wait=True)
        try:
            self.affinity.call(self.engine.close)
        finally:
            self.affinity.shutdown(wait=True)
        log.info("runtime_closed", engine=self.engine.name)


def build_runtime(
    settings: BridgeBaseSettings,
    engine: ExecutionEngine | None = None,
    metadata: MetadataProvider | None = None,
) -> BridgeRuntime:
    """Wire registry, gate, affinity thread, worker and services for *settings*."""
    engine = engine or build_engine(settings)
    metadata = metadata or metadata_for(engine)
    jobs_root = settings.jobs_root
    jobs_root.mkdir(parents=True, exist_ok=True)

    registry = JobRegistry(capacity=settings.registry_capacity)
    affinity = EngineAffinity()
    worker = ExecutionWorker(
        engine,
        registry,
        jobs_root=jobs_root,
        gate=ExecutionGate(),
        affinity=affinity,
        harvester=ArtifactHarvester(jobs_root),
        poll_interval=settings.poll_interval_seconds,
        poll_timeout=settings.poll_timeout_seconds,
        max_background_jobs=settings.max_background_jobs,
        default_log_path=settings.default_server_log_path,
        default_output_path=settings.default_server_output_path,
    )
    log.info(
        "runtime_built",
        engine=engine.name,
        data_dir=str(settings.data_dir),
        registry_capacity=settings.registry_capacity,
    )
    return BridgeRuntime(
        settings=settings,
        engine=engine,
        metadata=metadata,
        registry=registry,
        affinity=affinity,
        worker=worker,
        previews=PreviewService(worker, metadata, affinity),
        exporter=DatasetExporter(metadata, settings.exports_root, affinity),
    )
