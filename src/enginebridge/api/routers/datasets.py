"""
Datasets router -- materialize a dataset as a local file.

Endpoints:
    POST /datasets/open    Export ``libref.member`` under the bridge data dir
"""

from __future__ import annotations

from fastapi import APIRouter

from enginebridge.api.deps import Runtime
from enginebridge.api.schemas.domains import DatasetOpenBody
from enginebridge.api.utils import envelope, started
from enginebridge.core.logging import get_logger

log = get_logger(__name__)

router = APIRouter(prefix="/datasets")


@router.post("/open")
def open_dataset(body: DatasetOpenBody, runtime: Runtime):
    """Download the dataset and report its local path and size.

    Raises:
        400 VALIDATION_FAILED: libref/member missing or rowLimit negative.
        404 NOT_FOUND: Unknown server, library or member.
    """
    start = started()
    log.info("dataset_open_request", body=body.model_dump(by_alias=True))
    export = runtime.exporter.export(
        body.server,
        body.libref or "",
        body.member or "",
        row_limit=body.row_limit or 0,
        format=body.format,
    )
    data = export.to_dict()
    log.info("dataset_open_response", response=data)
    return envelope(data, start)
