"""
Catalog router -- servers, libraries, datasets, columns and previews.

Endpoints:
    GET /servers
    GET /servers/{server}/libraries
    GET /servers/{server}/libraries/{libref}/datasets
    GET /servers/{server}/libraries/{libref}/datasets/{member}/columns
    GET /servers/{server}/libraries/{libref}/datasets/{member}/preview?limit=N

Unknown names surface as 404 through the metadata provider's
``NotFoundError`` subclasses.  Every metadata call runs on the
engine-affinity thread.
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from enginebridge.api.deps import Runtime
from enginebridge.api.utils import envelope, started

router = APIRouter(prefix="/servers")


@router.get("")
def list_servers(runtime: Runtime):
    start = started()
    servers = runtime.call(runtime.metadata.list_servers)
    return envelope([s.to_dict() for s in servers], start)


@router.get("/{server}/libraries")
def list_libraries(server: str, runtime: Runtime):
    start = started()
    libraries = runtime.call(runtime.metadata.list_libraries, server)
    return envelope([lib.to_dict() for lib in libraries], start)


@router.get("/{server}/libraries/{libref}/datasets")
def list_datasets(server: str, libref: str, runtime: Runtime):
    start = started()
    datasets = runtime.call(runtime.metadata.list_datasets, server, libref)
    return envelope([ds.to_dict() for ds in datasets], start)


@router.get("/{server}/libraries/{libref}/datasets/{member}/columns")
def list_columns(server: str, libref: str, member: str, runtime: Runtime):
    start = started()
    columns = runtime.call(runtime.metadata.list_columns, server, libref, member)
    return envelope([c.to_dict() for c in columns], start)


@router.get("/{server}/libraries/{libref}/datasets/{member}/preview")
def preview_dataset(
    server: str,
    libref: str,
    member: str,
    runtime: Runtime,
    limit: int | None = Query(default=None, description="Rows to return (1..500, default 20)"),
):
    """Run the marker-delimited export and return parsed rows.

    Blocks for the duration of one synchronous program run.
    """
    start = started()
    result = runtime.previews.preview(server, libref, member, limit)
    return envelope(result.to_dict(), start)
