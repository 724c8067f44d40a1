"""
Request bodies accepted by the bridge.

Responses are built from the domain records' ``to_dict()`` shapes and wrapped
in :class:`~enginebridge.api.schemas.common.SuccessResponse`.
"""

from __future__ import annotations

from pydantic import Field

from enginebridge.api.schemas.common import CamelModel


class ProgramSubmitBody(CamelModel):
    """Body of ``POST /programs/submit`` and ``POST /programs/submit/async``.

    Example:
        {
            "server": "SASApp",
            "code": "proc print data=sashelp.class; run;",
            "serverLogPath": "/sas/work/bridge.log",
            "serverOutputPath": "/sas/work/bridge.lst"
        }
    """

    server: str | None = Field(default=None, description="Execution target; engine default if omitted")
    code: str | None = Field(default=None, description="Program text (required)")
    server_log_path: str | None = Field(
        default=None, description="Engine-side log capture path (pairs with serverOutputPath)"
    )
    server_output_path: str | None = Field(
        default=None, description="Engine-side listing capture path (pairs with serverLogPath)"
    )


class DatasetOpenBody(CamelModel):
    """Body of ``POST /datasets/open``."""

    server: str | None = Field(default=None, description="Execution target; engine default if omitted")
    libref: str | None = Field(default=None, description="Library reference (required)")
    member: str | None = Field(default=None, description="Dataset member name (required)")
    row_limit: int | None = Field(default=0, description="Rows to export; 0 exports everything")
    format: str | None = Field(default="sas7bdat", description="Export format")
