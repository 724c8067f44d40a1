from enginebridge.api.schemas.common import ErrorDetail, ProblemDetail, SuccessResponse
from enginebridge.api.schemas.domains import DatasetOpenBody, ProgramSubmitBody

__all__ = [
    "DatasetOpenBody",
    "ErrorDetail",
    "ProblemDetail",
    "ProgramSubmitBody",
    "SuccessResponse",
]
