"""Services composed on top of the execution worker and the metadata provider."""

from .datasets import DatasetExport, DatasetExporter
from .preview import PreviewResult, PreviewService

__all__ = ["DatasetExport", "DatasetExporter", "PreviewResult", "PreviewService"]
