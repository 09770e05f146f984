"""
Domain package for chunked exports.

Exports the result and state models shared by the writer, orchestrator and
reporter. Keep this package focused on data definitions.
"""

from chunked_export.domain.models import ExportResult, ExportSummary, JobState

__all__ = [
    "ExportResult",
    "ExportSummary",
    "JobState",
]
