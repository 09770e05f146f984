"""
Chunked Export - parallel, partitioned export of SQL query results to CSV.

The result set of a data query is split into fixed-size row-number ranges;
each range is fetched with its own bounded query and streamed to its own
UTF-8 CSV file, with a bounded number of partitions in flight at once.

- Field encoding (RFC 4180 style quoting)
- Streaming range fetches over a psycopg connection pool
- Partition planning and a barrier-joined worker pool
- Per-partition failure isolation with a job-level summary
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from chunked_export.config import ExportJob, ExportSettings, get_settings, load_job
from chunked_export.domain.models import ExportResult, ExportSummary, JobState
from chunked_export.encoding import encode_field, encode_row
from chunked_export.errors import (
    ConfigError,
    ConnectionError,
    CountQueryError,
    ExportError,
    HeaderQueryError,
    PartitionQueryError,
    QueryError,
)
from chunked_export.fetcher import count_rows, fetch_header, fetch_rows
from chunked_export.orchestrator import ExportOrchestrator, run_export
from chunked_export.planner import Partition, partition_count, plan_partitions
from chunked_export.utils.logging import configure_logging, get_logger
from chunked_export.writer import write_chunk

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "ExportJob",
    "ExportSettings",
    "get_settings",
    "load_job",
    # Core engine
    "encode_field",
    "encode_row",
    "fetch_rows",
    "fetch_header",
    "count_rows",
    "write_chunk",
    "Partition",
    "partition_count",
    "plan_partitions",
    "ExportOrchestrator",
    "run_export",
    # Results
    "ExportResult",
    "ExportSummary",
    "JobState",
    # Errors
    "ExportError",
    "ConfigError",
    "ConnectionError",
    "QueryError",
    "HeaderQueryError",
    "CountQueryError",
    "PartitionQueryError",
    # Logging
    "configure_logging",
    "get_logger",
]
