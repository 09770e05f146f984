"""
Infrastructure package for chunked exports.

Centralizes database connectivity concerns (pool lifecycle, retries, session
settings). Keep this layer focused on I/O and resource management, decoupled
from planning/orchestration logic.
"""

from chunked_export.infrastructure.db_factory import (
    QuerySource,
    apply_statement_timeout,
    export_pool,
    open_pool,
)

__all__ = [
    "QuerySource",
    "apply_statement_timeout",
    "export_pool",
    "open_pool",
]
