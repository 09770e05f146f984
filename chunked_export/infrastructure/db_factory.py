"""
Query-source factory for chunked exports.

Opens a psycopg ``ConnectionPool`` sized to the export's worker count and
scopes it to a single run: every partition task borrows one connection through
``pool.connection()`` and returns it on success, error or early exit. There is
no process-wide singleton; each run owns its pool.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, ContextManager, Dict, Generator, Protocol

import psycopg
from psycopg_pool import ConnectionPool
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from chunked_export.config import ExportJob, ExportSettings
from chunked_export.errors import ConnectionError
from chunked_export.utils.logging import get_logger

log = get_logger(__name__)


class QuerySource(Protocol):
    """
    Anything that hands out DB-API style connections as a context manager.

    ``psycopg_pool.ConnectionPool`` satisfies this directly; tests provide
    in-memory fakes.
    """

    def connection(self) -> ContextManager[Any]:
        ...


def connection_kwargs(job: ExportJob) -> Dict[str, Any]:
    """Credentials passed alongside the URL so they never end up in log lines."""
    return {
        "user": job.db_username,
        "password": job.db_password.get_secret_value(),
    }


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(psycopg.OperationalError),
    reraise=True,
)
def _open_pool(conninfo: str, kwargs: Dict[str, Any], size: int, timeout: float) -> ConnectionPool:
    pool = ConnectionPool(
        conninfo=conninfo,
        kwargs=kwargs,
        min_size=1,
        max_size=size,
        open=False,
        name="chunked-export",
    )
    try:
        pool.open(wait=True, timeout=timeout)
    except Exception:
        pool.close()
        raise
    return pool


def open_pool(job: ExportJob, settings: ExportSettings) -> ConnectionPool:
    """
    Open a connection pool with one slot per export worker.

    Retries up to 3 times with exponential backoff for transient failures
    (``PoolTimeout`` is an ``OperationalError``).

    Raises
    ------
    ConnectionError
        If the pool cannot reach the database after all retry attempts.
    """
    try:
        pool = _open_pool(
            job.db_url,
            connection_kwargs(job),
            size=settings.concurrency,
            timeout=settings.connect_timeout,
        )
    except psycopg.Error as exc:
        raise ConnectionError(
            f"could not connect to {job.db_url}: {exc}",
            detail={"url": job.db_url, "user": job.db_username},
            cause=exc,
        ) from exc
    log.info(
        "Connection pool opened",
        extra={"url": job.db_url, "max_size": settings.concurrency},
    )
    return pool


@contextmanager
def export_pool(job: ExportJob, settings: ExportSettings) -> Generator[ConnectionPool, None, None]:
    """
    Context manager owning the pool for the duration of one export run.

    Example
    -------
        with export_pool(job, settings) as pool:
            with pool.connection() as conn:
                ...
    """
    pool = open_pool(job, settings)
    try:
        yield pool
    finally:
        pool.close()
        log.info("Connection pool closed", extra={"url": job.db_url})


def apply_statement_timeout(cursor: Any, timeout_ms: int) -> None:
    """Limit statements in the current transaction; ``0`` leaves the server default."""
    if timeout_ms > 0:
        cursor.execute("select set_config('statement_timeout', %s, true)", (f"{timeout_ms}ms",))


__all__ = [
    "QuerySource",
    "apply_statement_timeout",
    "connection_kwargs",
    "export_pool",
    "open_pool",
]
