"""
Row fetching for chunked exports.

All reads go through a ``QuerySource`` (a psycopg pool in production). Range
reads use a named, server-side cursor and ``fetchmany`` batching so a
partition is streamed rather than loaded; the connection is held only while
the generator is being consumed.

Column conventions: the header query's first column and the data query's
first and last columns are synthetic helpers (row number, window metadata) and
are dropped before anything is written.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Iterator, List, Optional, Sequence

import psycopg

from chunked_export.errors import CountQueryError, HeaderQueryError, PartitionQueryError
from chunked_export.infrastructure.db_factory import QuerySource, apply_statement_timeout

Row = List[Optional[str]]


def to_text(value: Any) -> Optional[str]:
    """Canonical text form of a column value; ``None`` stays ``None``."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def _project(raw: Sequence[Any], skip_leading: int, skip_trailing: int) -> Row:
    stop = len(raw) - skip_trailing
    return [to_text(value) for value in raw[skip_leading:stop]]


def _batched_fetch(cursor: Any, batch_size: int) -> Iterator[Sequence[Any]]:
    """
    Yield batches from a cursor using fetchmany.
    """
    while True:
        batch = cursor.fetchmany(batch_size)
        if not batch:
            break
        yield batch


def fetch_rows(
    source: QuerySource,
    query: str,
    start: int,
    end: int,
    *,
    skip_leading: int = 1,
    skip_trailing: int = 1,
    batch_size: int = 1_000,
    cursor_name: Optional[str] = None,
    statement_timeout_ms: int = 0,
) -> Iterator[Row]:
    """
    Stream the rows of one bounded-range query.

    Parameters
    ----------
    source : QuerySource
        Provider of pooled connections.
    query : str
        Range query with two ``%s`` placeholders, bound to ``(start, end)``.
    start, end : int
        Inclusive row-number bounds.
    skip_leading, skip_trailing : int
        Synthetic columns to drop from each side of every row.
    batch_size : int
        Rows per ``fetchmany`` round trip.
    cursor_name : str, optional
        Name for a server-side cursor; ``None`` uses a client-side cursor.
    statement_timeout_ms : int
        Per-transaction statement timeout; ``0`` keeps the server default.

    Raises
    ------
    PartitionQueryError
        If the driver reports an error while acquiring, executing or reading.
    """
    try:
        with source.connection() as conn:
            if statement_timeout_ms:
                with conn.cursor() as setup:
                    apply_statement_timeout(setup, statement_timeout_ms)
            cursor_cm = conn.cursor(name=cursor_name) if cursor_name else conn.cursor()
            with cursor_cm as cur:
                cur.execute(query, (start, end))
                for batch in _batched_fetch(cur, batch_size):
                    for raw in batch:
                        yield _project(raw, skip_leading, skip_trailing)
    except psycopg.Error as exc:
        raise PartitionQueryError(
            f"range query for rows {start}..{end} failed: {exc}",
            start=start,
            end=end,
            cause=exc,
        ) from exc


def fetch_header(source: QuerySource, query: str, *, skip_leading: int = 1) -> Row:
    """
    Read the header field list from the first row of ``query``.

    When the header query returns no row, the result's column names are used
    instead (with the same leading columns skipped).
    """
    try:
        with source.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query)
                first = cur.fetchone()
                if first is not None:
                    return _project(first, skip_leading, 0)
                names = [column.name for column in (cur.description or [])]
                return names[skip_leading:]
    except psycopg.Error as exc:
        raise HeaderQueryError(f"header query failed: {exc}", cause=exc) from exc


def count_rows(source: QuerySource, count_sql: str) -> int:
    """Run a ``select count(*)`` query and return its single value."""
    try:
        with source.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(count_sql)
                row = cur.fetchone()
    except psycopg.Error as exc:
        raise CountQueryError(f"row count query failed: {exc}", cause=exc) from exc
    return int(row[0]) if row and row[0] is not None else 0


__all__ = ["Row", "count_rows", "fetch_header", "fetch_rows", "to_text"]
