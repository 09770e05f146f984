"""
Pytest configuration for chunked exports.

Provides fixtures for:
- In-memory query sources (fake pool/connection/cursor) for unit tests
- Export job and settings objects pointed at a temporary directory
- Database connection management for integration tests
"""

from __future__ import annotations

import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Generator, Iterator, Optional, Sequence

import psycopg
import pytest

from chunked_export.config import ExportJob, ExportSettings

HEADER_SQL = "select 0 as row_num, 'name', 'amount'"
DATA_SQL = "select row_num, name, amount, total_rows from people"


class FakeCursor:
    def __init__(self, source: FakeSource, name: Optional[str] = None) -> None:
        self._source = source
        self.name = name
        self._rows: list[tuple[Any, ...]] = []
        self.description: Optional[list[SimpleNamespace]] = None

    def execute(self, sql: str, params: Optional[tuple[Any, ...]] = None) -> None:
        self._source.record(sql, params, self.name)
        self._rows = list(self._source.respond(sql, params))
        self.description = [SimpleNamespace(name=column) for column in self._source.columns]

    def fetchone(self) -> Optional[tuple[Any, ...]]:
        return self._rows.pop(0) if self._rows else None

    def fetchmany(self, size: int) -> list[tuple[Any, ...]]:
        if self._source.fetch_delay:
            time.sleep(self._source.fetch_delay)
        batch, self._rows = self._rows[:size], self._rows[size:]
        return batch

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        del exc_type, exc, tb
        return False


class FakeConnection:
    def __init__(self, source: FakeSource) -> None:
        self._source = source

    def cursor(self, name: Optional[str] = None) -> FakeCursor:
        return FakeCursor(self._source, name)


class FakeSource:
    """
    Stand-in for a connection pool.

    Routes statements by shape: ``select count(*)`` returns the row count,
    parameterised statements are range reads filtered on the first column,
    anything else is the header query. Tracks concurrent connection use.
    """

    def __init__(
        self,
        rows: Sequence[tuple[Any, ...]] = (),
        header: Optional[tuple[Any, ...]] = (0, "name", "amount"),
        columns: Sequence[str] = ("row_num", "name", "amount", "total_rows"),
        failing_ranges: Sequence[tuple[int, int]] = (),
        count_error: Optional[Exception] = None,
        header_error: Optional[Exception] = None,
        fetch_delay: float = 0.0,
    ) -> None:
        self.rows = list(rows)
        self.header = header
        self.columns = list(columns)
        self.failing_ranges = set(failing_ranges)
        self.count_error = count_error
        self.header_error = header_error
        self.fetch_delay = fetch_delay
        self.executed: list[tuple[str, Optional[tuple[Any, ...]], Optional[str]]] = []
        self.active = 0
        self.max_active = 0
        self.acquired = 0
        self.released = 0
        self._lock = threading.Lock()

    @contextmanager
    def connection(self) -> Iterator[FakeConnection]:
        with self._lock:
            self.active += 1
            self.acquired += 1
            self.max_active = max(self.max_active, self.active)
        try:
            yield FakeConnection(self)
        finally:
            with self._lock:
                self.active -= 1
                self.released += 1

    def record(self, sql: str, params: Optional[tuple[Any, ...]], name: Optional[str]) -> None:
        with self._lock:
            self.executed.append((sql, params, name))

    def respond(self, sql: str, params: Optional[tuple[Any, ...]]) -> list[tuple[Any, ...]]:
        if params is not None and sql.startswith("select set_config"):
            return []
        if params is not None:
            start, end = params
            if (start, end) in self.failing_ranges:
                raise psycopg.OperationalError(f"simulated failure for rows {start}..{end}")
            return [row for row in self.rows if start <= row[0] <= end]
        if sql.startswith("select count(*)"):
            if self.count_error is not None:
                raise self.count_error
            return [(len(self.rows),)]
        if self.header_error is not None:
            raise self.header_error
        return [self.header] if self.header is not None else []


def make_rows(count: int) -> list[tuple[Any, ...]]:
    """``count`` data rows shaped (row_num, name, amount, total_rows)."""
    return [(n, f"person {n}", n * 10, count) for n in range(1, count + 1)]


@pytest.fixture
def make_source():
    """Factory for in-memory query sources."""
    return FakeSource


@pytest.fixture
def rows_factory():
    return make_rows


@pytest.fixture
def export_job() -> ExportJob:
    return ExportJob(
        header_sql=HEADER_SQL,
        data_sql=DATA_SQL,
        db_url="postgresql://localhost:5432/people",
        db_username="exporter",
        db_password="s3cret",
        output_prefix="people",
    )


@pytest.fixture
def make_settings(tmp_path: Path):
    """Factory for settings writing into the test's temporary directory."""

    def _make(**overrides: Any) -> ExportSettings:
        values: dict[str, Any] = {"output_dir": tmp_path / "out"}
        values.update(overrides)
        return ExportSettings(**values)

    return _make


@pytest.fixture
def settings(make_settings) -> ExportSettings:
    return make_settings()


@pytest.fixture(scope="session")
def test_dsn() -> str:
    """
    Database connection string for integration tests.

    Can be overridden via environment variables in CI or local testing.
    """
    return (
        f"postgresql://{os.getenv('DB_USER', 'postgres')}:{os.getenv('DB_PASSWORD', 'postgres')}"
        f"@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}"
        f"/{os.getenv('DB_NAME', 'chunked_export')}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()
