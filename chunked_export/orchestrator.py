"""
Orchestrator for chunked exports.

Drives one export job through its lifecycle:

    IDLE -> COUNTING_ROWS -> PLANNING -> RUNNING -> REPORTING -> DONE

with FAILED reachable from the connection step, COUNTING_ROWS, PLANNING and
RUNNING.

Usage (example from CLI):
    from chunked_export.orchestrator import run_export

    summary = run_export(job, settings)
    print(summary.success, summary.rows_written)

Partitions run on a bounded thread pool (``settings.concurrency`` workers) and
the orchestrator blocks on ``concurrent.futures.wait`` until every partition
has finished. A failing partition is recorded in its ``ExportResult`` and never
cancels its siblings; only connection, header and count failures abort the
job.
"""

from __future__ import annotations

import contextlib
import json
from concurrent.futures import ALL_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from chunked_export.config import ExportJob, ExportSettings
from chunked_export.domain.models import ExportResult, ExportSummary, JobState
from chunked_export.errors import ExportError
from chunked_export.fetcher import Row, count_rows, fetch_header, fetch_rows
from chunked_export.infrastructure.db_factory import QuerySource, export_pool
from chunked_export.planner import Partition, plan_partitions
from chunked_export.utils.logging import get_logger
from chunked_export.utils.profiler import ProfileStats, profile_block
from chunked_export.writer import ProgressCallback, write_chunk

log = get_logger(__name__)


def _persist_summary(summary: ExportSummary, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = summary.model_dump(mode="json")
    payload["success"] = summary.success
    payload["rows_written"] = summary.rows_written
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)
    log.info("Summary persisted", extra={"summary_path": str(path)})


class ExportOrchestrator:
    """
    Run one export job end to end.

    Parameters
    ----------
    job : ExportJob
        Queries, connection details and output prefix.
    settings : ExportSettings
        Chunk size, worker count, output directory and failure policy.
    source : QuerySource, optional
        Connection provider. When omitted a psycopg pool is opened for the
        duration of ``run()`` and closed afterwards.
    on_progress : callable, optional
        Progress sink forwarded to every chunk writer.
    """

    def __init__(
        self,
        job: ExportJob,
        settings: ExportSettings,
        source: Optional[QuerySource] = None,
        *,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.job = job
        self.settings = settings
        self._source = source
        self._on_progress = on_progress
        self.state = JobState.IDLE
        self.header_fields: Row = []
        self.total_rows = 0
        self.partitions: List[Partition] = []

    def _transition(self, state: JobState) -> None:
        log.debug(f"[STATE] {self.state.value} -> {state.value}")
        self.state = state

    @contextlib.contextmanager
    def _query_source(self) -> Iterator[QuerySource]:
        if self._source is not None:
            yield self._source
        else:
            with export_pool(self.job, self.settings) as pool:
                yield pool

    def run(self) -> ExportSummary:
        """
        Execute the job and return its summary.

        Raises
        ------
        ExportError
            On fatal failures (connection, header or count query); the
            orchestrator is left in the FAILED state.
        """
        log.info(
            f"[EXPORT START] {self.job.output_prefix}",
            extra={
                "prefix": self.job.output_prefix,
                "chunk_size": self.settings.chunk_size,
                "concurrency": self.settings.concurrency,
            },
        )
        with profile_block("export") as stats:
            log.info(f"Start time = {stats.started_at.isoformat()}")
            try:
                with self._query_source() as source:
                    results = self._execute(source)
            except (ExportError, OSError) as exc:
                self._transition(JobState.FAILED)
                log.error(
                    f"[EXPORT FAILED] {type(exc).__name__}: {exc}",
                    extra={"state": self.state.value, "error_type": type(exc).__name__},
                )
                raise

        self._transition(JobState.REPORTING)
        self._report(results, stats)
        self._transition(JobState.DONE)

        summary = ExportSummary(
            state=self.state,
            total_rows=self.total_rows,
            partitions=len(self.partitions),
            results=[dict(result) for result in results],
            started_at=stats.started_at,
            finished_at=stats.finished_at,
            elapsed_seconds=round(stats.duration_seconds, 3),
            peak_rss_bytes=stats.peak_rss_bytes,
        )
        if self.settings.summary_path is not None:
            _persist_summary(summary, Path(self.settings.summary_path))

        log.info(
            f"[EXPORT COMPLETE] {len(results)} partition(s), "
            f"{len(summary.failures)} failure(s), {summary.rows_written} row(s)",
            extra={"success": summary.success, "rows": summary.rows_written},
        )
        return summary

    def _execute(self, source: QuerySource) -> List[ExportResult]:
        self._transition(JobState.COUNTING_ROWS)
        self.header_fields = fetch_header(source, self.job.header_sql, skip_leading=1)
        self.total_rows = count_rows(source, self.job.count_sql)
        log.info(f"Total rows = {self.total_rows}", extra={"total_rows": self.total_rows})

        self._transition(JobState.PLANNING)
        self.partitions = plan_partitions(self.total_rows, self.settings.chunk_size)
        Path(self.settings.output_dir).mkdir(parents=True, exist_ok=True)
        log.info(
            f"Planned {len(self.partitions)} partition(s) of {self.settings.chunk_size} rows",
            extra={"partitions": len(self.partitions), "chunk_size": self.settings.chunk_size},
        )

        self._transition(JobState.RUNNING)
        return self._run_partitions(source)

    def _run_partitions(self, source: QuerySource) -> List[ExportResult]:
        """Fan partitions out to the worker pool and join on all of them."""
        if not self.partitions:
            return []

        futures: Dict[Future, Partition] = {}
        with ThreadPoolExecutor(
            max_workers=self.settings.concurrency, thread_name_prefix="partition"
        ) as executor:
            for partition in self.partitions:
                futures[executor.submit(self._export_partition, source, partition)] = partition
            wait(futures, return_when=ALL_COMPLETED)

        # Submission order, not completion order.
        return [future.result() for future in futures]

    def _export_partition(self, source: QuerySource, partition: Partition) -> ExportResult:
        log.info(
            f"[PARTITION START] {partition.task_id} rows {partition.start}..{partition.end}",
            extra={"task": partition.task_id, "ordinal": partition.ordinal},
        )
        rows = fetch_rows(
            source,
            self.job.range_sql(self.settings.row_number_column),
            partition.start,
            partition.end,
            skip_leading=1,
            skip_trailing=1,
            batch_size=self.settings.fetch_batch_size,
            cursor_name=f"export_partition_{partition.ordinal}",
            statement_timeout_ms=self.settings.statement_timeout_ms,
        )
        result = write_chunk(
            partition,
            self.header_fields,
            rows,
            prefix=self.job.output_prefix,
            output_dir=self.settings.output_dir,
            extension=self.settings.file_extension,
            progress_interval=self.settings.progress_interval,
            on_progress=self._on_progress,
            on_failure=self.settings.on_failure,
        )
        if result["success"]:
            log.info(
                f"[PARTITION DONE] {partition.task_id}",
                extra={"task": partition.task_id, "rows": result["rows"], "path": result["path"]},
            )
        return result

    def _report(self, results: List[ExportResult], stats: ProfileStats) -> None:
        for result in results:
            status = "ok" if result.get("success") else f"FAILED ({result.get('error_type')})"
            log.info(
                f"{result['task']} -> {result['path']}: {result.get('rows', 0)} rows, {status}",
                extra={"task": result["task"], "success": result.get("success")},
            )
        log.info(f"End time = {stats.finished_at.isoformat()}")
        log.info(
            f"Elapsed time in seconds = {stats.duration_seconds:.3f}",
            extra={"elapsed_seconds": stats.duration_seconds},
        )


def run_export(
    job: ExportJob,
    settings: ExportSettings,
    source: Optional[QuerySource] = None,
    *,
    on_progress: Optional[ProgressCallback] = None,
) -> ExportSummary:
    """
    Run a full export and return its summary.

    Parameters
    ----------
    job : ExportJob
        What to export and where to connect.
    settings : ExportSettings
        How to partition and where to write.
    source : QuerySource, optional
        Pre-built connection provider (tests, embedding); defaults to a pool
        opened from ``job``.
    on_progress : callable, optional
        Replaces the default progress log line.

    Returns
    -------
    ExportSummary
        Per-partition results plus timing; ``summary.success`` is False if any
        partition failed.
    """
    return ExportOrchestrator(job, settings, source, on_progress=on_progress).run()


__all__ = ["ExportOrchestrator", "run_export"]
