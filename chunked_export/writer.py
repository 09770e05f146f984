"""
Chunk writer: one partition, one output file.

Rows are consumed lazily from the fetcher and written as they arrive, so
memory use stays flat regardless of partition size. The writer never raises;
query and I/O failures are folded into a failed ``ExportResult``.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from chunked_export.config import FailurePolicy
from chunked_export.domain.models import ExportResult
from chunked_export.encoding import encode_row
from chunked_export.planner import Partition
from chunked_export.utils.logging import get_logger

log = get_logger(__name__)

ProgressCallback = Callable[[Partition, int], None]


def log_progress(partition: Partition, rows_written: int) -> None:
    """Default progress sink: one log line per signal."""
    log.info(
        f"[PARTITION {partition.ordinal}] current row cnt = {rows_written}",
        extra={"task": partition.task_id, "ordinal": partition.ordinal, "rows": rows_written},
    )


def output_path(output_dir: Path | str, prefix: str, ordinal: int, extension: str = "csv") -> Path:
    return Path(output_dir) / f"{prefix}_{ordinal}.{extension}"


def write_chunk(
    partition: Partition,
    header_fields: Sequence[Optional[str]],
    rows: Iterable[Sequence[Optional[str]]],
    *,
    prefix: str,
    output_dir: Path | str = ".",
    extension: str = "csv",
    progress_interval: int = 1_000,
    on_progress: Optional[ProgressCallback] = None,
    on_failure: FailurePolicy = "keep",
) -> ExportResult:
    """
    Write the header and every row of ``partition`` to its own file.

    Parameters
    ----------
    partition : Partition
        Range being exported; its ordinal names the file.
    header_fields : sequence of str
        Column titles written as the first line (blank line when empty).
    rows : iterable of rows
        Usually the lazy generator returned by ``fetch_rows``; it is closed on
        every exit path so its pooled connection is released.
    progress_interval : int
        Signal progress every N rows, and on the row that fills the partition.
    on_failure : {"keep", "delete"}
        Whether a partial file is left in place or removed after an error.

    Returns
    -------
    ExportResult
        Rows written and final status. Never raises.
    """
    path = output_path(output_dir, prefix, partition.ordinal, extension)
    notify = on_progress or log_progress
    result = ExportResult(
        task=partition.task_id,
        ordinal=partition.ordinal,
        start=partition.start,
        end=partition.end,
        path=str(path),
        success=False,
        error=None,
        error_type=None,
        removed=False,
    )
    written = 0
    started = time.perf_counter()

    try:
        # Text mode translates "\n" to the platform line terminator.
        with path.open("w", encoding="utf-8") as out:
            out.write(encode_row(header_fields) + "\n")
            for row in rows:
                out.write(encode_row(row) + "\n")
                written += 1
                if written % progress_interval == 0 or written == partition.size:
                    notify(partition, written)
        result["success"] = True
    except Exception as exc:  # noqa: BLE001 - intentional broad catch to record failures
        log.exception(
            f"[PARTITION FAILED] {partition.task_id}",
            extra={"task": partition.task_id, "path": str(path), "rows": written},
        )
        _record_failure(result, exc)
    finally:
        close_error = _close_rows(rows, partition)

    # A failed cleanup only matters if the partition otherwise succeeded.
    if close_error is not None and result["success"]:
        result["success"] = False
        _record_failure(result, close_error)
    if not result["success"] and on_failure == "delete":
        result["removed"] = _remove_partial(path, partition)

    result["rows"] = written
    result["duration_seconds"] = round(time.perf_counter() - started, 3)
    return result


def _record_failure(result: ExportResult, exc: BaseException) -> None:
    result["error"] = str(exc)
    result["error_type"] = type(exc).__name__


def _close_rows(
    rows: Iterable[Sequence[Optional[str]]], partition: Partition
) -> Optional[Exception]:
    """Close the row source (releasing its connection); return the error instead of raising."""
    close = getattr(rows, "close", None)
    if close is None:
        return None
    try:
        close()
    except Exception as exc:  # noqa: BLE001 - intentional broad catch to record failures
        log.exception(
            f"[PARTITION CLEANUP FAILED] {partition.task_id}",
            extra={"task": partition.task_id},
        )
        return exc
    return None


def _remove_partial(path: Path, partition: Partition) -> bool:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        log.warning(
            f"Could not remove partial file {path}",
            exc_info=True,
            extra={"task": partition.task_id, "path": str(path)},
        )
        return False
    return True


__all__ = ["ProgressCallback", "log_progress", "output_path", "write_chunk"]
