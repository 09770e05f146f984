from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from chunked_export.domain.models import ExportSummary
from chunked_export.planner import Partition
from chunked_export.writer import output_path


def _format_bytes(value: Optional[int]) -> str:
    if not value:
        return "N/A"
    return f"{value / (1024 * 1024):.2f} MB"


def print_summary(summary: ExportSummary, console: Optional[Console] = None) -> None:
    """
    Render per-partition export results as a rich table.

    Failed partitions are highlighted and the caption carries the job-level
    status, timing and peak memory.
    """
    console = console or Console()

    if not summary.results:
        console.print(
            f"[yellow]No rows to export[/yellow] (total rows = {summary.total_rows})."
        )
        return

    status = "[bold green]SUCCESS[/bold green]" if summary.success else "[bold red]FAILED[/bold red]"
    table = Table(
        title=f"Export Results: {status}",
        box=box.ROUNDED,
        caption=(
            f"{summary.rows_written:,} of {summary.total_rows:,} rows in "
            f"{summary.elapsed_seconds:.1f}s │ peak memory {_format_bytes(summary.peak_rss_bytes)}"
        ),
    )

    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Rows", justify="right", style="magenta")
    table.add_column("Range", justify="right")
    table.add_column("File", style="blue")
    table.add_column("Duration (s)", justify="right", style="green")
    table.add_column("Status")

    for res in summary.results:
        if res.get("success"):
            outcome = "[green]ok[/green]"
        else:
            outcome = f"[red]{res.get('error_type')}: {escape(str(res.get('error')))}[/red]"
            if res.get("removed"):
                outcome += " [dim](file removed)[/dim]"
        table.add_row(
            res.get("task", "?"),
            f"{res.get('rows', 0):,}",
            f"{res.get('start')}..{res.get('end')}",
            res.get("path", ""),
            f"{res.get('duration_seconds', 0.0):.1f}",
            outcome,
        )

    console.print(table)
    console.print(
        f"Start time = {summary.started_at.isoformat()}\n"
        f"End time = {summary.finished_at.isoformat()}\n"
        f"Elapsed time in seconds = {summary.elapsed_seconds:.3f}"
    )


def print_plan(
    total_rows: int,
    partitions: list[Partition],
    prefix: str,
    output_dir: str = ".",
    extension: str = "csv",
    console: Optional[Console] = None,
) -> None:
    """Render the planned partitions and the files they would produce."""
    console = console or Console()
    table = Table(
        title=f"Export Plan: {total_rows:,} rows → {len(partitions)} partition(s)",
        box=box.ROUNDED,
    )
    table.add_column("Task", style="cyan", no_wrap=True)
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    table.add_column("File", style="blue")
    for partition in partitions:
        table.add_row(
            partition.task_id,
            f"{partition.start:,}",
            f"{partition.end:,}",
            str(output_path(output_dir, prefix, partition.ordinal, extension)),
        )
    console.print(table)


__all__ = ["print_plan", "print_summary"]
