from __future__ import annotations

import enum
import sys
from pathlib import Path
from typing import List, Optional

import typer

from chunked_export.config import ExportJob, ExportSettings, get_settings, load_job
from chunked_export.errors import ConfigError, ExportError
from chunked_export.fetcher import count_rows
from chunked_export.infrastructure.db_factory import export_pool
from chunked_export.orchestrator import run_export
from chunked_export.planner import plan_partitions
from chunked_export.reporter import print_plan, print_summary
from chunked_export.utils.logging import configure_logging

app = typer.Typer(help="Export a SQL query to partitioned CSV files in parallel.")

USAGE = "Invalid number of args, correct usage is chunked-export run /usr/local/loader.properties"

ConfigArgument = typer.Argument(
    None, metavar="CONFIG", help="Path to the job properties file.", show_default=False
)


class FailurePolicyOption(str, enum.Enum):
    keep = "keep"
    delete = "delete"


def _single_config(args: Optional[List[str]]) -> Optional[Path]:
    """Exactly one positional argument is accepted; anything else prints usage."""
    if not args or len(args) != 1:
        typer.echo(USAGE)
        return None
    return Path(args[0])


def _load_job_or_exit(path: Path) -> ExportJob:
    try:
        return load_job(path)
    except ConfigError as exc:
        for problem in exc.problems:
            typer.echo(problem, err=True)
        raise typer.Exit(code=1) from exc


def _effective_settings(
    settings: ExportSettings,
    output_dir: Optional[Path] = None,
    concurrency: Optional[int] = None,
    chunk_size: Optional[int] = None,
    on_failure: Optional[FailurePolicyOption] = None,
    summary_path: Optional[Path] = None,
) -> ExportSettings:
    overrides = {
        "output_dir": output_dir,
        "concurrency": concurrency,
        "chunk_size": chunk_size,
        "on_failure": on_failure.value if on_failure else None,
        "summary_path": summary_path,
    }
    return settings.model_copy(update={k: v for k, v in overrides.items() if v is not None})


@app.command()
def info(config: Optional[List[str]] = ConfigArgument) -> None:
    """
    Show the resolved job and effective settings.
    """
    config_path = _single_config(config)
    if config_path is None:
        return
    job = _load_job_or_exit(config_path)
    settings = get_settings()
    typer.echo(f"DB={job.db_username}@{job.db_url} password={job.db_password}")
    typer.echo(f"prefix={job.output_prefix} output_dir={settings.output_dir}")
    typer.echo(
        f"chunk_size={settings.chunk_size} concurrency={settings.concurrency} "
        f"fetch_batch={settings.fetch_batch_size} on_failure={settings.on_failure}"
    )
    typer.echo(f"count_sql={job.count_sql}")
    typer.echo(f"range_sql={job.range_sql(settings.row_number_column)}")


@app.command()
def plan(config: Optional[List[str]] = ConfigArgument) -> None:
    """
    Count rows and print the partitions a run would produce, without exporting.
    """
    config_path = _single_config(config)
    if config_path is None:
        return
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    job = _load_job_or_exit(config_path)
    try:
        with export_pool(job, settings) as pool:
            total_rows = count_rows(pool, job.count_sql)
    except ExportError as exc:
        typer.echo(f"Planning failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    print_plan(
        total_rows,
        plan_partitions(total_rows, settings.chunk_size),
        prefix=job.output_prefix,
        output_dir=str(settings.output_dir),
        extension=settings.file_extension,
    )


@app.command()
def run(
    config: Optional[List[str]] = ConfigArgument,
    output_dir: Optional[Path] = typer.Option(
        None, "--output-dir", "-o", help="Directory for the partition files."
    ),
    concurrency: Optional[int] = typer.Option(
        None, "--concurrency", "-c", min=1, help="Partitions exported at the same time."
    ),
    chunk_size: Optional[int] = typer.Option(
        None, "--chunk-size", min=1, help="Rows per partition file."
    ),
    on_failure: Optional[FailurePolicyOption] = typer.Option(
        None, "--on-failure", help="Keep or delete partial files of failed partitions."
    ),
    summary: Optional[Path] = typer.Option(
        None, "--summary", help="Write a JSON run summary to this path."
    ),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON log lines."),
) -> None:
    """
    Export the job's data query to one CSV file per partition.
    """
    config_path = _single_config(config)
    if config_path is None:
        return

    settings = _effective_settings(
        get_settings(),
        output_dir=output_dir,
        concurrency=concurrency,
        chunk_size=chunk_size,
        on_failure=on_failure,
        summary_path=summary,
    )
    configure_logging(level=settings.log_level, json_logs=json_logs or settings.log_json)
    job = _load_job_or_exit(config_path)

    try:
        result = run_export(job, settings)
    except (ExportError, OSError) as exc:
        typer.echo(f"Export failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    print_summary(result)
    if not result.success:
        typer.echo(f"{len(result.failures)} partition(s) failed.", err=True)
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
