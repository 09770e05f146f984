from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from chunked_export import main
from chunked_export.domain.models import ExportSummary, JobState
from chunked_export.errors import CountQueryError

runner = CliRunner()

PROPERTIES = """\
headerSql=select 0, 'name'
dataSql=select row_num, name, total from people
db.url=jdbc:postgresql://db/people
db.username=exporter
db.password=s3cret
exportFileName=people
"""


def _summary(*results: dict[str, Any]) -> ExportSummary:
    now = datetime(2024, 1, 1, 12, 0, 0)
    return ExportSummary(
        state=JobState.DONE,
        total_rows=sum(r.get("rows", 0) for r in results),
        partitions=len(results),
        results=list(results),
        started_at=now,
        finished_at=now,
        elapsed_seconds=0.5,
    )


def _result(ordinal: int, success: bool = True, rows: int = 2) -> dict[str, Any]:
    result: dict[str, Any] = {
        "task": f"task_{ordinal - 1}",
        "ordinal": ordinal,
        "start": (ordinal - 1) * 2,
        "end": ordinal * 2 - 1,
        "path": f"out/people_{ordinal}.csv",
        "rows": rows,
        "success": success,
        "duration_seconds": 0.1,
    }
    if not success:
        result.update(error="simulated [boom]", error_type="PartitionQueryError")
    return result


@pytest.fixture
def properties_file(tmp_path: Path) -> Path:
    path = tmp_path / "loader.properties"
    path.write_text(PROPERTIES, encoding="utf-8")
    return path


@pytest.fixture
def cli_env(monkeypatch, make_settings):
    """Isolate the CLI from the environment and global logging setup."""
    logging_calls: list[dict[str, Any]] = []
    monkeypatch.setattr(main, "get_settings", lambda: make_settings())
    monkeypatch.setattr(main, "configure_logging", lambda **kwargs: logging_calls.append(kwargs))
    return logging_calls


@pytest.mark.parametrize("args", [["run"], ["run", "a.properties", "b.properties"]])
def test_wrong_argument_count_prints_usage(cli_env, args):
    result = runner.invoke(main.app, args)

    assert result.exit_code == 0
    assert main.USAGE in result.output


def test_missing_keys_are_reported_and_exit_nonzero(cli_env, tmp_path: Path):
    path = tmp_path / "partial.properties"
    path.write_text("db.username=exporter\ndb.password=x\n", encoding="utf-8")

    result = runner.invoke(main.app, ["run", str(path)])

    assert result.exit_code == 1
    assert "db.url is not provided in input file" in result.output
    assert "headerSql is not given in input file" in result.output
    assert "dataSql is not given in input file" in result.output
    assert "exportFileName is not given in input file" in result.output


def test_successful_run(cli_env, monkeypatch, properties_file):
    captured: dict[str, Any] = {}

    def fake_run_export(job, settings):
        captured["job"] = job
        captured["settings"] = settings
        return _summary(_result(1), _result(2))

    monkeypatch.setattr(main, "run_export", fake_run_export)

    result = runner.invoke(main.app, ["run", str(properties_file)])

    assert result.exit_code == 0, result.output
    assert "SUCCESS" in result.output
    assert "Elapsed time in seconds = 0.500" in result.output
    assert captured["job"].output_prefix == "people"
    assert captured["job"].db_url == "postgresql://db/people"
    assert cli_env == [{"level": "INFO", "json_logs": False}]


def test_overrides_reach_settings(cli_env, monkeypatch, properties_file, tmp_path: Path):
    captured: dict[str, Any] = {}

    def fake_run_export(job, settings):
        captured["settings"] = settings
        return _summary(_result(1))

    monkeypatch.setattr(main, "run_export", fake_run_export)

    result = runner.invoke(
        main.app,
        [
            "run",
            str(properties_file),
            "--output-dir",
            str(tmp_path / "elsewhere"),
            "--concurrency",
            "2",
            "--chunk-size",
            "50",
            "--on-failure",
            "delete",
            "--summary",
            str(tmp_path / "summary.json"),
            "--json-logs",
        ],
    )

    assert result.exit_code == 0, result.output
    settings = captured["settings"]
    assert settings.output_dir == tmp_path / "elsewhere"
    assert settings.concurrency == 2
    assert settings.chunk_size == 50
    assert settings.on_failure == "delete"
    assert settings.summary_path == tmp_path / "summary.json"
    assert cli_env == [{"level": "INFO", "json_logs": True}]


def test_partition_failure_exits_nonzero(cli_env, monkeypatch, properties_file):
    monkeypatch.setattr(
        main, "run_export", lambda job, settings: _summary(_result(1), _result(2, success=False))
    )

    result = runner.invoke(main.app, ["run", str(properties_file)])

    assert result.exit_code == 1
    assert "FAILED" in result.output
    assert "1 partition(s) failed." in result.output


def test_fatal_error_exits_nonzero(cli_env, monkeypatch, properties_file):
    def failing_run_export(job, settings):
        raise CountQueryError("row count query failed: relation does not exist")

    monkeypatch.setattr(main, "run_export", failing_run_export)

    result = runner.invoke(main.app, ["run", str(properties_file)])

    assert result.exit_code == 1
    assert "Export failed: row count query failed" in result.output


def test_info_masks_password(cli_env, properties_file):
    result = runner.invoke(main.app, ["info", str(properties_file)])

    assert result.exit_code == 0, result.output
    assert "s3cret" not in result.output
    assert "exporter@postgresql://db/people" in result.output
    assert "where row_num between %s and %s" in result.output


def test_plan_prints_partitions(
    cli_env, monkeypatch, properties_file, make_source, make_settings, rows_factory
):
    source = make_source(rows=rows_factory(5))

    @contextmanager
    def fake_pool(job, settings):
        yield source

    monkeypatch.setattr(main, "export_pool", fake_pool)
    monkeypatch.setattr(main, "get_settings", lambda: make_settings(chunk_size=2))

    result = runner.invoke(main.app, ["plan", str(properties_file)])

    assert result.exit_code == 0, result.output
    assert "3 partition(s)" in result.output
    assert "task_2" in result.output


def test_main_maps_keyboard_interrupt_to_130(monkeypatch):
    def interrupted() -> None:
        raise KeyboardInterrupt

    monkeypatch.setattr(main, "app", interrupted)

    with pytest.raises(SystemExit) as excinfo:
        main.main()

    assert excinfo.value.code == 130
