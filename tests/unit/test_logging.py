from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from chunked_export.utils.logging import JsonFormatter, _json_formatter

EXPECTED_ROWS = 1000
EXPECTED_ORDINAL = 3


def _record(msg: str = "hello", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="chunked_export.writer",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.rows = EXPECTED_ROWS
    record.task = "task_2"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "chunked_export.writer"
    assert payload["message"] == "hello"
    assert payload["rows"] == EXPECTED_ROWS
    assert payload["task"] == "task_2"
    assert "pathname" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"ordinal": EXPECTED_ORDINAL}

    payload = json.loads(_json_formatter(record))

    assert payload["ordinal"] == EXPECTED_ORDINAL
    assert "extra" not in payload


def test_json_formatter_includes_thread_and_exception() -> None:
    try:
        raise ValueError("bad row")
    except ValueError:
        record = _record("[PARTITION FAILED] task_0", exc_info=sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))

    assert payload["thread"] == record.threadName
    assert "ValueError: bad row" in payload["exc_info"]


def test_json_formatter_serializes_non_json_values() -> None:
    record = _record()
    record.path = Path("out/people_1.csv")

    payload = json.loads(_json_formatter(record))

    assert payload["path"] == "out/people_1.csv"
