"""
Configuration for chunked exports.

Two layers:

- ``ExportSettings``: ambient, environment-driven knobs (chunk size, worker
  count, output directory, logging) loaded with Pydantic Settings.
- ``ExportJob``: the job itself (queries, connection details, output prefix),
  read from a Java-style properties file given on the command line.

Both are frozen and passed explicitly to the orchestrator and its tasks.
"""
from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Dict, Iterator, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chunked_export.errors import ConfigError

FailurePolicy = Literal["keep", "delete"]


class ExportSettings(BaseSettings):
    # Partitioning
    chunk_size: int = Field(100_000, alias="EXPORT_CHUNK_SIZE", gt=0)
    concurrency: int = Field(4, alias="EXPORT_CONCURRENCY", ge=1)
    fetch_batch_size: int = Field(1_000, alias="EXPORT_FETCH_BATCH_SIZE", gt=0)
    progress_interval: int = Field(1_000, alias="EXPORT_PROGRESS_INTERVAL", gt=0)
    row_number_column: str = Field(
        "row_num", alias="EXPORT_ROW_NUMBER_COLUMN", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$"
    )

    # Output
    output_dir: Path = Field(Path("."), alias="EXPORT_OUTPUT_DIR")
    file_extension: str = Field("csv", alias="EXPORT_FILE_EXTENSION")
    on_failure: FailurePolicy = Field("keep", alias="EXPORT_ON_FAILURE")
    summary_path: Optional[Path] = Field(None, alias="EXPORT_SUMMARY_PATH")

    # Database
    connect_timeout: float = Field(30.0, alias="DB_CONNECT_TIMEOUT", gt=0)
    statement_timeout_ms: int = Field(0, alias="DB_STATEMENT_TIMEOUT_MS", ge=0)

    # Application
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> ExportSettings:
    """
    Retrieve a cached instance of ExportSettings to avoid repeated env parsing.
    """
    return ExportSettings()


class ExportJob(BaseModel):
    """
    Immutable description of one export run.

    The data query must expose a row-number column first and one helper column
    last; both are stripped from every written row. The header query returns a
    single row whose first column is likewise ignored.
    """

    header_sql: str = Field(..., validation_alias=AliasChoices("headerSql", "header_sql"))
    data_sql: str = Field(..., validation_alias=AliasChoices("dataSql", "data_sql"))
    db_url: str = Field(..., validation_alias=AliasChoices("db.url", "db_url"))
    db_username: str = Field(..., validation_alias=AliasChoices("db.username", "db_username"))
    db_password: SecretStr = Field(
        ..., validation_alias=AliasChoices("db.password", "db_password")
    )
    output_prefix: str = Field(
        ...,
        validation_alias=AliasChoices(
            "exportFileName", "personCompanyExportFileName", "output_prefix"
        ),
    )

    model_config = {
        "frozen": True,
        "str_strip_whitespace": True,
    }

    @field_validator("db_url")
    @classmethod
    def _strip_jdbc_prefix(cls, value: str) -> str:
        return value[len("jdbc:"):] if value.startswith("jdbc:") else value

    @property
    def count_sql(self) -> str:
        return f"select count(*) from ( {self.data_sql} ) as export_rows"

    def range_sql(self, row_number_column: str = "row_num") -> str:
        """Data query restricted to ``row_number_column BETWEEN %s AND %s``."""
        return (
            f"select * from ( {self.data_sql} ) as export_rows "
            f"where {row_number_column} between %s and %s"
        )


# Diagnostic per required key, in the order they are reported.
_MISSING_KEY_MESSAGES: Dict[str, str] = {
    "db_url": "db.url is not provided in input file",
    "db_username": "db.username is not provided in input file",
    "db_password": "db.password is not provided in input file",
    "header_sql": "headerSql is not given in input file",
    "data_sql": "dataSql is not given in input file",
    "output_prefix": "exportFileName is not given in input file",
}

_ESCAPE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)")
_ESCAPED_CHARS = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_SEPARATOR_SPACE = " \t\f"


def _unescape(text: str) -> str:
    """Decode ``\\uXXXX``, ``\\t``, ``\\n``, ``\\r``, ``\\f``; any other escaped char stands for itself."""

    def _replace(match: re.Match) -> str:
        escaped = match.group(1)
        if len(escaped) == 5:
            return chr(int(escaped[1:], 16))
        return _ESCAPED_CHARS.get(escaped, escaped)

    return _ESCAPE.sub(_replace, text)


def _split_entry(line: str) -> Tuple[str, str]:
    """Split at the first unescaped ``=``, ``:`` or whitespace."""
    end = 0
    while end < len(line):
        char = line[end]
        if char == "\\":
            end += 2
            continue
        if char in "=:" or char.isspace():
            break
        end += 1
    rest = line[end:].lstrip(_SEPARATOR_SPACE)
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(_SEPARATOR_SPACE)
    return _unescape(line[:end]), _unescape(rest)


def _logical_lines(lines: List[str]) -> Iterator[str]:
    """Join backslash-continued lines and drop blanks and comments."""
    buffer = ""
    for raw in lines:
        line = raw.strip()
        if not buffer and (not line or line[0] in "#!"):
            continue
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            buffer += line[:-1]
            continue
        yield buffer + line
        buffer = ""
    if buffer:
        yield buffer


def load_properties(path: Path | str) -> Dict[str, str]:
    """
    Read a Java-style properties file into a flat mapping.

    Supports ``key=value``, ``key: value`` and ``key value`` separators,
    ``#``/``!`` comments, trailing-backslash line continuation and the usual
    escapes (``\\\\``, ``\\=``, ``\\:``, ``\\t``, ``\\uXXXX``). Whitespace around
    each physical line is ignored.
    """
    text = Path(path).read_text(encoding="utf-8")
    properties: Dict[str, str] = {}
    for line in _logical_lines(text.splitlines()):
        key, value = _split_entry(line)
        properties[key] = value
    return properties


def load_job(path: Path | str) -> ExportJob:
    """
    Build an ExportJob from a properties file.

    Raises
    ------
    ConfigError
        If the file cannot be read or any required key is missing/blank. All
        problems are collected so the user sees every missing key at once.
    """
    try:
        properties = load_properties(path)
    except OSError as exc:
        raise ConfigError([f"cannot read configuration file {path}: {exc}"], cause=exc) from exc

    present = {key: value for key, value in properties.items() if value}
    problems = [
        message
        for field, message in _MISSING_KEY_MESSAGES.items()
        if not any(key in present for key in ExportJob.model_fields[field].validation_alias.choices)
    ]
    if problems:
        raise ConfigError(problems, detail={"path": str(path)})

    try:
        return ExportJob.model_validate(present)
    except ValidationError as exc:
        problems = [f"{err['loc'][0]}: {err['msg']}" for err in exc.errors()]
        raise ConfigError(problems, detail={"path": str(path)}, cause=exc) from exc


__all__ = [
    "ExportJob",
    "ExportSettings",
    "FailurePolicy",
    "get_settings",
    "load_job",
    "load_properties",
]
