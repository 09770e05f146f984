"""
Error taxonomy for chunked exports.

Fatal errors (configuration, connection, header and count queries) abort the
whole run. ``PartitionQueryError`` and ``OSError`` from output files are local
to a single partition and end up as failed ``ExportResult`` entries instead.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class ExportError(Exception):
    """
    Root of the export error hierarchy.

    Parameters
    ----------
    message : str
        Human-readable description.
    code : str, optional
        Machine-readable slug; defaults to the class ``default_code``.
    detail : dict, optional
        Extra context, safe to attach to log records.
    cause : BaseException, optional
        Underlying exception (usually a driver error).
    """

    default_code: str = "export_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.detail: Dict[str, Any] = detail or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "detail": self.detail,
        }
        if self.cause is not None:
            payload["cause"] = repr(self.cause)
        return payload


class ConfigError(ExportError):
    """One or more required job settings are missing or invalid."""

    default_code = "config_error"

    def __init__(self, problems: List[str], **kwargs: Any) -> None:
        super().__init__("; ".join(problems), **kwargs)
        self.problems = list(problems)


class ConnectionError(ExportError):  # noqa: A001
    """The query source could not be opened."""

    default_code = "connection_error"


class QueryError(ExportError):
    """The query source reported an execution error."""

    default_code = "query_error"


class HeaderQueryError(QueryError):
    default_code = "header_query_error"


class CountQueryError(QueryError):
    default_code = "count_query_error"


class PartitionQueryError(QueryError):
    """A bounded-range query failed inside one partition task."""

    default_code = "partition_query_error"

    def __init__(self, message: str, *, start: int, end: int, **kwargs: Any) -> None:
        detail = {"start": start, "end": end, **(kwargs.pop("detail", None) or {})}
        super().__init__(message, detail=detail, **kwargs)
        self.start = start
        self.end = end


__all__ = [
    "ExportError",
    "ConfigError",
    "ConnectionError",
    "QueryError",
    "HeaderQueryError",
    "CountQueryError",
    "PartitionQueryError",
]
