"""
Domain models for chunked exports.

``ExportResult`` is the per-partition outcome returned by the chunk writer;
``ExportSummary`` is the job-level report assembled by the orchestrator once
every partition has finished.
"""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional, TypedDict

from pydantic import BaseModel, Field


class JobState(str, enum.Enum):
    IDLE = "idle"
    COUNTING_ROWS = "counting_rows"
    PLANNING = "planning"
    RUNNING = "running"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


class ExportResult(TypedDict, total=False):
    """
    Outcome of exporting one partition.

    Fields are optional so the writer can fill them in as it goes; consumers
    should read with ``.get`` where a value may be absent.
    """

    task: str
    ordinal: int
    start: int
    end: int
    path: str
    rows: int
    success: bool
    error: Optional[str]
    error_type: Optional[str]
    removed: bool
    duration_seconds: float


class ExportSummary(BaseModel):
    """
    Job-level report of a finished run.
    """

    state: JobState = Field(..., description="Final orchestrator state.")
    total_rows: int = Field(..., description="Row count reported by the count query.")
    partitions: int = Field(..., description="Number of planned partitions.")
    results: List[Dict[str, Any]] = Field(default_factory=list, description="ExportResult per partition.")
    started_at: datetime = Field(..., description="Wall-clock start of the run.")
    finished_at: datetime = Field(..., description="Wall-clock end of the run.")
    elapsed_seconds: float = Field(..., description="Monotonic duration of the run.")
    peak_rss_bytes: Optional[int] = Field(None, description="Peak resident memory, if sampled.")

    model_config = {
        "frozen": True,
    }

    @property
    def failures(self) -> List[Dict[str, Any]]:
        return [result for result in self.results if not result.get("success")]

    @property
    def success(self) -> bool:
        return self.state is JobState.DONE and not self.failures

    @property
    def rows_written(self) -> int:
        return sum(result.get("rows", 0) for result in self.results)


__all__ = ["ExportResult", "ExportSummary", "JobState"]
