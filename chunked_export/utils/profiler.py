"""
Run timing for chunked exports.

``profile_block`` records the wall-clock start/end timestamps printed in the
console report, a monotonic duration for the elapsed-time line, and the peak
resident memory of the process sampled on a background thread (useful to
confirm that partitions are streamed rather than buffered).

Usage:
    from chunked_export.utils.profiler import profile_block

    with profile_block("export") as stats:
        run()

    print(stats.started_at, stats.finished_at, stats.duration_seconds)
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Generator, Optional

import psutil


def _now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class ProfileStats:
    """
    Container for run measurements.
    """

    label: str
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = field(default=None)
    duration_seconds: float = field(default=0.0)
    peak_rss_bytes: Optional[int] = field(default=None)


@contextlib.contextmanager
def profile_block(
    label: str, sample_interval_ms: int = 100, sample_memory: bool = True
) -> Generator[ProfileStats, None, None]:
    """
    Measure a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the measured block.
    sample_interval_ms : int
        Interval in milliseconds between RSS samples.
    sample_memory : bool
        Whether to run the RSS sampling thread at all.
    """
    stats = ProfileStats(label=label)
    stop_sampling = threading.Event()
    peak_rss = 0
    process = psutil.Process() if sample_memory else None

    def _sample_memory() -> None:
        nonlocal peak_rss
        while not stop_sampling.is_set():
            try:
                peak_rss = max(peak_rss, process.memory_info().rss)
            except psutil.Error:
                break
            stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

    sampler: Optional[threading.Thread] = None
    if process is not None:
        peak_rss = process.memory_info().rss
        sampler = threading.Thread(target=_sample_memory, name=f"rss-{label}", daemon=True)
        sampler.start()

    start = time.perf_counter()
    try:
        yield stats
    finally:
        stats.duration_seconds = time.perf_counter() - start
        stats.finished_at = _now()
        stop_sampling.set()
        if sampler is not None:
            sampler.join(timeout=1.0)
            stats.peak_rss_bytes = peak_rss or None


__all__ = ["ProfileStats", "profile_block"]
