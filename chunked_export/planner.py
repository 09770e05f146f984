"""
Partition planning for chunked exports.

A run with ``total_rows`` rows is split into fixed-size row-position ranges,
one per export task. The partition count follows the loader's historical rule:

    total <= chunk_size  -> 1 partition
    total >  chunk_size  -> total // chunk_size + 1 partitions

so an exact multiple of ``chunk_size`` still gets one trailing partition.
Because ranges start at position 0 while row numbers usually start at 1, that
trailing partition is the one holding the last row; the rule is kept as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Partition:
    """Inclusive row-position range ``[start, end]`` handled by one task."""

    index: int
    start: int
    end: int
    chunk_size: int

    @property
    def ordinal(self) -> int:
        """1-based number used in the output file name."""
        return self.start // self.chunk_size + 1

    @property
    def size(self) -> int:
        return self.end - self.start + 1

    @property
    def task_id(self) -> str:
        return f"task_{self.index}"


def partition_count(total_rows: int, chunk_size: int) -> int:
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if total_rows <= 0:
        return 0
    if total_rows <= chunk_size:
        return 1
    return total_rows // chunk_size + 1


def plan_partitions(total_rows: int, chunk_size: int) -> List[Partition]:
    """
    Build the ordered partition list for a run.

    Parameters
    ----------
    total_rows : int
        Row count reported by the count query.
    chunk_size : int
        Maximum rows per partition.

    Returns
    -------
    List[Partition]
        Contiguous partitions tiling ``[0, count * chunk_size)``. The final
        upper bound may exceed ``total_rows``; the range query simply returns
        fewer rows.
    """
    partitions: List[Partition] = []
    start = 0
    for index in range(partition_count(total_rows, chunk_size)):
        end = start + chunk_size
        partitions.append(Partition(index=index, start=start, end=end - 1, chunk_size=chunk_size))
        start = end
    return partitions


__all__ = ["Partition", "partition_count", "plan_partitions"]
