#!/usr/bin/env python3
"""
Offset-Based Range Chunking for Table Dumps
Splits a table of known size into fixed-size LIMIT/OFFSET windows, one output file each
"""

import os
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import List, Optional

from tabledump.errors import InvalidConfiguration

OUTPUT_EXTENSION = ".csv.gz"


@dataclass(frozen=True)
class Range:
    """A contiguous window of source rows and the file it is dumped to"""
    index: int
    offset: int
    size: int
    output_path: str


def build_run_name(now: Optional[datetime] = None) -> str:
    """
    Build the run-scoped base file name from the current UTC time

    Two runs started within the same second share a run name; range files
    are opened in truncate mode so the later run overwrites the earlier one.
    """
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%d_%H-%M-%S")


def range_file_name(base_name: str, index: int) -> str:
    return f"{base_name}_{index}{OUTPUT_EXTENSION}"


def plan_ranges(total_rows: int, slice_size: int, base_path: str, base_name: str) -> List[Range]:
    """
    Split [0, total_rows) into consecutive, non-overlapping ranges

    Args:
        total_rows: Row count sampled once before planning
        slice_size: Rows per range (the last range may be shorter)
        base_path: Directory the range files are written to
        base_name: Run-scoped file name prefix

    Returns:
        Ranges ordered by offset; empty when the table is empty

    The row count is a snapshot: if the table is written to while the dump
    runs, later ranges may read more or fewer rows than planned.
    """
    if slice_size is None or slice_size <= 0:
        raise InvalidConfiguration(f"Slice size must be a positive integer, got {slice_size!r}")
    if total_rows < 0:
        raise InvalidConfiguration(f"Row count cannot be negative, got {total_rows}")

    slice_count = -(-total_rows // slice_size)
    ranges = []
    for i in range(slice_count):
        offset = i * slice_size
        ranges.append(Range(
            index=i,
            offset=offset,
            size=min(slice_size, total_rows - offset),
            output_path=os.path.join(base_path, range_file_name(base_name, i)),
        ))
    return ranges
