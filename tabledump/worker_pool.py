#!/usr/bin/env python3
"""
Fixed-size thread pool that exports ranges concurrently
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Sequence

from tabledump.enhanced_logger import logger
from tabledump.errors import RangeExportFailure
from tabledump.range_chunking import Range
from tabledump.range_exporter import RangeOutcome


class WorkerPool:
    """
    Runs export_fn once per range on a bounded number of threads

    The executor's internal queue hands each submitted range to exactly one
    thread. Outcomes are stored by submission position, so the returned list
    follows the order of `ranges` whatever order the workers finish in.
    """

    def __init__(self, export_fn: Callable[[Range], RangeOutcome], run_name: Optional[str] = None):
        self.export_fn = export_fn
        self.run_name = run_name

    def run(self, ranges: Sequence[Range], concurrency: int) -> List[RangeOutcome]:
        effective_workers = min(concurrency, len(ranges))
        if effective_workers < 1:
            return []

        logger.debug(f"Exporting {len(ranges)} ranges on {effective_workers} workers", self.run_name)

        outcomes: List[Optional[RangeOutcome]] = [None] * len(ranges)

        with ThreadPoolExecutor(max_workers=effective_workers, thread_name_prefix="RangeWorker") as executor:
            future_to_position = {
                executor.submit(self.export_fn, rng): position
                for position, rng in enumerate(ranges)
            }

            for future in as_completed(future_to_position):
                position = future_to_position[future]
                rng = ranges[position]
                try:
                    outcomes[position] = future.result()
                except Exception as e:
                    # export_fn is expected to contain its own failures
                    logger.error(f"Range {rng.index} worker raised: {e}", self.run_name)
                    error = RangeExportFailure(rng.index, str(e) or type(e).__name__)
                    error.__cause__ = e
                    outcomes[position] = RangeOutcome(range=rng, rows_written=0, error=error)

        return outcomes
