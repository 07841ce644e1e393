#!/usr/bin/env python3
"""
Partitioned Table Dump
Counts a table, splits it into ranges and exports them in parallel to .csv.gz files
"""

import os
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple

from tabledump.config import DumpConfig, MIN_GZIP_LEVEL, MAX_GZIP_LEVEL
from tabledump.connection_pool import ConnectionPool
from tabledump.database_utils import get_table_row_count, parse_dsn, quote_identifier
from tabledump.enhanced_logger import logger
from tabledump.errors import InvalidConfiguration, SourceUnavailable
from tabledump.range_chunking import build_run_name, plan_ranges
from tabledump.range_exporter import RangeExporter, RangeOutcome
from tabledump.worker_pool import WorkerPool


@dataclass(frozen=True)
class DumpReport:
    """Outcomes of one dump, one per planned range, in planning (offset) order"""
    table_name: str
    run_name: str
    total_rows: int
    outcomes: Tuple[RangeOutcome, ...]

    def __iter__(self) -> Iterator[RangeOutcome]:
        return iter(self.outcomes)

    def __len__(self) -> int:
        return len(self.outcomes)

    def __getitem__(self, position: int) -> RangeOutcome:
        return self.outcomes[position]

    @property
    def rows_written(self) -> int:
        return sum(outcome.rows_written for outcome in self.outcomes)

    @property
    def failed(self) -> Tuple[RangeOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.succeeded)

    @property
    def succeeded(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'table_name': self.table_name,
            'run_name': self.run_name,
            'total_rows': self.total_rows,
            'rows_written': self.rows_written,
            'failed_ranges': len(self.failed),
            'ranges': [outcome.to_dict() for outcome in self.outcomes],
        }


class TableDumper:
    """
    Dumps one table as a set of gzip-compressed CSV files

    The run name (UTC timestamp) is fixed at construction and prefixes every
    file of the dump. Ranges are planned from a single COUNT(*); the dump
    takes no snapshot, so rows inserted or deleted while it runs can shift
    rows between ranges or make the last ranges shorter or longer than
    planned.
    """

    def __init__(self, connection_pool, table_name: str,
                 concurrency: int = DumpConfig.concurrency,
                 slice_size: int = DumpConfig.slice_size,
                 compression_level: int = DumpConfig.gzip_level,
                 fetch_size: int = DumpConfig.fetch_size,
                 run_name: Optional[str] = None):
        self.connection_pool = connection_pool
        self.table_name = table_name
        self.concurrency = concurrency
        self.slice_size = slice_size
        self.compression_level = compression_level
        self.fetch_size = fetch_size
        self.run_name = run_name or build_run_name()

    def _validate(self):
        quote_identifier(self.table_name)
        if self.concurrency is None or self.concurrency < 1:
            raise InvalidConfiguration(f"Concurrency must be at least 1, got {self.concurrency!r}")
        if not MIN_GZIP_LEVEL <= self.compression_level <= MAX_GZIP_LEVEL:
            raise InvalidConfiguration(
                f"Compression level must be between {MIN_GZIP_LEVEL} and {MAX_GZIP_LEVEL}, "
                f"got {self.compression_level}")

    def _prepare_output_directory(self, output_directory: str):
        if os.path.exists(output_directory) and not os.path.isdir(output_directory):
            raise InvalidConfiguration(f"Output path {output_directory} is not a directory")
        try:
            os.makedirs(output_directory, exist_ok=True)
        except OSError as e:
            raise InvalidConfiguration(f"Cannot create output directory {output_directory}: {e}") from e

    def count_rows(self) -> int:
        """Run SELECT COUNT(*) on the table; any failure is SourceUnavailable"""
        try:
            with self.connection_pool.get_connection() as db_conn:
                return get_table_row_count(db_conn, self.table_name)
        except Exception as e:
            raise SourceUnavailable(f"Could not count rows of {self.table_name}: {e}") from e

    def dump(self, output_directory: str) -> DumpReport:
        """
        Dump the table into output_directory

        Raises:
            InvalidConfiguration: bad settings, nothing exported
            SourceUnavailable: the row count query failed, nothing exported

        Returns:
            DumpReport with one outcome per range; per-range failures are
            reported there and never raised
        """
        try:
            self._validate()
            total_rows = self.count_rows()
            self._prepare_output_directory(output_directory)
            ranges = plan_ranges(total_rows, self.slice_size, output_directory, self.run_name)
        except (InvalidConfiguration, SourceUnavailable) as e:
            logger.dump_failed(self.table_name, str(e))
            raise

        logger.dump_started(self.run_name, self.table_name, total_rows, len(ranges),
                            self.slice_size, min(self.concurrency, len(ranges)))

        exporter = RangeExporter(
            self.connection_pool,
            self.table_name,
            compression_level=self.compression_level,
            fetch_size=self.fetch_size,
            run_name=self.run_name,
        )
        outcomes = WorkerPool(exporter.export, run_name=self.run_name).run(ranges, self.concurrency)

        logger.dump_completed(self.run_name)

        return DumpReport(
            table_name=self.table_name,
            run_name=self.run_name,
            total_rows=total_rows,
            outcomes=tuple(outcomes),
        )


def dump_table(dsn: str, table_name: str, output_directory: str,
               concurrency: int = DumpConfig.concurrency,
               slice_size: int = DumpConfig.slice_size,
               compression_level: int = DumpConfig.gzip_level,
               fetch_size: int = DumpConfig.fetch_size) -> DumpReport:
    """
    Open a connection pool for dsn, verify it and dump table_name

    The pool is sized to the worker count and closed when the dump ends.
    """
    config = parse_dsn(dsn)
    if concurrency is None or concurrency < 1:
        raise InvalidConfiguration(f"Concurrency must be at least 1, got {concurrency!r}")

    try:
        connection_pool = ConnectionPool(config, max_connections=concurrency)
    except Exception as e:
        logger.dump_failed(table_name, str(e))
        raise SourceUnavailable(f"Could not connect to {config.db_type} source: {e}") from e

    with connection_pool:
        try:
            connection_pool.ping()
        except Exception as e:
            logger.dump_failed(table_name, str(e))
            raise SourceUnavailable(f"Source database is not reachable: {e}") from e

        dumper = TableDumper(
            connection_pool,
            table_name,
            concurrency=concurrency,
            slice_size=slice_size,
            compression_level=compression_level,
            fetch_size=fetch_size,
        )
        return dumper.dump(output_directory)
