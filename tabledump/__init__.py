"""Parallel, range-partitioned table dumps to gzip-compressed CSV files"""

from tabledump.dumper import DumpReport, TableDumper, dump_table
from tabledump.errors import (
    InvalidConfiguration,
    RangeExportFailure,
    SourceUnavailable,
    TableDumpError,
)
from tabledump.range_chunking import Range, plan_ranges
from tabledump.range_exporter import RangeExporter, RangeOutcome
from tabledump.worker_pool import WorkerPool

__version__ = "0.1.0"
