#!/usr/bin/env python3
"""
Single-Range Export to Compressed CSV
Streams one LIMIT/OFFSET window from the source into a gzip-compressed CSV file
"""

import csv
import gzip
import io
import time
import uuid
from contextlib import ExitStack
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Sequence

from tabledump.config import DumpConfig
from tabledump.database_utils import build_slice_query, is_postgres
from tabledump.enhanced_logger import logger
from tabledump.errors import RangeExportFailure
from tabledump.range_chunking import Range

NULL_TOKEN = "NULL"
BYTEA_HEX_PREFIX = "\\x"


@dataclass(frozen=True)
class RangeOutcome:
    """Result of exporting one range: rows written and the error that stopped it, if any"""
    range: Range
    rows_written: int
    error: Optional[RangeExportFailure] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_line(self) -> str:
        """Summary line: '<path>: <rows>' or "<path> (error: '<msg>'): <rows>" """
        result = self.range.output_path
        if self.error is not None:
            result += f" (error: '{self.error}')"
        return f"{result}: {self.rows_written}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.range.index,
            'offset': self.range.offset,
            'size': self.range.size,
            'output_path': self.range.output_path,
            'rows_written': self.rows_written,
            'error': str(self.error) if self.error is not None else None,
        }


def format_value(value) -> str:
    """
    Render one column value as CSV text

    SQL NULL becomes the literal NULL token; an empty string stays an empty
    field. Binary values are written in PostgreSQL's bytea hex form
    (\\x followed by two hex digits per byte), everything else is str().
    """
    if value is None:
        return NULL_TOKEN
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, (bytes, bytearray)):
        return BYTEA_HEX_PREFIX + bytes(value).hex()
    return str(value)


class RangeExporter:
    """
    Exports ranges of one table, each to its own gzip-compressed CSV file

    export() never raises: any failure (connection, query, column
    description, file I/O, encoding) ends that range and is returned on its
    RangeOutcome together with the number of rows written before it.
    """

    def __init__(self, connection_pool, table_name: str,
                 compression_level: int = DumpConfig.gzip_level,
                 fetch_size: int = DumpConfig.fetch_size,
                 run_name: Optional[str] = None):
        self.connection_pool = connection_pool
        self.table_name = table_name
        self.compression_level = compression_level
        self.fetch_size = max(1, fetch_size)
        self.run_name = run_name

    def _open_writer(self, stack: ExitStack, output_path: str):
        """Open file -> gzip -> text -> csv; the stack closes them innermost first"""
        raw_file = stack.enter_context(open(output_path, 'wb'))
        compressor = stack.enter_context(
            gzip.GzipFile(fileobj=raw_file, mode='wb', compresslevel=self.compression_level)
        )
        text_stream = stack.enter_context(io.TextIOWrapper(compressor, encoding='utf-8', newline=''))
        return csv.writer(text_stream, lineterminator='\r\n')

    def _open_cursor(self, stack: ExitStack, db_conn, rng: Range):
        if is_postgres(getattr(self.connection_pool, 'db_type', '')):
            # server-side cursor so the window is streamed, not loaded whole
            cursor = db_conn.cursor(name=f"tabledump_{rng.index}_{uuid.uuid4().hex[:8]}")
            cursor.itersize = self.fetch_size
        else:
            cursor = db_conn.cursor()
            cursor.arraysize = self.fetch_size
        stack.callback(cursor.close)
        return cursor

    def _stream_batches(self, cursor) -> Iterator[Sequence[Sequence[Any]]]:
        while True:
            batch = cursor.fetchmany(self.fetch_size)
            if not batch:
                return
            yield batch

    def export(self, rng: Range) -> RangeOutcome:
        """
        Export one range

        Args:
            rng: Range to export

        Returns:
            RangeOutcome with the rows written and the first error, if any
        """
        rows_written = 0
        failure = None
        start_time = time.time()

        try:
            with ExitStack() as stack:
                try:
                    writer = self._open_writer(stack, rng.output_path)
                    db_conn = stack.enter_context(self.connection_pool.get_connection())
                    cursor = self._open_cursor(stack, db_conn, rng)

                    cursor.execute(build_slice_query(self.table_name, rng.size, rng.offset))
                    batches = self._stream_batches(cursor)
                    # named cursors only describe their columns after the first fetch
                    first_batch = next(batches, None)

                    if cursor.description is None:
                        raise RangeExportFailure(rng.index, "Query returned no column description")
                    writer.writerow([column[0] for column in cursor.description])

                    if first_batch is not None:
                        for batch in _chain(first_batch, batches):
                            for row in batch:
                                writer.writerow([format_value(value) for value in row])
                                rows_written += 1
                except Exception as e:
                    failure = e
                    raise
        except Exception as e:
            # a close failure only counts when nothing failed before it
            if failure is None:
                failure = e

        duration = time.time() - start_time

        if failure is None:
            logger.range_completed(self.run_name, rng.index, rng.output_path, rows_written, duration)
            return RangeOutcome(range=rng, rows_written=rows_written)

        error = _as_range_failure(rng.index, failure)
        logger.range_failed(self.run_name, rng.index, rng.output_path, str(error), rows_written)
        return RangeOutcome(range=rng, rows_written=rows_written, error=error)


def _chain(first_batch, batches):
    yield first_batch
    yield from batches


def _as_range_failure(range_index: int, exc: Exception) -> RangeExportFailure:
    if isinstance(exc, RangeExportFailure):
        return exc
    message = str(exc).strip() or type(exc).__name__
    failure = RangeExportFailure(range_index, message)
    failure.__cause__ = exc
    return failure
