#!/usr/bin/env python3
"""
Structured logging for tabledump
Provides consistent, trackable progress for dumps running across worker threads
"""

import logging
import os
import re
import threading
import time
import psutil
from typing import Optional, Dict
from dataclasses import dataclass

from tabledump.config import DumpConfig

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def redact_sensitive_data(text):
    """Redact sensitive information from log messages"""
    if not isinstance(text, str):
        text = str(text)

    patterns = [
        # userinfo runs to the last '@' of the netloc; passwords may contain '@'
        (r'://([^:/@\s]+):([^/\s]*)@', r'://\1:***REDACTED***@'),
        (r'(password|pwd|pass|secret|token)\s*[:=]\s*[^\s,]+', r'\1=***REDACTED***'),
    ]

    redacted_text = text
    for pattern, replacement in patterns:
        redacted_text = re.sub(pattern, replacement, redacted_text, flags=re.IGNORECASE)

    return redacted_text


class SensitiveDataFilter(logging.Filter):
    """Logging filter to redact credentials from DSNs and messages"""
    def filter(self, record):
        record.msg = redact_sensitive_data(record.getMessage())
        record.args = None
        return True


@dataclass
class DumpContext:
    """Dump-level context for structured logging"""
    run_name: str
    table_name: str
    start_time: float
    total_rows: int = 0
    total_ranges: int = 0
    completed_ranges: int = 0
    failed_ranges: int = 0
    rows_written: int = 0


class EnhancedLogger:
    """
    Structured logger with per-dump progress tracking

    Range events arrive from worker threads in completion order, so progress
    counters are kept per run and guarded by a lock.
    """

    def __init__(self, name: str = "tabledump"):
        self.logger = logging.getLogger(name)
        self._setup_logger()
        self._contexts: Dict[str, DumpContext] = {}
        self._lock = threading.Lock()

    def _setup_logger(self):
        """Configure structured logging format"""
        if self.logger.handlers:
            return

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        redaction = SensitiveDataFilter()

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler.addFilter(redaction)
        self.logger.addHandler(console_handler)

        log_file_path = DumpConfig.log_file
        if log_file_path:
            try:
                log_dir = os.path.dirname(log_file_path)
                if log_dir:
                    os.makedirs(log_dir, exist_ok=True)
                file_handler = logging.FileHandler(log_file_path, mode='a')
                file_handler.setFormatter(formatter)
                file_handler.addFilter(redaction)
                self.logger.addHandler(file_handler)
            except OSError as e:
                self.logger.warning(f"Failed to setup file logging to {log_file_path}: {e}")

        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False

    def set_level(self, level):
        self.logger.setLevel(level)

    def _format_duration(self, seconds: float) -> str:
        """Format duration in human-readable form"""
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            return f"{seconds/60:.1f}m"
        else:
            return f"{seconds/3600:.1f}h"

    def _format_rows(self, count: int) -> str:
        """Format row count in human-readable form"""
        if count < 1000:
            return str(count)
        elif count < 1000000:
            return f"{count/1000:.1f}K"
        elif count < 1000000000:
            return f"{count/1000000:.1f}M"
        else:
            return f"{count/1000000000:.1f}B"

    def _get_memory_usage(self) -> str:
        """Get current memory usage"""
        try:
            memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
            return f"{memory_mb:.1f}MB"
        except psutil.Error:
            return "Unknown"

    def get_dump_context(self, run_name: Optional[str]) -> Optional[DumpContext]:
        with self._lock:
            return self._contexts.get(run_name)

    def _build_context_prefix(self, run_name: Optional[str] = None) -> str:
        """Build context prefix for log messages"""
        parts = []

        ctx = self.get_dump_context(run_name)
        if ctx:
            parts.append(f"DUMP:{ctx.run_name}")
            parts.append(f"TABLE:{ctx.table_name}")
            if ctx.total_ranges > 0:
                done = ctx.completed_ranges + ctx.failed_ranges
                parts.append(f"RANGES:{done}/{ctx.total_ranges}")
                parts.append(f"ROWS:{self._format_rows(ctx.rows_written)}/{self._format_rows(ctx.total_rows)}")

        parts.append(f"MEM:{self._get_memory_usage()}")

        return "[" + "] [".join(parts) + "]"

    def _log(self, level: int, message: str, run_name: Optional[str] = None, **kwargs):
        if not self.logger.isEnabledFor(level):
            return
        prefix = self._build_context_prefix(run_name)
        self.logger.log(level, f"{prefix} {message}", **kwargs)

    def info(self, message: str, run_name: Optional[str] = None, **kwargs):
        self._log(logging.INFO, message, run_name, **kwargs)

    def warning(self, message: str, run_name: Optional[str] = None, **kwargs):
        self._log(logging.WARNING, message, run_name, **kwargs)

    def error(self, message: str, run_name: Optional[str] = None, **kwargs):
        self._log(logging.ERROR, message, run_name, **kwargs)

    def debug(self, message: str, run_name: Optional[str] = None, **kwargs):
        self._log(logging.DEBUG, message, run_name, **kwargs)

    # Dump-level logging methods
    def dump_started(self, run_name: str, table_name: str, total_rows: int,
                     total_ranges: int, slice_size: int, concurrency: int):
        """Log dump start and register its progress context"""
        with self._lock:
            self._contexts[run_name] = DumpContext(
                run_name=run_name,
                table_name=table_name,
                start_time=time.time(),
                total_rows=total_rows,
                total_ranges=total_ranges,
            )

        self.info(f"Starting dump: {self._format_rows(total_rows)} rows in {total_ranges} ranges "
                  f"({self._format_rows(slice_size)} rows/range, {concurrency} workers)", run_name)

    def range_completed(self, run_name: str, range_index: int, output_path: str,
                        rows_written: int, duration: float):
        """Log a successfully exported range"""
        with self._lock:
            ctx = self._contexts.get(run_name)
            if ctx:
                ctx.completed_ranges += 1
                ctx.rows_written += rows_written

        throughput = int(rows_written / duration) if duration > 0 else 0
        self.info(f"Range {range_index} completed: {self._format_rows(rows_written)} rows "
                  f"in {self._format_duration(duration)} at {self._format_rows(throughput)}/sec "
                  f"-> {output_path}", run_name)

    def range_failed(self, run_name: str, range_index: int, output_path: str,
                     error: str, rows_written: int = 0):
        """Log a range that stopped on an error"""
        with self._lock:
            ctx = self._contexts.get(run_name)
            if ctx:
                ctx.failed_ranges += 1
                ctx.rows_written += rows_written

        self.error(f"Range {range_index} failed after {self._format_rows(rows_written)} rows "
                   f"({output_path}): {error}", run_name)

    def dump_completed(self, run_name: str):
        """Log dump summary and drop its progress context"""
        ctx = self.get_dump_context(run_name)
        if ctx is None:
            return

        duration = time.time() - ctx.start_time
        throughput = int(ctx.rows_written / duration) if duration > 0 else 0
        summary = (f"Dump completed in {self._format_duration(duration)} - "
                   f"{ctx.completed_ranges} ranges succeeded, {ctx.failed_ranges} failed, "
                   f"{self._format_rows(ctx.rows_written)} rows at {self._format_rows(throughput)}/sec")
        if ctx.failed_ranges:
            self.warning(summary, run_name)
        else:
            self.info(summary, run_name)

        with self._lock:
            self._contexts.pop(run_name, None)

    def dump_failed(self, table_name: str, error: str):
        """Log a fatal dump failure"""
        self.error(f"Dump of {table_name} failed: {error}")

    # Connection management logging
    def connection_acquired(self, connection_id: str, active: int):
        self.debug(f"Connection acquired: {connection_id} (active: {active})")

    def connection_released(self, connection_id: str, duration: float):
        self.debug(f"Connection released: {connection_id} (held: {self._format_duration(duration)})")

    def connection_error(self, error: str):
        self.error(f"Connection error: {error}")


# Global logger instance
logger = EnhancedLogger("tabledump")
