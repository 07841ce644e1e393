#!/usr/bin/env python3
"""
Configuration defaults for tabledump
Every setting can be overridden from the environment; CLI flags override these
"""

import os
import zlib


def _env_int(name, default):
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


class DumpConfig:
    # Parallelism
    concurrency = _env_int('TABLEDUMP_CONCURRENCY', 5)

    # Rows per range file
    slice_size = _env_int('TABLEDUMP_SLICE_SIZE', 1000)

    # gzip level, -1 is zlib's default
    gzip_level = _env_int('TABLEDUMP_GZIP_LEVEL', zlib.Z_DEFAULT_COMPRESSION)

    # Rows pulled from the cursor per round trip
    fetch_size = _env_int('TABLEDUMP_FETCH_SIZE', 1000)

    # Connection setup
    connect_timeout = _env_int('TABLEDUMP_CONNECT_TIMEOUT', 30)

    # Optional log file in addition to stderr
    log_file = os.getenv('TABLEDUMP_LOG_FILE')


MIN_GZIP_LEVEL = zlib.Z_DEFAULT_COMPRESSION
MAX_GZIP_LEVEL = zlib.Z_BEST_COMPRESSION
