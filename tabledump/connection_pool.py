#!/usr/bin/env python3
"""
Bounded, thread-safe connection pool shared by dump workers
Each worker checks out its own connection for one range at a time
"""

import threading
import time
import uuid
from contextlib import contextmanager
from functools import partial
from typing import Any, Callable, Dict, Optional

from psycopg2 import pool

from tabledump.database_utils import (
    ConnectionConfig,
    create_data_source_connection,
    is_postgres,
)
from tabledump.enhanced_logger import logger


class ConnectionPool:
    """
    Connection pool for PostgreSQL/Greenplum, Vertica and plain DB-API drivers

    PostgreSQL and Greenplum reuse connections through psycopg2's
    ThreadedConnectionPool. Other drivers (or an explicit connection_factory)
    open a fresh connection per checkout and close it on release. In both
    modes at most max_connections are checked out at once; further callers
    block until one is returned.
    """

    def __init__(self, config: Optional[ConnectionConfig] = None, max_connections: int = 6,
                 min_connections: int = 1,
                 connection_factory: Optional[Callable[[], Any]] = None):
        if config is None and connection_factory is None:
            raise ValueError("Either a connection config or a connection factory is required")
        if max_connections < 1:
            raise ValueError(f"max_connections must be at least 1, got {max_connections}")

        self.config = config
        self.max_connections = max_connections
        self.min_connections = min(min_connections, max_connections)
        self.db_type = config.db_type.lower() if config else 'generic'

        self._pool = None
        self._factory = connection_factory
        self._slots = threading.BoundedSemaphore(max_connections)
        self._pool_lock = threading.Lock()
        self._active_connections: Dict[str, float] = {}
        self._closed = False

        self._stats = {
            'total_acquired': 0,
            'total_released': 0,
            'total_errors': 0,
            'peak_connections': 0,
            'current_active': 0
        }

        self._initialize_pool()

    def _initialize_pool(self):
        """Initialize the underlying pool or connection factory"""
        if self._factory is not None:
            logger.info(f"Initialized connection factory pool: up to {self.max_connections} connections")
            return

        if is_postgres(self.db_type):
            self._pool = pool.ThreadedConnectionPool(
                minconn=self.min_connections,
                maxconn=self.max_connections,
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.username,
                password=self.config.password,
                connect_timeout=self.config.connect_timeout
            )
            logger.info(f"Initialized PostgreSQL/Greenplum connection pool: "
                        f"{self.min_connections}-{self.max_connections} connections")
        else:
            self._factory = partial(create_data_source_connection, self.config)
            logger.info(f"Initialized manual connection management for {self.db_type}: "
                        f"up to {self.max_connections} connections")

    def _acquire(self):
        if self._pool is not None:
            return self._pool.getconn()
        return self._factory()

    def _release(self, connection, broken: bool):
        if self._pool is not None:
            self._pool.putconn(connection, close=broken)
        else:
            connection.close()

    @contextmanager
    def get_connection(self):
        """
        Check out a connection for exclusive use by the calling thread

        Yields:
            Database connection object
        """
        if self._closed:
            raise RuntimeError("Connection pool is closed")

        self._slots.acquire()
        connection = None
        connection_id = uuid.uuid4().hex[:8]
        start_time = time.time()
        broken = False

        try:
            try:
                connection = self._acquire()
            except Exception as e:
                logger.connection_error(str(e))
                with self._pool_lock:
                    self._stats['total_errors'] += 1
                raise

            with self._pool_lock:
                self._active_connections[connection_id] = start_time
                self._stats['total_acquired'] += 1
                self._stats['current_active'] = len(self._active_connections)
                self._stats['peak_connections'] = max(self._stats['peak_connections'],
                                                      self._stats['current_active'])
                active = self._stats['current_active']

            logger.connection_acquired(connection_id, active)

            try:
                yield connection
            except Exception:
                broken = True
                raise

        finally:
            try:
                if connection is not None:
                    try:
                        self._release(connection, broken)
                    except Exception as e:
                        logger.error(f"Error returning connection {connection_id} to pool: {e}")

                    with self._pool_lock:
                        self._active_connections.pop(connection_id, None)
                        self._stats['total_released'] += 1
                        self._stats['current_active'] = len(self._active_connections)

                    logger.connection_released(connection_id, time.time() - start_time)
            finally:
                self._slots.release()

    def ping(self):
        """Run SELECT 1 on a pooled connection; raises on failure"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute("SELECT 1")
                result = cursor.fetchone()
            finally:
                cursor.close()

        if not result or result[0] != 1:
            raise RuntimeError("Connection health check returned an unexpected result")

    def get_stats(self) -> Dict[str, Any]:
        """Get connection pool statistics"""
        with self._pool_lock:
            stats = dict(self._stats)
            stats.update({
                'db_type': self.db_type,
                'max_connections': self.max_connections,
                'active_connection_ids': list(self._active_connections.keys())
            })
            return stats

    def close_all_connections(self):
        """Close pooled connections; checked-out manual connections close on release"""
        with self._pool_lock:
            if self._closed:
                return
            self._closed = True
            if self._pool is not None:
                self._pool.closeall()

        logger.debug("All pooled connections closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, tb):
        self.close_all_connections()
        return False
