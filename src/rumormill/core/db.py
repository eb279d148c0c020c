# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""PostgreSQL connection management.

Connections come from a lazily created, thread-safe psycopg2 pool configured
through ``RUMORMILL_DB_*`` settings. ``get_cursor()`` is the transaction
boundary: one block commits as a whole or rolls back as a whole.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor
from psycopg2.pool import PoolError

from .config import get_config
from .exceptions import DatabaseException

logger = logging.getLogger(__name__)

HEALTHY_CONNECTION_ATTEMPTS = 3

# Connection pool (lazy init, thread-safe)
_pool: psycopg2_pool.ThreadedConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> psycopg2_pool.ThreadedConnectionPool:
    """Get or create the connection pool."""
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                config = get_config()
                try:
                    _pool = psycopg2_pool.ThreadedConnectionPool(
                        **config.pool_config,
                        **config.connection_params,
                    )
                except psycopg2.Error as e:
                    raise DatabaseException(f"Failed to connect to database: {e}") from e
                logger.info(
                    "Connection pool ready for %s:%s/%s",
                    config.db_host,
                    config.db_port,
                    config.db_name,
                )
    return _pool


def _get_conn_with_timeout(pool: psycopg2_pool.ThreadedConnectionPool, timeout: int) -> Any:
    """Get a connection from the pool, giving up after ``timeout`` seconds.

    Raises:
        PoolError: If no connection became available in time
    """
    result_queue: queue.Queue = queue.Queue()

    def _get_conn() -> None:
        try:
            result_queue.put(("success", pool.getconn()))
        except Exception as e:
            result_queue.put(("error", e))

    thread = threading.Thread(target=_get_conn, daemon=True)
    thread.start()

    try:
        result_type, result_value = result_queue.get(timeout=timeout)
    except queue.Empty:
        raise PoolError(f"Connection pool timeout after {timeout} seconds")
    if result_type == "error":
        raise result_value
    return result_value


def _validate_connection(conn: Any) -> bool:
    """Check that a pooled connection is open and answers a trivial query."""
    if conn.closed:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            cur.fetchone()
        return True
    except psycopg2.Error:
        return False


def _get_healthy_connection(pool: psycopg2_pool.ThreadedConnectionPool, timeout: int) -> Any:
    """Get a healthy connection, discarding stale ones.

    Raises:
        DatabaseException: If no healthy connection could be obtained
    """
    for _ in range(HEALTHY_CONNECTION_ATTEMPTS):
        try:
            conn = _get_conn_with_timeout(pool, timeout)
        except PoolError as e:
            raise DatabaseException(str(e)) from e
        if _validate_connection(conn):
            return conn
        logger.warning("Discarding stale database connection")
        pool.putconn(conn, close=True)

    raise DatabaseException("Failed to get healthy connection after multiple attempts")


@contextmanager
def get_cursor() -> Generator[Any, None, None]:
    """Get a dict cursor with commit on success, rollback on error.

    psycopg2 errors surface as ``DatabaseException``; any other exception
    raised inside the block (domain conflicts included) rolls back and
    propagates unchanged.

    Usage:
        with get_cursor() as cur:
            cur.execute("SELECT * FROM claims WHERE id = %s", (claim_id,))
            row = cur.fetchone()
    """
    pool = _get_pool()
    conn = _get_healthy_connection(pool, get_config().db_pool_timeout)
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            yield cur
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        raise DatabaseException(f"Database error: {e}", {"pgcode": getattr(e, "pgcode", None)}) from e
    except Exception:
        conn.rollback()
        raise
    finally:
        pool.putconn(conn)


@contextmanager
def get_connection() -> Generator[Any, None, None]:
    """Get a raw pooled connection, for connection-level control (migrations)."""
    pool = _get_pool()
    conn = _get_healthy_connection(pool, get_config().db_pool_timeout)
    try:
        yield conn
    finally:
        pool.putconn(conn)


def close_pool() -> None:
    """Close the connection pool."""
    global _pool
    if _pool is not None:
        _pool.closeall()
        _pool = None


def check_connection() -> bool:
    """Check if the database answers."""
    try:
        with get_cursor() as cur:
            cur.execute("SELECT 1")
        return True
    except DatabaseException as e:
        logger.warning("Database check failed: %s", e.message)
        return False
