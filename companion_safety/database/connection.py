"""PostgreSQL connection pool for the safety audit tables.

ThreadedConnectionPool, so audit writes can run from asyncio.to_thread
workers. Connections are tagged with db_application_name so audit traffic
is identifiable in pg_stat_activity.
"""

from contextlib import contextmanager
from typing import Generator

from psycopg2 import pool
import structlog

from companion_safety.config import settings

logger = structlog.get_logger()

_pool: pool.ThreadedConnectionPool | None = None


def init_pool() -> None:
    """Initialize the database connection pool."""
    global _pool
    _pool = pool.ThreadedConnectionPool(
        minconn=settings.db_pool_min,
        maxconn=settings.db_pool_max,
        dsn=settings.database_url,
        connect_timeout=settings.db_connect_timeout,
        sslmode=settings.db_sslmode,
        application_name=settings.db_application_name,
    )
    logger.info(
        "database_pool_initialized",
        min_connections=settings.db_pool_min,
        max_connections=settings.db_pool_max,
        sslmode=settings.db_sslmode,
    )


def close_pool() -> None:
    """Close all connections in the pool."""
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None
        logger.info("database_pool_closed")


def is_initialized() -> bool:
    return _pool is not None


@contextmanager
def get_connection() -> Generator:
    """Get a connection from the pool.

    Yields:
        psycopg2 connection object. Auto-commits on success, rolls back on error.
    """
    if _pool is None:
        raise RuntimeError("Database pool not initialized. Call init_pool() first.")

    conn = _pool.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.putconn(conn)
