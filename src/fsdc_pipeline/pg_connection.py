"""
PostgreSQL connection manager.

Wraps a psycopg3 connection pool behind a small query interface. One
PostgresDB is constructed per pipeline run, opened at start and closed at
the end, and handed to every component that needs the database.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)


class PostgresDB:
    """
    PostgreSQL database connection manager.

    Usage:
        with PostgresDB(settings.database_url) as db:
            db.fetchall("SELECT * FROM finished_matches")
    """

    def __init__(
        self,
        connection_string: Optional[str] = None,
        min_pool_size: int = 1,
        max_pool_size: Optional[int] = None,
    ):
        """
        Initialize the PostgreSQL connection manager.

        The pool is created closed; call open() or use the instance as a
        context manager.

        Args:
            connection_string: PostgreSQL connection URL. Defaults to DATABASE_URL env var.
            min_pool_size: Minimum connections to keep in pool.
            max_pool_size: Maximum connections in pool. Defaults to DATABASE_POOL_SIZE env var or 5.

        Raises:
            ValueError: If no connection string is available.
        """
        self.connection_string = connection_string or os.environ.get("DATABASE_URL")
        if not self.connection_string:
            raise ValueError(
                "DATABASE_URL environment variable required or connection_string must be provided"
            )

        self._max_pool_size = max_pool_size or int(os.environ.get("DATABASE_POOL_SIZE", 5))
        self._min_pool_size = min(min_pool_size, self._max_pool_size)

        self._pool = ConnectionPool(
            self.connection_string,
            min_size=self._min_pool_size,
            max_size=self._max_pool_size,
            kwargs={"row_factory": dict_row},
            open=False,
        )

    # -- Lifecycle -----------------------------------------------------------

    def open(self) -> None:
        """Open the pool and wait until the first connection is ready."""
        self._pool.open(wait=True)
        logger.info("PostgreSQL connection pool opened (max %d)", self._max_pool_size)

    def close(self) -> None:
        """Close the connection pool."""
        self._pool.close()
        logger.info("PostgreSQL connection pool closed")

    def __enter__(self) -> "PostgresDB":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # -- Connections ---------------------------------------------------------

    @contextmanager
    def get_connection(self) -> Iterator[psycopg.Connection]:
        """Get a connection from the pool."""
        with self._pool.connection() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Iterator[psycopg.Connection]:
        """
        Execute queries within a transaction.

        Automatically commits on success, rolls back on failure.
        """
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    # -- Queries -------------------------------------------------------------

    def execute(self, query: str, params: tuple | dict = ()) -> int:
        """Execute a single statement and return the affected row count."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                rowcount = cur.rowcount
            conn.commit()
        return rowcount

    def executescript(self, sql: str) -> None:
        """Execute a SQL script (multiple statements)."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
            conn.commit()

    def fetchone(self, query: str, params: tuple | dict = ()) -> Optional[dict[str, Any]]:
        """Execute a query and fetch one result as a dict."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                row = cur.fetchone()
            conn.commit()
        return dict(row) if row else None

    def fetchall(self, query: str, params: tuple | dict = ()) -> list[dict[str, Any]]:
        """Execute a query and fetch all results as dicts."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
            conn.commit()
        return [dict(row) for row in rows]
