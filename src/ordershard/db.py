"""
Connection providers and query utilities.

A data source hands out psycopg connections through the acquire() context
manager and translates driver failures into ordershard errors:

- psycopg.OperationalError / pool timeouts on acquisition become
  DataSourceUnavailableError
- psycopg.Error raised while running SQL becomes StatementError

Connections come out in autocommit mode. Transaction boundaries are owned by
the caller (see ordershard.order.transaction), never by the data source.
Both providers speak plain PostgreSQL, so a sharding proxy in front of the
real databases is used exactly like a single server.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool, PoolClosed, PoolTimeout

from ordershard.config import Config, config
from ordershard.errors import DataSourceUnavailableError, StatementError

logger = logging.getLogger(__name__)


# =============================================================================
# Error Translation
# =============================================================================


@contextmanager
def statement_errors(action: str):
    """
    Re-raise psycopg errors from the wrapped block as StatementError.

    Usage:
        with statement_errors("create t_order"):
            cur.execute("CREATE TABLE ...")
    """
    try:
        yield
    except psycopg.Error as exc:
        raise StatementError(f"{action} failed: {exc}", sqlstate=exc.sqlstate) from exc


# =============================================================================
# Connection Providers
# =============================================================================


class DataSource:
    """
    Opens a new connection for every acquisition and closes it afterwards.

    Args:
        conninfo: libpq connection string or URL
        connect_timeout: Seconds to wait for the server before giving up
    """

    def __init__(self, conninfo: str, connect_timeout: int = 10):
        self.conninfo = conninfo
        self.connect_timeout = connect_timeout
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @contextmanager
    def acquire(self) -> Iterator[psycopg.Connection]:
        """
        Context manager for a connection in autocommit mode.

        The connection is closed on every exit path. Closing a connection
        that is still inside a transaction discards the transaction.

        Raises:
            DataSourceUnavailableError: If the server cannot be reached
        """
        if self._closed:
            raise DataSourceUnavailableError("data source is closed")

        try:
            conn = psycopg.connect(
                self.conninfo, autocommit=True, connect_timeout=self.connect_timeout
            )
        except psycopg.OperationalError as exc:
            raise DataSourceUnavailableError(f"cannot connect: {exc}") from exc

        try:
            yield conn
        finally:
            conn.close()

    def close(self) -> None:
        self._closed = True


class PooledDataSource:
    """
    Hands out connections from a psycopg_pool.ConnectionPool.

    Connections returned while still inside a transaction are rolled back by
    the pool; every returned connection is switched back to autocommit before
    it is reused.
    """

    def __init__(
        self,
        conninfo: str,
        min_size: int = 1,
        max_size: int = 4,
        timeout: float = 10.0,
    ):
        self.timeout = timeout
        self.pool = ConnectionPool(
            conninfo,
            min_size=min_size,
            max_size=max_size,
            kwargs={"autocommit": True},
            reset=self._reset,
            timeout=timeout,
            open=True,
        )

    @staticmethod
    def _reset(conn: psycopg.Connection) -> None:
        conn.autocommit = True

    @property
    def closed(self) -> bool:
        return self.pool.closed

    @contextmanager
    def acquire(self) -> Iterator[psycopg.Connection]:
        """
        Context manager for a pooled connection in autocommit mode.

        Raises:
            DataSourceUnavailableError: If the pool is closed or exhausted
        """
        try:
            conn = self.pool.getconn(timeout=self.timeout)
        except (PoolTimeout, PoolClosed, psycopg.OperationalError) as exc:
            raise DataSourceUnavailableError(f"no connection available: {exc}") from exc

        try:
            yield conn
        finally:
            self.pool.putconn(conn)

    def close(self) -> None:
        self.pool.close()


def create_datasource(cfg: Optional[Config] = None):
    """Build the data source described by the configuration."""
    cfg = cfg or config
    if cfg.pooled:
        logger.debug("Using pooled data source (max_size=%d)", cfg.pool_max_size)
        return PooledDataSource(
            cfg.database_url,
            min_size=min(cfg.pool_min_size, cfg.pool_max_size),
            max_size=cfg.pool_max_size,
            timeout=float(cfg.connect_timeout),
        )
    return DataSource(cfg.database_url, connect_timeout=cfg.connect_timeout)


# =============================================================================
# Query Helpers
# =============================================================================


def execute(datasource, query: str, params: tuple = None) -> None:
    """
    Execute a statement on its own autocommit connection.

    Use for DDL and one-off statements that need no transaction boundary.

    Args:
        datasource: Connection provider
        query: SQL query with %s placeholders
        params: Tuple of parameter values
    """
    with datasource.acquire() as conn:
        with statement_errors(query.split("(", 1)[0].strip()):
            conn.execute(query, params)


def fetch_one(datasource, query: str, params: tuple = None) -> dict[str, Any] | None:
    """
    Execute a query and return a single row as dict.

    Returns:
        Dict of column names to values, or None if no row found
    """
    with datasource.acquire() as conn:
        with conn.cursor(row_factory=dict_row) as cur:
            with statement_errors("query"):
                cur.execute(query, params)
                return cur.fetchone()


def fetch_all(datasource, query: str, params: tuple = None) -> list[dict[str, Any]]:
    """
    Execute a query and return all rows as list of dicts.

    Returns:
        List of dicts, empty list if no rows found
    """
    with datasource.acquire() as conn:
        with conn.cursor(row_factory=dict_row) as cur:
            with statement_errors("query"):
                cur.execute(query, params)
                return cur.fetchall()
