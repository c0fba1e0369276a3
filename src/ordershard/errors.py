"""
Errors raised by ordershard.

Driver exceptions are translated at the db boundary so callers only have to
know about this module.
"""

from typing import Optional


class OrderShardError(Exception):
    """Base class for all ordershard errors."""


class DataSourceUnavailableError(OrderShardError):
    """The store or the connection pool could not hand out a connection."""


class StatementError(OrderShardError):
    """
    A SQL statement failed: malformed SQL, a constraint violation, a missing
    generated key.

    Attributes:
        sqlstate: The five character SQLSTATE reported by the server, if any
    """

    def __init__(self, message: str, sqlstate: Optional[str] = None):
        super().__init__(message)
        self.sqlstate = sqlstate


class DeadlineExceeded(OrderShardError):
    """An operation ran past the deadline it was given."""
