"""
Transaction strategies.

A repository write operation brackets its statements with begin(), then
commit() on success or rollback() on failure. The strategy decides what those
calls mean for the connection:

- LocalTransaction leaves the connection in autocommit; every statement is
  its own transaction and the three calls do nothing. This is what a single
  database, or a sharding proxy without a coordinator, gives you.
- DistributedTransaction turns autocommit off for the duration of the
  operation and issues a real COMMIT or ROLLBACK. Behind an XA-capable
  sharding proxy the proxy turns that into an XA transaction across shards.
- TwoPhaseTransaction drives PostgreSQL's own two-phase commit with
  PREPARE TRANSACTION / COMMIT PREPARED. Needs max_prepared_transactions > 0
  on the server.

Connection states are {autocommit, in-transaction}. Only the distributed
strategies ever leave autocommit, and they always return to it on commit or
rollback.
"""

import logging
import uuid

import psycopg
from psycopg import sql

logger = logging.getLogger(__name__)


class TransactionStrategy:
    """Base strategy: statements autocommit, boundaries are no-ops."""

    name = "local"

    def begin(self, conn: psycopg.Connection) -> None:
        pass

    def commit(self, conn: psycopg.Connection) -> None:
        pass

    def rollback(self, conn: psycopg.Connection) -> None:
        pass

    @property
    def atomic(self) -> bool:
        """True when rollback() undoes the statements since begin()."""
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class LocalTransaction(TransactionStrategy):
    pass


class DistributedTransaction(TransactionStrategy):
    name = "xa"

    @property
    def atomic(self) -> bool:
        return True

    def begin(self, conn: psycopg.Connection) -> None:
        conn.autocommit = False

    def commit(self, conn: psycopg.Connection) -> None:
        conn.commit()
        conn.autocommit = True

    def rollback(self, conn: psycopg.Connection) -> None:
        conn.rollback()
        conn.autocommit = True


PREPARE_TRANSACTION = sql.SQL("PREPARE TRANSACTION {}")
COMMIT_PREPARED = sql.SQL("COMMIT PREPARED {}")
ROLLBACK_PREPARED = sql.SQL("ROLLBACK PREPARED {}")


class TwoPhaseTransaction(DistributedTransaction):
    """
    Two-phase commit with a fresh global transaction id per begin().

    The transaction id is built with Connection.xid(), so it has the same
    format tpc_recover() reads back. The PREPARE / COMMIT PREPARED statements
    are issued directly: if PREPARE TRANSACTION fails the server has already
    rolled the transaction back, and rollback() only has to reset the
    connection.

    Args:
        format_id: XA format identifier stored in the transaction id
        branch: Branch qualifier, identifies this participant
    """

    name = "2pc"

    def __init__(self, format_id: int = 1, branch: str = "ordershard"):
        self.format_id = format_id
        self.branch = branch
        # id(conn) -> [gid, prepared]
        self._pending: dict[int, list] = {}

    def begin(self, conn: psycopg.Connection) -> None:
        conn.autocommit = False
        gid = str(conn.xid(self.format_id, uuid.uuid4().hex, self.branch))
        logger.debug("two-phase begin %s", gid)
        self._pending[id(conn)] = [gid, False]

    def commit(self, conn: psycopg.Connection) -> None:
        entry = self._pending[id(conn)]
        gid = entry[0]
        conn.execute(PREPARE_TRANSACTION.format(sql.Literal(gid)))
        entry[1] = True
        # Prepared transactions are committed outside any transaction block
        conn.autocommit = True
        conn.execute(COMMIT_PREPARED.format(sql.Literal(gid)))
        del self._pending[id(conn)]

    def rollback(self, conn: psycopg.Connection) -> None:
        gid, prepared = self._pending.pop(id(conn), (None, False))
        if prepared:
            conn.autocommit = True
            conn.execute(ROLLBACK_PREPARED.format(sql.Literal(gid)))
        else:
            conn.rollback()
            conn.autocommit = True

    def __repr__(self) -> str:
        return f"TwoPhaseTransaction(format_id={self.format_id}, branch={self.branch!r})"


STRATEGIES = {
    LocalTransaction.name: LocalTransaction,
    DistributedTransaction.name: DistributedTransaction,
    TwoPhaseTransaction.name: TwoPhaseTransaction,
}


def strategy_for(mode) -> TransactionStrategy:
    """
    Resolve a strategy from a name, a bool or an existing strategy.

    None and False mean local, True means xa.
    """
    if isinstance(mode, TransactionStrategy):
        return mode
    if mode is None or mode is False:
        return LocalTransaction()
    if mode is True:
        return DistributedTransaction()
    try:
        return STRATEGIES[str(mode).lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown transaction mode {mode!r}; expected one of {sorted(STRATEGIES)}"
        ) from None
