import logging
from typing import Iterator, List, Optional, Sequence

import psycopg
from psycopg.rows import class_row

from ordershard import db
from ordershard.deadline import Deadline, check_deadline
from ordershard.errors import DataSourceUnavailableError, DeadlineExceeded, StatementError
from ordershard.order.models import Order, OrderItem, WriteResult
from ordershard.order.sampling import ReservoirSampler
from ordershard.order.transaction import TransactionStrategy, strategy_for

logger = logging.getLogger(__name__)

ORDER_TABLE = "t_order"
ORDER_ITEM_TABLE = "t_order_item"

CREATE_ORDER_TABLE = """
    CREATE TABLE IF NOT EXISTS t_order (
        order_id BIGSERIAL PRIMARY KEY,
        user_id INT NOT NULL,
        status VARCHAR(50)
    )
"""

CREATE_ORDER_ITEM_TABLE = """
    CREATE TABLE IF NOT EXISTS t_order_item (
        order_item_id BIGSERIAL PRIMARY KEY,
        order_id BIGINT NOT NULL REFERENCES t_order (order_id),
        user_id INT NOT NULL
    )
"""

INSERT_ORDER = "INSERT INTO t_order (user_id, status) VALUES (%s, %s) RETURNING order_id"
INSERT_ORDER_ITEM = "INSERT INTO t_order_item (order_id, user_id) VALUES (%s, %s)"
SELECT_USER_ORDER_IDS = "SELECT order_id FROM t_order WHERE user_id = %s"
UPDATE_ORDER_STATUS = "UPDATE t_order SET status = %s WHERE user_id = %s AND order_id = %s"

SELECT_ITEMS = """
    SELECT i.order_item_id, i.order_id, i.user_id
    FROM t_order o JOIN t_order_item i ON o.order_id = i.order_id
"""

# Errors a write operation reports through WriteResult instead of raising
WRITE_FAILURES = (StatementError, psycopg.Error, ZeroDivisionError, DeadlineExceeded)


class OrderRepository:
    """
    Repository for the t_order / t_order_item pair.

    Encapsulates all SQL for both tables and the transaction boundaries of
    every write. Each operation acquires its own connection from the data
    source and releases it before returning.

    Args:
        datasource: Connection provider with acquire() and close()
        transaction: "local", "xa", "2pc", a bool (True means "xa") or a
            TransactionStrategy instance
        sampler: Picks the order to update in update_random_orders();
            defaults to an unseeded ReservoirSampler
    """

    def __init__(self, datasource, transaction=None, sampler=None):
        self.datasource = datasource
        self.transaction: TransactionStrategy = strategy_for(transaction)
        self.sampler = sampler or ReservoirSampler()

    # Schema

    def create_schema(self, deadline: Optional[Deadline] = None) -> None:
        """Create both tables if they do not exist yet."""
        check_deadline(deadline, "create_schema")
        db.execute(self.datasource, CREATE_ORDER_TABLE)
        check_deadline(deadline, "create_schema")
        db.execute(self.datasource, CREATE_ORDER_ITEM_TABLE)

    def drop_table(self, table: str, deadline: Optional[Deadline] = None) -> None:
        """
        Drop a single table.

        Raises:
            ValueError: If the table is not one of ours
            StatementError: If the store refuses, e.g. t_order is still referenced
            DeadlineExceeded: If the deadline passed before the statement
        """
        if table not in (ORDER_TABLE, ORDER_ITEM_TABLE):
            raise ValueError(f"Unknown table: {table}")
        check_deadline(deadline, f"drop {table}")
        db.execute(self.datasource, f"DROP TABLE {table}")

    def drop_schema(self, deadline: Optional[Deadline] = None) -> None:
        """Drop t_order_item, then t_order. Items reference orders, so the order is fixed."""
        self.drop_table(ORDER_ITEM_TABLE, deadline)
        self.drop_table(ORDER_TABLE, deadline)

    # Writes

    def insert_batch(
        self,
        count: int,
        user_ids: Sequence[int] = (10, 11),
        force_failure_before_commit: bool = False,
        deadline: Optional[Deadline] = None,
    ) -> WriteResult:
        """
        Insert ``count`` rounds of one order plus one order item per user id.

        Every order item references the order inserted just before it. All
        statements share one connection and one transaction boundary.

        Args:
            count: Number of rounds
            user_ids: Users to insert for, in this order, every round
            force_failure_before_commit: Raise ZeroDivisionError after the last
                insert and before commit, to exercise the rollback path
            deadline: Optional time budget, checked before every statement

        Returns:
            WriteResult. On failure the batch is rolled back (when the
            transaction strategy can roll back) and the error is attached.
        """
        result = WriteResult(
            operation="insert_batch_with_induced_failure"
            if force_failure_before_commit
            else "insert_batch"
        )

        with self.datasource.acquire() as conn:
            try:
                self.transaction.begin(conn)
                with conn.cursor() as cur:
                    for _ in range(count):
                        for user_id in user_ids:
                            check_deadline(deadline, "insert_batch")
                            order_id = self._insert_order(cur, user_id)
                            cur.execute(INSERT_ORDER_ITEM, (order_id, user_id), prepare=True)
                            result.rows_written += 2

                if force_failure_before_commit:
                    self._fail_before_commit()

                self.transaction.commit(conn)
                result.committed = True
            except WRITE_FAILURES as exc:
                self._abort(conn, result, exc)

        logger.info(
            "%s: %d rows, committed=%s, transaction=%s",
            result.operation,
            result.rows_written,
            result.committed,
            self.transaction.name,
        )
        return result

    def insert_batch_with_induced_failure(
        self, count: int, user_ids: Sequence[int] = (10, 11)
    ) -> WriteResult:
        """Same as insert_batch(), but always fails right before commit."""
        return self.insert_batch(count, user_ids, force_failure_before_commit=True)

    def update_random_orders(
        self,
        user_id: int,
        iterations: int,
        status: str = "UPDATE_1",
        deadline: Optional[Deadline] = None,
    ) -> WriteResult:
        """
        Set ``status`` on a randomly chosen order of the user, ``iterations`` times.

        The same order may be chosen more than once. An iteration where the
        sampler finds nothing is skipped without issuing an UPDATE.

        Returns:
            WriteResult with rows_written = rows updated, skipped = empty draws
        """
        result = WriteResult(operation="update_random_orders")

        with self.datasource.acquire() as conn:
            try:
                self.transaction.begin(conn)
                with conn.cursor() as cur:
                    for _ in range(iterations):
                        check_deadline(deadline, "update_random_orders")
                        order_id = self._choose_order_id(cur, user_id)
                        if order_id is None:
                            logger.info("No order picked for user %s, skipping", user_id)
                            result.skipped += 1
                            continue
                        cur.execute(UPDATE_ORDER_STATUS, (status, user_id, order_id), prepare=True)
                        result.rows_written += cur.rowcount

                self.transaction.commit(conn)
                result.committed = True
            except WRITE_FAILURES as exc:
                self._abort(conn, result, exc)

        logger.info(
            "update_random_orders: %d updated, %d skipped, committed=%s",
            result.rows_written,
            result.skipped,
            result.committed,
        )
        return result

    # Reads

    def query_by_equal(
        self, user_id: int, deadline: Optional[Deadline] = None
    ) -> Iterator[OrderItem]:
        """
        Order items whose order belongs to ``user_id``, in store order.

        Rows are produced lazily; the deadline is checked before the query and
        before each row, and DeadlineExceeded propagates to the caller.
        """
        return self._query_items(
            SELECT_ITEMS + " WHERE o.user_id = %s", (user_id,), deadline
        )

    def query_by_in(
        self, *user_ids: int, deadline: Optional[Deadline] = None
    ) -> Iterator[OrderItem]:
        """Order items whose order belongs to any of ``user_ids``, in store order."""
        if not user_ids:
            raise ValueError("query_by_in needs at least one user id")
        placeholders = ", ".join(["%s"] * len(user_ids))
        return self._query_items(
            SELECT_ITEMS + f" WHERE o.user_id IN ({placeholders})", tuple(user_ids), deadline
        )

    def find_orders(self, user_id: int) -> List[Order]:
        """All orders of a user, by order_id."""
        rows = db.fetch_all(
            self.datasource,
            "SELECT order_id, user_id, status FROM t_order WHERE user_id = %s ORDER BY order_id",
            (user_id,),
        )
        return [Order(**row) for row in rows]

    def count_orders(self, user_id: Optional[int] = None) -> int:
        return self._count(ORDER_TABLE, user_id)

    def count_order_items(self, user_id: Optional[int] = None) -> int:
        return self._count(ORDER_ITEM_TABLE, user_id)

    # Internals

    def _insert_order(self, cur: psycopg.Cursor, user_id: int) -> int:
        cur.execute(INSERT_ORDER, (user_id, "INIT"), prepare=True)
        row = cur.fetchone()
        if row is None:
            raise StatementError("INSERT INTO t_order returned no generated key")
        return row[0]

    def _fail_before_commit(self) -> float:
        """Divide by zero, standing in for any fault between the last write and commit."""
        return 10 / 0

    def _choose_order_id(self, cur: psycopg.Cursor, user_id: int) -> Optional[int]:
        cur.execute(SELECT_USER_ORDER_IDS, (user_id,))
        return self.sampler.choose(row[0] for row in cur)

    def _abort(self, conn: psycopg.Connection, result: WriteResult, exc: Exception) -> None:
        """
        Roll back through the strategy and record the failure on the result.

        Raises:
            DataSourceUnavailableError: If the connection was lost, either by
                the failing statement or during the rollback
            StatementError: If the rollback itself was refused
        """
        if isinstance(exc, psycopg.Error):
            if conn.closed:
                raise DataSourceUnavailableError(
                    f"connection lost during {result.operation}: {exc}"
                ) from exc
            translated = StatementError(str(exc), sqlstate=exc.sqlstate)
            translated.__cause__ = exc
            exc = translated
        result.error = exc
        result.committed = False

        try:
            self.transaction.rollback(conn)
        except psycopg.Error as rollback_exc:
            if conn.closed or isinstance(rollback_exc, psycopg.OperationalError):
                raise DataSourceUnavailableError(
                    f"connection lost during rollback of {result.operation}: {rollback_exc}"
                ) from rollback_exc
            raise StatementError(
                f"rollback of {result.operation} failed: {rollback_exc}",
                sqlstate=rollback_exc.sqlstate,
            ) from rollback_exc

        logger.warning(
            "%s failed after %d rows (%s): %r",
            result.operation,
            result.rows_written,
            "rolled back" if self.transaction.atomic else "autocommitted rows kept",
            exc,
        )

    def _count(self, table: str, user_id: Optional[int]) -> int:
        query = f"SELECT COUNT(*) AS n FROM {table}"
        params = None
        if user_id is not None:
            query += " WHERE user_id = %s"
            params = (user_id,)
        return db.fetch_one(self.datasource, query, params)["n"]

    def _query_items(
        self, query: str, params: tuple, deadline: Optional[Deadline] = None
    ) -> Iterator[OrderItem]:
        check_deadline(deadline, "order item query")
        with self.datasource.acquire() as conn:
            with conn.cursor(row_factory=class_row(OrderItem)) as cur:
                with db.statement_errors("order item query"):
                    cur.execute(query, params)
                    for row in cur:
                        check_deadline(deadline, "order item query")
                        yield row
