import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from ordershard.order.models import OrderItem, WriteResult
from ordershard.order.repository import OrderRepository

logger = logging.getLogger(__name__)


@dataclass
class DemoReport:
    writes: List[WriteResult] = field(default_factory=list)
    equal_rows: List[OrderItem] = field(default_factory=list)
    in_rows: List[OrderItem] = field(default_factory=list)

    @property
    def failed_writes(self) -> List[WriteResult]:
        return [w for w in self.writes if not w.ok]


class DemoService:
    """
    Runs the fixed order/order item walkthrough against a repository.

    Sequence: create schema, insert a batch and commit, insert a batch that
    fails before commit, update random orders, query by equality, query with
    IN, drop schema.
    """

    def __init__(
        self,
        repository: OrderRepository,
        count: int = 9,
        user_ids: Sequence[int] = (10, 11),
        update_iterations: int = 10,
    ):
        if not user_ids:
            raise ValueError("user_ids must not be empty")
        self.repository = repository
        self.count = count
        self.user_ids = tuple(user_ids)
        self.update_iterations = update_iterations

    def run_demo(self, keep_schema: bool = False, on_rows=None) -> DemoReport:
        """
        Run the walkthrough and return everything it produced.

        The schema is dropped at the end even if a step raises, unless
        ``keep_schema`` is set.

        Args:
            keep_schema: Leave both tables in place afterwards
            on_rows: Optional callback(label, rows) called after each query
        """
        repo = self.repository
        report = DemoReport()
        first_user = self.user_ids[0]

        repo.create_schema()
        try:
            report.writes.append(repo.insert_batch(self.count, self.user_ids))
            report.writes.append(
                repo.insert_batch_with_induced_failure(self.count, self.user_ids)
            )
            report.writes.append(repo.update_random_orders(first_user, self.update_iterations))

            report.equal_rows = list(repo.query_by_equal(first_user))
            self._notify(on_rows, f"Query with EQUAL (user_id = {first_user})", report.equal_rows)

            report.in_rows = list(repo.query_by_in(*self.user_ids))
            self._notify(on_rows, f"Query with IN (user_id IN {self.user_ids})", report.in_rows)
        finally:
            if not keep_schema:
                repo.drop_schema()

        for failed in report.failed_writes:
            logger.info("%s did not commit: %r", failed.operation, failed.error)
        return report

    @staticmethod
    def _notify(on_rows, label: str, rows: List[OrderItem]) -> None:
        if on_rows is not None:
            on_rows(label, rows)
