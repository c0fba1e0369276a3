from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Order:
    order_id: int
    user_id: int
    status: str


@dataclass(frozen=True)
class OrderItem:
    order_item_id: int
    order_id: int
    user_id: int


@dataclass
class WriteResult:
    """
    Outcome of a write operation.

    Write operations never raise for statement failures; they roll back and
    report the failure here instead.

    Attributes:
        operation: Name of the operation that produced the result
        committed: True if the transaction boundary was closed with a commit
        rows_written: Rows inserted or updated before the operation ended
        skipped: Iterations that found nothing to write
        error: The exception that ended the operation, if any
    """

    operation: str
    committed: bool = False
    rows_written: int = 0
    skipped: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "committed": self.committed,
            "rows_written": self.rows_written,
            "skipped": self.skipped,
            "error": repr(self.error) if self.error is not None else None,
        }
