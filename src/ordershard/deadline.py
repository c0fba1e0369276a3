import time
from dataclasses import dataclass
from typing import Optional

from ordershard.errors import DeadlineExceeded


@dataclass(frozen=True)
class Deadline:
    """
    A point in monotonic time after which an operation must stop.

    Checked between statements, so a single slow statement can still overrun
    it; pair with a server-side statement_timeout for a hard bound.
    """

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> "Deadline":
        return cls(time.monotonic() + seconds)

    @property
    def remaining(self) -> float:
        return self.expires_at - time.monotonic()

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    def check(self, action: str = "operation") -> None:
        if self.expired:
            raise DeadlineExceeded(f"{action} exceeded its deadline")


def check_deadline(deadline: Optional[Deadline], action: str) -> None:
    """No-op when no deadline was given."""
    if deadline is not None:
        deadline.check(action)
