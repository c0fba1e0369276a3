"""
Order samplers for randomized updates.

A sampler picks one order id out of a streamed result set, or returns None
when it picks nothing. Both samplers are seedable so a run can be replayed.

Randomness can also be pushed to the store with
``SELECT order_id FROM t_order WHERE user_id = %s ORDER BY random() LIMIT 1``,
which avoids streaming every id to the client but cannot be seeded per
process, and through a sharding proxy is merged from every shard anyway.
"""

import random
from typing import Iterable, Optional


class ReservoirSampler:
    """
    Uniform choice over every row of the result set, in one pass.

    Single-element reservoir sampling: the k-th row replaces the current pick
    with probability 1/k.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._random = random.Random(seed)

    def choose(self, order_ids: Iterable[int]) -> Optional[int]:
        chosen = None
        for seen, order_id in enumerate(order_ids, start=1):
            if self._random.randrange(seen) == 0:
                chosen = order_id
        return chosen


class OffsetSampler:
    """
    Picks the row at a random offset in [0, window), counting rows from 1.

    Returns None when the offset is 0 or past the last row, so users with
    fewer than ``window`` orders are often skipped. Which row sits at an offset
    depends on the store's result order, so this is not a uniform sample.
    """

    def __init__(self, seed: Optional[int] = None, window: int = 10):
        if window < 1:
            raise ValueError("window must be at least 1")
        self.seed = seed
        self.window = window
        self._random = random.Random(seed)

    def choose(self, order_ids: Iterable[int]) -> Optional[int]:
        target = int(self._random.random() * self.window)
        for position, order_id in enumerate(order_ids, start=1):
            if position == target:
                return order_id
        return None
