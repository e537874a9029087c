from __future__ import annotations

import asyncio
from collections import deque
from typing import Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class WorkQueue(Generic[T]):
    """Pre-seeded FIFO shared by all workers of one pass.

    Built once from the discovery order; there is no put(). dequeue() hands
    every item to exactly one caller and returns None once the queue is empty.
    """

    def __init__(self, items: Iterable[T]):
        self._items: deque[T] = deque(items)
        self._initial = len(self._items)

        # Serializes pops across concurrent workers
        self._lock = asyncio.Lock()

    @property
    def initial_size(self) -> int:
        return self._initial

    async def dequeue(self) -> Optional[T]:
        """Pop the oldest item, or None when nothing is left."""
        async with self._lock:
            return self._items.popleft() if self._items else None
