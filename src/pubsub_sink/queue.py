from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class BoundedQueue(Generic[T]):
    """Bounded, never-blocking queue for the periodic sink; drops the oldest item when full."""

    def __init__(
        self,
        capacity: int,
        *,
        drop_callback: Optional[Callable[[T], Awaitable[None]]] = None,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be > 0")

        self._capacity = capacity
        self._q: asyncio.Queue[T] = asyncio.Queue(maxsize=capacity)
        self._drop_cb = drop_callback
        self._dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        return self._q.qsize()

    @property
    def dropped(self) -> int:
        return self._dropped

    async def put(self, item: T) -> None:
        """Put item, evicting the oldest one if full; never waits for space."""
        if self._q.full():
            oldest = self._q.get_nowait()
            self._dropped += 1
            if self._drop_cb:
                await self._drop_cb(oldest)
        self._q.put_nowait(item)

    def drain(self, max_items: Optional[int] = None) -> list[T]:
        """Remove and return up to ``max_items`` queued items (all if None)."""
        items: list[T] = []
        while not self._q.empty() and (max_items is None or len(items) < max_items):
            items.append(self._q.get_nowait())
        return items
