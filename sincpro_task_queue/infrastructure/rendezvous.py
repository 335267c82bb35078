"""
Rendezvous between submitted work and idle runners.
"""

import asyncio
import logging
from collections import deque
from typing import Deque, Generic, TypeVar

logger = logging.getLogger(__name__)
T = TypeVar("T")


class Rendezvous(Generic[T]):
    """
    Pairs produced items with waiting consumers, both in FIFO order.

    Two queues are kept: items that no consumer is waiting for, and consumers
    waiting for an item. At most one of them is non-empty at any time, so an
    item is either handed over directly or stored, and a consumer either
    takes a stored item or parks.

    Not thread-safe. All calls must happen on the loop passed at construction.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        self._pending: Deque[T] = deque()
        self._waiters: Deque["asyncio.Future[T]"] = deque()

    @property
    def pending_count(self) -> int:
        """Number of items waiting for a consumer."""
        return len(self._pending)

    @property
    def waiting_count(self) -> int:
        """Number of consumers parked waiting for an item."""
        return len(self._waiters)

    def offer(self, item: T) -> bool:
        """
        Hand an item to the oldest waiting consumer, or queue it.

        Args:
            item: The item to deliver.

        Returns:
            True if a parked consumer received the item directly,
            False if it was appended to the pending queue.
        """
        if self._hand_to_waiter(item):
            return True
        self._pending.append(item)
        return False

    async def take(self) -> T:
        """
        Get the oldest pending item, parking until one is offered if none is.

        Each parked consumer is woken exactly once, with exactly one item.
        """
        if self._pending:
            return self._pending.popleft()

        waiter: "asyncio.Future[T]" = self._loop.create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Handed an item but cancelled before resuming: pass it on.
                self._requeue(waiter.result())
            else:
                self._discard(waiter)
            raise

    def clear(self) -> int:
        """Drop every pending item. Returns how many were dropped."""
        dropped = len(self._pending)
        self._pending.clear()
        return dropped

    def _hand_to_waiter(self, item: T) -> bool:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(item)
                return True
        return False

    def _requeue(self, item: T) -> None:
        if self._hand_to_waiter(item):
            return
        logger.debug("Returning undelivered item to the head of the pending queue")
        self._pending.appendleft(item)

    def _discard(self, waiter: "asyncio.Future[T]") -> None:
        try:
            self._waiters.remove(waiter)
        except ValueError:
            pass
