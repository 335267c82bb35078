"""
Task queue domain abstractions and value objects.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, TypeVar, runtime_checkable

T = TypeVar("T")

Task = Callable[[], Awaitable[T]]
"""Zero-argument callable that starts an asynchronous operation."""


class RunnerState(Enum):
    """Lifecycle state of a single runner."""

    FETCHING = "fetching"
    PARKED = "parked"
    EXECUTING = "executing"


@dataclass(frozen=True)
class QueueStats:
    """Point-in-time snapshot of a queue."""

    name: str
    concurrency: int
    pending: int
    parked: int
    running: int
    submitted: int
    succeeded: int
    failed: int
    cancelled: int = 0

    @property
    def settled(self) -> int:
        """Tasks that reached a final state."""
        return self.succeeded + self.failed + self.cancelled


@runtime_checkable
class TaskQueueInterface(Protocol):
    """Protocol defining the task queue interface."""

    @property
    def concurrency(self) -> int:
        """Maximum number of tasks executing at the same time."""
        ...

    def submit(self, task: Callable[[], Awaitable[Any]]) -> "asyncio.Future[Any]":
        """
        Submit a task for execution.

        Args:
            task: Zero-argument callable returning an awaitable.

        Returns:
            A future settled with the task's result or exception.
        """
        ...

    def stats(self) -> QueueStats:
        """Get a snapshot of the queue state."""
        ...

    async def join(self) -> None:
        """Wait until every submitted task has settled."""
        ...

    async def shutdown(self) -> None:
        """Drain the queue and stop the runners."""
        ...

    async def abort(self) -> None:
        """Stop the runners now and cancel every unsettled task."""
        ...
