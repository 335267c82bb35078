"""
Domain interface for the Dispatcher component.
"""

import concurrent.futures
from typing import Awaitable, Callable, Optional, Protocol, TypeVar, runtime_checkable

from sincpro_task_queue.domain.queue import QueueStats

T = TypeVar("T")


@runtime_checkable
class DispatcherInterface(Protocol):
    """
    Interface for the Dispatcher component.
    Defines the contract that all Dispatcher implementations must follow.
    """

    def execute(self, task: Callable[[], Awaitable[T]], timeout: Optional[float] = None) -> T:
        """
        Execute a task through the queue and wait for its result.

        Args:
            task: Zero-argument callable returning an awaitable
            timeout: Optional timeout in seconds

        Returns:
            The result of the task

        Raises:
            TimeoutError: If the task takes longer than timeout seconds
            Exception: Any exception raised by the task
        """
        ...

    def execute_async(self, task: Callable[[], Awaitable[T]]) -> "concurrent.futures.Future[T]":
        """
        Submit a task through the queue without waiting.

        Args:
            task: Zero-argument callable returning an awaitable

        Returns:
            A future settled with the task's result or exception
        """
        ...

    def stats(self) -> QueueStats:
        """Get a snapshot of the hosted queue."""
        ...

    def shutdown(self) -> None:
        """Drain the hosted queue and release the event loop."""
        ...
