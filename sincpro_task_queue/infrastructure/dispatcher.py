"""
Dispatcher component that feeds a TaskQueue from synchronous code.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Callable, Coroutine, Optional, TypeVar

from sincpro_task_queue.config import QueueSettings
from sincpro_task_queue.domain.dispatcher import DispatcherInterface
from sincpro_task_queue.domain.queue import QueueStats
from sincpro_task_queue.exceptions import DispatcherNotRunningError
from sincpro_task_queue.infrastructure.event_loop import EventLoop
from sincpro_task_queue.infrastructure.task_queue import TaskQueue

logger = logging.getLogger(__name__)
T = TypeVar("T")

ABORT_TIMEOUT = 2.0


class Dispatcher(DispatcherInterface):
    """
    Hosts a TaskQueue on a background event loop.

    Every submission is marshalled onto the loop thread, so the queue is only
    ever touched from one thread and keeps its FIFO admission order for
    submissions made from the same calling thread.
    """

    def __init__(self, settings: Optional[QueueSettings] = None) -> None:
        """Initialize the Dispatcher, its event loop and its queue."""
        self._settings = settings or QueueSettings()
        self._event_loop = EventLoop(
            use_uvloop=self._settings.use_uvloop, name=f"{self._settings.name}-loop"
        )
        self._lock = threading.Lock()
        self._running = False
        self._event_loop.start()
        try:
            self._queue: TaskQueue = self._run_on_loop(self._create_queue()).result()
        except Exception as e:
            logger.error(f"Failed to create queue '{self._settings.name}': {e}")
            self._event_loop.shutdown()
            raise
        self._running = True
        logger.debug("Dispatcher initialized and queue started")

    @property
    def settings(self) -> QueueSettings:
        return self._settings

    def is_running(self) -> bool:
        """Check if the dispatcher accepts tasks."""
        return self._running and self._event_loop.is_running()

    def execute(self, task: Callable[[], Awaitable[T]], timeout: Optional[float] = None) -> T:
        """
        Execute a task through the queue and wait for its result.

        Args:
            task: Zero-argument callable returning an awaitable
            timeout: Optional timeout in seconds, including time spent queued

        Returns:
            The result of the task

        Raises:
            TimeoutError: If the task takes longer than timeout seconds
            Exception: Any exception raised by the task
        """
        if self._event_loop.in_loop_thread():
            raise RuntimeError("execute() would block the event loop; use the TaskQueue directly")

        future = self.execute_async(task)
        try:
            return future.result(timeout=timeout)
        except TimeoutError:
            if future.done():
                raise
            # A task still queued is skipped; a started one runs to completion.
            future.cancel()
            raise TimeoutError(f"Task took longer than {timeout} seconds")

    def execute_async(self, task: Callable[[], Awaitable[T]]) -> "concurrent.futures.Future[T]":
        """
        Submit a task through the queue without waiting.

        Args:
            task: Zero-argument callable returning an awaitable

        Returns:
            A future settled with the task's result or exception. Queue errors
            such as QueueFullError are also delivered through it.
        """
        if not callable(task):
            raise TypeError(f"task must be a zero-argument callable, got {type(task).__name__}")
        with self._lock:
            self._ensure_running()
            return self._run_on_loop(self._submit(task))

    def stats(self) -> QueueStats:
        """Get a snapshot of the hosted queue."""
        if self._event_loop.in_loop_thread():
            return self._queue.stats()
        self._ensure_running()
        return self._run_on_loop(self._stats()).result()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Drain the queue, stop its runners and release the event loop.

        If the queue does not drain within timeout, it is aborted: running
        tasks are cancelled and every unsettled future is cancelled before
        the loop stops.

        Args:
            timeout: Maximum time to wait for queued and running tasks.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False

        logger.info(f"Shutting down dispatcher '{self._settings.name}'")
        try:
            self._run_on_loop(self._queue.shutdown()).result(timeout=timeout)
        except TimeoutError:
            logger.warning(f"Queue did not drain within {timeout} seconds, aborting it")
            try:
                self._run_on_loop(self._abort()).result(timeout=ABORT_TIMEOUT)
            except TimeoutError:
                logger.error(f"Tasks of '{self._settings.name}' ignored cancellation")
        finally:
            self._event_loop.shutdown()
        logger.debug("Dispatcher cleaned up")

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    def _ensure_running(self) -> None:
        if not self.is_running():
            raise DispatcherNotRunningError("Dispatcher has been shut down")

    def _run_on_loop(self, coro: Coroutine[Any, Any, T]) -> "concurrent.futures.Future[T]":
        """Schedule a coroutine on the owned loop. Never starts a new loop."""
        loop = self._event_loop.loop
        if loop is None:
            coro.close()
            raise DispatcherNotRunningError("Event loop is not running")
        try:
            return asyncio.run_coroutine_threadsafe(coro, loop)
        except RuntimeError as e:
            coro.close()
            raise DispatcherNotRunningError(f"Event loop is not running: {e}") from e

    async def _create_queue(self) -> TaskQueue:
        return TaskQueue(
            self._settings.concurrency,
            name=self._settings.name,
            max_pending=self._settings.max_pending,
        )

    async def _abort(self) -> None:
        await self._queue.abort()
        # Let submissions observe their cancelled outcomes so caller futures settle.
        current = asyncio.current_task()
        others = [task for task in asyncio.all_tasks() if task is not current]
        if others:
            await asyncio.wait(others, timeout=ABORT_TIMEOUT)

    async def _submit(self, task: Callable[[], Awaitable[T]]) -> T:
        return await self._queue.submit(task)

    async def _stats(self) -> QueueStats:
        return self._queue.stats()
