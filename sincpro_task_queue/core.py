"""
Core implementation of the module-level task queue functions.
"""

import atexit
import concurrent.futures
import logging
import threading
from typing import Awaitable, Callable, Optional, TypeVar

from sincpro_task_queue.config import QueueSettings
from sincpro_task_queue.infrastructure.dispatcher import Dispatcher

logger = logging.getLogger(__name__)
T = TypeVar("T")

_dispatcher: Optional[Dispatcher] = None
_lock = threading.Lock()


def _get_dispatcher() -> Dispatcher:
    global _dispatcher

    with _lock:
        if _dispatcher is None or not _dispatcher.is_running():
            _dispatcher = Dispatcher(QueueSettings.from_env())
            logger.debug("Default dispatcher created")
        return _dispatcher


def run_task(task: Callable[[], Awaitable[T]], timeout: Optional[float] = None) -> T:
    """
    Run a task through the default queue and wait for its result.

    This is the main interface for executing async tasks with bounded
    concurrency. If the default dispatcher hasn't been initialized, it will be
    created from the SINCPRO_TASK_QUEUE_* environment variables.

    Args:
        task: Zero-argument callable returning an awaitable
        timeout: Maximum time to wait for the result in seconds

    Returns:
        The result of the task

    Raises:
        TimeoutError: If the operation times out
        Exception: Any exception raised by the task
    """
    return _get_dispatcher().execute(task, timeout)


def submit_task(task: Callable[[], Awaitable[T]]) -> "concurrent.futures.Future[T]":
    """
    Submit a task to the default queue without waiting.

    Args:
        task: Zero-argument callable returning an awaitable

    Returns:
        A future settled with the task's result or exception
    """
    return _get_dispatcher().execute_async(task)


def shutdown(timeout: Optional[float] = None) -> None:
    """Drain and stop the default queue, if it was created."""
    global _dispatcher

    with _lock:
        dispatcher, _dispatcher = _dispatcher, None
    if dispatcher is not None:
        dispatcher.shutdown(timeout)


atexit.register(shutdown, 5.0)
