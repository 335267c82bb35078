"""
EventLoop component that owns an event loop running in a background thread.
Simple and direct approach.
"""

import asyncio
import concurrent.futures
import logging
import threading
import warnings
from typing import Any, Coroutine, Optional, TypeVar

import uvloop

logger = logging.getLogger(__name__)
T = TypeVar("T")


class EventLoop:
    """
    Owns an event loop that runs forever in a daemon thread.
    Coroutines are submitted from any other thread.
    """

    def __init__(self, use_uvloop: bool = True, name: str = "task-queue-loop") -> None:
        """Initialize the EventLoop."""
        self._use_uvloop = use_uvloop
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._is_running = False
        logger.debug("EventLoop initialized")

    def start(self) -> None:
        """Start the event loop if not already running."""
        if self._is_running:
            logger.warning("EventLoop is already running")
            return

        try:
            self._loop = uvloop.new_event_loop() if self._use_uvloop else asyncio.new_event_loop()
            self._thread = threading.Thread(target=self._run_forever, name=self._name, daemon=True)
            self._thread.start()
            self._is_running = True
            logger.info(
                f"Started {'uvloop' if self._use_uvloop else 'asyncio'} event loop in new thread"
            )
        except Exception as e:
            error_msg = f"Failed to start event loop: {e}"
            logger.error(error_msg)
            warnings.warn(error_msg, RuntimeWarning)
            self._reset()
            raise

    def run_coroutine(self, coro: Coroutine[Any, Any, T]) -> "concurrent.futures.Future[T]":
        """Run a coroutine in the event loop from another thread."""
        loop = self.get_loop()
        return asyncio.run_coroutine_threadsafe(coro, loop)

    def get_loop(self) -> asyncio.AbstractEventLoop:
        """Get the event loop, starting it if necessary."""
        if not self._is_running:
            self.start()
        assert self._loop is not None
        return self._loop

    @property
    def loop(self) -> Optional[asyncio.AbstractEventLoop]:
        """The running loop, or None. Never starts a new one."""
        if not self.is_running():
            return None
        return self._loop

    def in_loop_thread(self) -> bool:
        """Check if the caller is running on the event loop thread."""
        return self._thread is not None and threading.current_thread() is self._thread

    def shutdown(self) -> None:
        """Stop the loop, wait for its thread and close it."""
        if not self._is_running:
            return

        try:
            logger.info("Shutting down owned event loop")
            if self._loop and not self._loop.is_closed():
                self._loop.call_soon_threadsafe(self._loop.stop)

            if self._thread and self._thread.is_alive():
                self._thread.join(timeout=2.0)
                if self._thread.is_alive():
                    logger.warning("Event loop thread did not terminate gracefully")

            if self._loop and not self._loop.is_closed() and not self._loop.is_running():
                self._loop.close()

        except Exception as e:
            error_msg = f"Error during shutdown: {e}"
            logger.error(error_msg)
            warnings.warn(error_msg, RuntimeWarning)
        finally:
            self._reset()

    def is_running(self) -> bool:
        """Check if the event loop is running."""
        return self._is_running and self._loop is not None and not self._loop.is_closed()

    def _run_forever(self) -> None:
        assert self._loop is not None
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _reset(self) -> None:
        self._loop = None
        self._thread = None
        self._is_running = False
