"""
TaskQueue component that runs asynchronous tasks with bounded concurrency.
"""

import asyncio
import logging
import traceback
from typing import Any, Awaitable, Callable, List, Optional, Set, TypeVar

from sincpro_task_queue.config import DEFAULT_NAME, validate_concurrency, validate_max_pending
from sincpro_task_queue.domain.queue import QueueStats, RunnerState, Task, TaskQueueInterface
from sincpro_task_queue.exceptions import QueueFullError, TaskQueueClosedError
from sincpro_task_queue.infrastructure.rendezvous import Rendezvous

logger = logging.getLogger(__name__)
T = TypeVar("T")

Wrapper = Callable[[], Awaitable[Any]]


def _consume_exception(future: "asyncio.Future[Any]") -> None:
    """Mark a failed outcome as retrieved; runners already log the failure."""
    if not future.cancelled():
        future.exception()


class TaskQueue(TaskQueueInterface):
    """
    Executes submitted tasks in submission order, at most `concurrency` at a time.

    A fixed pool of runners is started at construction. Each runner loops
    forever: it takes the oldest pending task (parking until one is submitted
    if none is pending), runs it to completion, and goes back for more. Every
    submission gets its own future, settled with the task's result or
    exception. A failing task never stops the runner that executed it.

    All methods must be called from the event loop the queue is bound to.
    """

    def __init__(
        self,
        concurrency: int,
        *,
        name: str = DEFAULT_NAME,
        max_pending: Optional[int] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """
        Initialize the TaskQueue and start its runners.

        Args:
            concurrency: Number of runners, i.e. maximum tasks in flight.
            name: Name used for runner tasks and log messages.
            max_pending: Maximum tasks waiting for a runner. None means unbounded.
            loop: Event loop to bind to. Defaults to the running loop.

        Raises:
            InvalidConfigurationError: If concurrency or max_pending is invalid.
            RuntimeError: If no loop is given and none is running.
        """
        self._concurrency = validate_concurrency(concurrency)
        self._max_pending = validate_max_pending(max_pending)
        self._name = name
        self._loop = loop or asyncio.get_running_loop()
        self._rendezvous: Rendezvous[Wrapper] = Rendezvous(self._loop)
        self._closed = False

        self._submitted = 0
        self._succeeded = 0
        self._failed = 0
        self._cancelled = 0
        self._unfinished = 0
        self._outcomes: Set["asyncio.Future[Any]"] = set()
        self._all_done = asyncio.Event()
        self._all_done.set()

        self._states: List[RunnerState] = [RunnerState.FETCHING] * self._concurrency
        self._runners: List["asyncio.Task[None]"] = [
            self._loop.create_task(self._run(idx), name=f"{self._name}-runner-{idx}")
            for idx in range(self._concurrency)
        ]
        logger.info(f"TaskQueue '{self._name}' started with {self._concurrency} runners")

    @property
    def name(self) -> str:
        return self._name

    @property
    def concurrency(self) -> int:
        """Maximum number of tasks executing at the same time."""
        return self._concurrency

    @property
    def is_closed(self) -> bool:
        """Check if the queue stopped accepting submissions."""
        return self._closed

    def submit(self, task: Task[T]) -> "asyncio.Future[T]":
        """
        Submit a task for execution. Never suspends.

        The task is handed straight to an idle runner when one is parked,
        otherwise it waits in FIFO order for the next runner to free up.
        Cancelling the returned future before the task starts prevents it
        from starting; a started task always runs to completion.

        Args:
            task: Zero-argument callable returning an awaitable.

        Returns:
            A future settled with the task's result or exception.

        Raises:
            TypeError: If task is not callable.
            TaskQueueClosedError: If the queue has been shut down.
            QueueFullError: If max_pending is set and already reached.
        """
        if not callable(task):
            raise TypeError(f"task must be a zero-argument callable, got {type(task).__name__}")
        if self._closed:
            raise TaskQueueClosedError(f"TaskQueue '{self._name}' is shut down")
        if self._would_overflow():
            raise QueueFullError(
                f"TaskQueue '{self._name}' already has {self._max_pending} pending tasks"
            )

        outcome: "asyncio.Future[T]" = self._loop.create_future()
        outcome.add_done_callback(_consume_exception)
        outcome.add_done_callback(self._outcomes.discard)
        self._outcomes.add(outcome)

        self._submitted += 1
        self._unfinished += 1
        self._all_done.clear()

        if self._rendezvous.offer(self._wrap(task, outcome)):
            logger.debug(f"Task #{self._submitted} handed to an idle runner of '{self._name}'")
        else:
            logger.debug(
                f"Task #{self._submitted} queued in '{self._name}' "
                f"({self._rendezvous.pending_count} pending)"
            )
        return outcome

    def stats(self) -> QueueStats:
        """Get a snapshot of the queue state."""
        return QueueStats(
            name=self._name,
            concurrency=self._concurrency,
            pending=self._rendezvous.pending_count,
            parked=self._rendezvous.waiting_count,
            running=self._states.count(RunnerState.EXECUTING),
            submitted=self._submitted,
            succeeded=self._succeeded,
            failed=self._failed,
            cancelled=self._cancelled,
        )

    def runner_states(self) -> List[RunnerState]:
        """Get the current state of every runner, by runner index."""
        return list(self._states)

    async def join(self) -> None:
        """Wait until every submitted task has settled."""
        await self._all_done.wait()

    async def shutdown(self) -> None:
        """
        Stop accepting submissions, wait for queued and running tasks, then
        stop the runners. Safe to call multiple times.
        """
        if self._closed and not self._runners:
            return

        logger.info(f"Shutting down TaskQueue '{self._name}'")
        self._closed = True
        await self.join()

        runners, self._runners = self._runners, []
        for runner in runners:
            runner.cancel()
        await asyncio.gather(*runners, return_exceptions=True)
        logger.info(f"TaskQueue '{self._name}' stopped")

    async def abort(self) -> None:
        """
        Stop immediately: cancel the runners, including tasks they are
        executing, and cancel the future of every task that has not settled.
        """
        logger.warning(
            f"Aborting TaskQueue '{self._name}' with {len(self._outcomes)} unsettled tasks"
        )
        self._closed = True

        runners, self._runners = self._runners, []
        for runner in runners:
            runner.cancel()
        await asyncio.gather(*runners, return_exceptions=True)

        dropped = self._rendezvous.clear()
        self._cancelled += dropped
        for outcome in list(self._outcomes):
            outcome.cancel()
        self._outcomes.clear()

        self._unfinished = 0
        self._all_done.set()

    async def __aenter__(self) -> "TaskQueue":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    def _would_overflow(self) -> bool:
        if self._max_pending is None or self._rendezvous.waiting_count:
            return False
        # Runners that have not asked for work yet will each take one pending task.
        starting = self._states.count(RunnerState.FETCHING)
        return self._rendezvous.pending_count >= self._max_pending + starting

    def _wrap(self, task: Task[T], outcome: "asyncio.Future[T]") -> Wrapper:
        """Bridge the task's completion to its outcome future."""

        async def wrapper() -> Optional[T]:
            try:
                if outcome.cancelled():
                    self._cancelled += 1
                    logger.warning(f"Skipping task cancelled before start in '{self._name}'")
                    return None
                try:
                    result = await task()
                except asyncio.CancelledError:
                    self._cancelled += 1
                    if not outcome.done():
                        outcome.cancel()
                    raise
                except Exception as e:
                    self._failed += 1
                    if not outcome.done():
                        outcome.set_exception(e)
                    raise
                self._succeeded += 1
                if not outcome.done():
                    outcome.set_result(result)
                return result
            finally:
                self._task_done()

        return wrapper

    def _task_done(self) -> None:
        self._unfinished -= 1
        if self._unfinished == 0:
            self._all_done.set()

    async def _run(self, idx: int) -> None:
        """Runner loop: fetch, execute, repeat."""
        runner_name = f"{self._name}-runner-{idx}"
        logger.debug(f"Runner {runner_name} started")
        while True:
            self._states[idx] = (
                RunnerState.FETCHING if self._rendezvous.pending_count else RunnerState.PARKED
            )
            wrapper = await self._rendezvous.take()

            self._states[idx] = RunnerState.EXECUTING
            try:
                await wrapper()
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
                logger.warning(f"Task cancelled itself in runner {runner_name}")
            except Exception as e:
                logger.error(f"Task failed in runner {runner_name}: {e!r}")
                logger.debug(f"Traceback: {traceback.format_exc()}")
