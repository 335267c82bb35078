"""
Tests for the TaskQueue component.

The TaskQueue component should:
1. Refuse to start with a non-positive concurrency
2. Start tasks in submission order, never more than `concurrency` at once
3. Settle every submission's future with that task's own outcome
4. Keep its runners alive whatever the tasks do
"""

import asyncio
import logging
from typing import Any, List, Optional

import pytest

from sincpro_task_queue.domain.queue import RunnerState, TaskQueueInterface
from sincpro_task_queue.exceptions import (
    InvalidConfigurationError,
    QueueFullError,
    TaskQueueClosedError,
)
from sincpro_task_queue.infrastructure import TaskQueue


class ConcurrencyTracker:
    """Builds tasks that record when they start and how many overlap."""

    def __init__(self) -> None:
        self.started: List[Any] = []
        self.active = 0
        self.peak = 0

    def task(self, label: Any, delay: float = 0.0, result: Optional[Any] = None):
        async def run() -> Any:
            self.started.append(label)
            self.active += 1
            self.peak = max(self.peak, self.active)
            try:
                await asyncio.sleep(delay)
                return label if result is None else result
            finally:
                self.active -= 1

        return run


async def failing(message: str) -> None:
    await asyncio.sleep(0.01)
    raise ValueError(message)


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [0, -1, -10])
async def test_task_queue_should_reject_non_positive_concurrency(concurrency):
    """Test that construction fails and starts no runners."""
    tasks_before = len(asyncio.all_tasks())

    with pytest.raises(InvalidConfigurationError):
        TaskQueue(concurrency)

    assert len(asyncio.all_tasks()) == tasks_before


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1.5, "2", True, None])
async def test_task_queue_should_reject_non_integer_concurrency(concurrency):
    with pytest.raises(InvalidConfigurationError):
        TaskQueue(concurrency)


@pytest.mark.asyncio
async def test_task_queue_should_reject_negative_max_pending():
    with pytest.raises(InvalidConfigurationError):
        TaskQueue(1, max_pending=-1)


def test_task_queue_should_require_an_event_loop():
    """Test that construction outside a running loop fails without a loop argument."""
    with pytest.raises(RuntimeError):
        TaskQueue(1)


@pytest.mark.asyncio
async def test_task_queue_should_implement_interface():
    async with TaskQueue(1) as queue:
        assert isinstance(queue, TaskQueueInterface)
        assert queue.concurrency == 1


@pytest.mark.asyncio
async def test_task_queue_should_park_all_runners_after_construction():
    async with TaskQueue(3, name="parking") as queue:
        await asyncio.sleep(0)

        stats = queue.stats()
        assert stats.parked == 3
        assert stats.pending == 0
        assert stats.running == 0
        assert queue.runner_states() == [RunnerState.PARKED] * 3


@pytest.mark.asyncio
async def test_task_queue_should_resolve_each_future_with_its_own_result():
    tracker = ConcurrencyTracker()

    async with TaskQueue(3) as queue:
        futures = [queue.submit(tracker.task(i, delay=0.01 * (i % 4))) for i in range(10)]
        results = await asyncio.gather(*futures)

    assert results == list(range(10))
    assert queue.stats().succeeded == 10


@pytest.mark.asyncio
async def test_task_queue_should_settle_nothing_when_nothing_is_submitted():
    async with TaskQueue(2) as queue:
        await queue.join()
        assert queue.stats().settled == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1, 2, 5])
async def test_task_queue_should_never_exceed_concurrency(concurrency):
    tracker = ConcurrencyTracker()

    async with TaskQueue(concurrency) as queue:
        futures = [queue.submit(tracker.task(i, delay=0.01 * (1 + i % 3))) for i in range(12)]
        await asyncio.gather(*futures)

    assert tracker.peak == concurrency


@pytest.mark.asyncio
async def test_task_queue_should_start_tasks_in_submission_order():
    """Test FIFO admission even when completion order differs."""
    tracker = ConcurrencyTracker()
    finished: List[int] = []

    async with TaskQueue(3) as queue:
        futures = [queue.submit(tracker.task(i, delay=0.05 if i % 2 else 0.01)) for i in range(9)]
        for future in futures:
            future.add_done_callback(lambda f: finished.append(f.result()))
        await asyncio.gather(*futures)

    assert tracker.started == list(range(9))
    assert finished != list(range(9))


@pytest.mark.asyncio
async def test_task_queue_should_run_two_waves_with_concurrency_two():
    """Four tasks of delay D on two runners start at 0, 0, D, D and end by 2D."""
    delay = 0.1
    loop = asyncio.get_running_loop()
    start_times = {}

    def timed(label: str):
        async def run() -> str:
            start_times[label] = loop.time()
            await asyncio.sleep(delay)
            return label

        return run

    begin = loop.time()
    async with TaskQueue(2) as queue:
        futures = [queue.submit(timed(label)) for label in ("T1", "T2", "T3", "T4")]
        results = await asyncio.gather(*futures)
    elapsed = loop.time() - begin

    assert results == ["T1", "T2", "T3", "T4"]
    assert start_times["T1"] - begin < delay / 2
    assert start_times["T2"] - begin < delay / 2
    assert start_times["T3"] - begin >= delay * 0.9
    assert start_times["T4"] - begin >= delay * 0.9
    assert elapsed < delay * 3


@pytest.mark.asyncio
async def test_task_queue_should_isolate_failure_from_next_task():
    """A failing task rejects its own future; the next task still runs."""

    async def answer() -> int:
        return 42

    async with TaskQueue(1) as queue:
        failed = queue.submit(lambda: failing("boom"))
        succeeded = queue.submit(answer)

        with pytest.raises(ValueError, match="boom"):
            await failed
        assert await succeeded == 42


@pytest.mark.asyncio
async def test_task_queue_should_keep_running_after_many_failures():
    tracker = ConcurrencyTracker()

    async with TaskQueue(2) as queue:
        futures = [
            queue.submit(lambda i=i: failing(f"failure {i}")) if i % 2 else queue.submit(tracker.task(i))
            for i in range(10)
        ]
        results = await asyncio.gather(*futures, return_exceptions=True)

    for i, result in enumerate(results):
        if i % 2:
            assert isinstance(result, ValueError)
            assert str(result) == f"failure {i}"
        else:
            assert result == i

    stats = queue.stats()
    assert stats.failed == 5
    assert stats.succeeded == 5


@pytest.mark.asyncio
async def test_task_queue_should_deliver_synchronous_errors_to_the_future():
    def explode():
        raise RuntimeError("raised before any await")

    async def after() -> str:
        return "after"

    async with TaskQueue(1) as queue:
        exploded = queue.submit(explode)
        following = queue.submit(after)

        with pytest.raises(RuntimeError, match="raised before any await"):
            await exploded
        assert await following == "after"


@pytest.mark.asyncio
async def test_task_queue_should_reject_non_awaitable_results_through_the_future():
    async with TaskQueue(1) as queue:
        future = queue.submit(lambda: 42)

        with pytest.raises(TypeError):
            await future


@pytest.mark.asyncio
async def test_task_queue_should_reject_non_callable_tasks_synchronously():
    async def coroutine_function() -> None:
        return None

    async with TaskQueue(1) as queue:
        coro = coroutine_function()
        try:
            with pytest.raises(TypeError):
                queue.submit(coro)
        finally:
            coro.close()


@pytest.mark.asyncio
async def test_task_queue_should_queue_tasks_submitted_before_runners_are_ready():
    tracker = ConcurrencyTracker()

    async with TaskQueue(2) as queue:
        future = queue.submit(tracker.task("early"))

        assert queue.stats().pending == 1
        assert await future == "early"


@pytest.mark.asyncio
async def test_task_queue_should_hand_tasks_directly_to_parked_runners():
    release = asyncio.Event()

    async def blocked() -> str:
        await release.wait()
        return "released"

    async with TaskQueue(2) as queue:
        await asyncio.sleep(0)
        assert queue.stats().parked == 2

        future = queue.submit(blocked)

        stats = queue.stats()
        assert stats.pending == 0
        assert stats.parked == 1

        release.set()
        assert await future == "released"


@pytest.mark.asyncio
async def test_task_queue_should_keep_pending_and_parked_mutually_exclusive():
    release = asyncio.Event()
    observations = []

    async def blocked() -> None:
        await release.wait()

    async with TaskQueue(2) as queue:
        observations.append(queue.stats())
        await asyncio.sleep(0)
        for _ in range(5):
            queue.submit(blocked)
            observations.append(queue.stats())
            await asyncio.sleep(0)
            observations.append(queue.stats())
        release.set()
        await queue.join()
        await asyncio.sleep(0)
        observations.append(queue.stats())

    assert all(not (s.pending and s.parked) for s in observations)
    assert observations[-1].parked == 2


@pytest.mark.asyncio
async def test_task_queue_should_reject_submissions_over_max_pending():
    release = asyncio.Event()

    async def blocked() -> None:
        await release.wait()

    async with TaskQueue(1, max_pending=1) as queue:
        await asyncio.sleep(0)

        running = queue.submit(blocked)
        queued = queue.submit(blocked)
        with pytest.raises(QueueFullError):
            queue.submit(blocked)

        assert queue.stats().submitted == 2
        release.set()
        await asyncio.gather(running, queued)


@pytest.mark.asyncio
async def test_task_queue_should_accept_work_for_runners_that_have_not_started():
    """With max_pending=0 each runner that is still starting takes one task."""
    release = asyncio.Event()

    async def blocked() -> str:
        await release.wait()
        return "released"

    async with TaskQueue(2, max_pending=0) as queue:
        first = queue.submit(blocked)
        second = queue.submit(blocked)
        with pytest.raises(QueueFullError):
            queue.submit(blocked)

        assert queue.stats().submitted == 2
        release.set()
        assert await asyncio.gather(first, second) == ["released", "released"]


@pytest.mark.asyncio
async def test_task_queue_should_skip_tasks_cancelled_before_start():
    release = asyncio.Event()
    invoked = []

    async def blocked() -> None:
        await release.wait()

    async def never() -> None:
        invoked.append(True)

    async with TaskQueue(1) as queue:
        first = queue.submit(blocked)
        second = queue.submit(never)
        second.cancel()

        release.set()
        await first
        await queue.join()

    assert invoked == []
    assert queue.stats().cancelled == 1


@pytest.mark.asyncio
async def test_task_queue_should_survive_tasks_that_cancel_themselves():
    async def self_cancelling() -> None:
        raise asyncio.CancelledError()

    async def after() -> str:
        return "still running"

    async with TaskQueue(1) as queue:
        cancelled = queue.submit(self_cancelling)
        following = queue.submit(after)

        await asyncio.wait([cancelled])
        assert cancelled.cancelled()
        assert await following == "still running"


@pytest.mark.asyncio
async def test_task_queue_should_log_task_failures(caplog):
    caplog.set_level(logging.ERROR, logger="sincpro_task_queue.infrastructure.task_queue")

    async with TaskQueue(1, name="logged") as queue:
        future = queue.submit(lambda: failing("boom"))
        await asyncio.gather(future, return_exceptions=True)
        await queue.join()

    messages = [record.getMessage() for record in caplog.records]
    assert any("logged-runner-0" in m and "boom" in m for m in messages)


@pytest.mark.asyncio
async def test_task_queue_join_should_wait_for_all_tasks():
    tracker = ConcurrencyTracker()

    async with TaskQueue(2) as queue:
        futures = [queue.submit(tracker.task(i, delay=0.02)) for i in range(5)]
        await queue.join()

        assert all(future.done() for future in futures)
        assert queue.stats().running == 0


@pytest.mark.asyncio
async def test_task_queue_shutdown_should_drain_then_reject():
    tracker = ConcurrencyTracker()
    queue = TaskQueue(2)
    futures = [queue.submit(tracker.task(i, delay=0.02)) for i in range(4)]

    await queue.shutdown()

    assert [future.result() for future in futures] == [0, 1, 2, 3]
    assert queue.is_closed
    with pytest.raises(TaskQueueClosedError):
        queue.submit(tracker.task("late"))


@pytest.mark.asyncio
async def test_task_queue_shutdown_should_be_safe_to_call_multiple_times():
    queue = TaskQueue(2)
    await queue.shutdown()
    await queue.shutdown()

    assert queue.is_closed
    assert queue.stats().parked == 0


@pytest.mark.asyncio
async def test_task_queue_abort_should_cancel_every_unsettled_task():
    release = asyncio.Event()

    async def blocked() -> None:
        await release.wait()

    queue = TaskQueue(1)
    running = queue.submit(blocked)
    queued = [queue.submit(blocked) for _ in range(2)]
    await asyncio.sleep(0.01)

    await queue.abort()

    assert running.cancelled()
    assert all(future.cancelled() for future in queued)
    stats = queue.stats()
    assert stats.cancelled == 3
    assert stats.pending == 0
    assert queue.is_closed
    await asyncio.wait_for(queue.join(), timeout=0.1)
    with pytest.raises(TaskQueueClosedError):
        queue.submit(blocked)
