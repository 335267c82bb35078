"""
Example demonstrating the bounded task queue, from async and sync code.
"""

import asyncio
import logging

from sincpro_task_queue import TaskQueue, run_task, shutdown, submit_task

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def my_task(name: str, duration: float) -> str:
    """
    Example async task that simulates an I/O operation.

    Args:
        name: Label used in log messages.
        duration: How long to sleep in seconds.

    Returns:
        str: A message indicating the task completed.
    """
    logger.info(f"Starting {name}, will sleep for {duration} seconds")
    await asyncio.sleep(duration)
    return f"{name} completed after {duration} seconds"


async def failing_task() -> str:
    await asyncio.sleep(0.1)
    raise RuntimeError("boom")


async def run_in_event_loop() -> None:
    # Example 1: four tasks, two at a time
    async with TaskQueue(2, name="example") as queue:
        futures = [queue.submit(lambda i=i: my_task(f"task-{i}", 0.5)) for i in range(4)]
        failed = queue.submit(failing_task)
        for result in await asyncio.gather(*futures):
            logger.info(f"Got result: {result}")
        try:
            await failed
        except RuntimeError as e:
            logger.warning(f"Task failed as expected: {e}")
        logger.info(f"Queue stats: {queue.stats()}")


def main():
    asyncio.run(run_in_event_loop())

    try:
        # Example 2: blocking call through the default queue
        result = run_task(lambda: my_task("blocking", 1.0))
        logger.info(f"Got result: {result}")

        # Example 3: fire-and-forget with a future
        future = submit_task(lambda: my_task("background", 1.0))
        logger.info(f"Got result: {future.result()}")

        # Example 4: task with timeout
        try:
            run_task(lambda: my_task("slow", 3.0), timeout=1.0)
        except TimeoutError:
            logger.warning("Task timed out as expected")
    finally:
        # Clean shutdown
        shutdown()


if __name__ == "__main__":
    main()
