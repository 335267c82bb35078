"""
Bounded-concurrency async task queue with per-task outcomes.
"""

from sincpro_task_queue.config import QueueSettings
from sincpro_task_queue.core import run_task, shutdown, submit_task
from sincpro_task_queue.domain.queue import QueueStats, RunnerState
from sincpro_task_queue.exceptions import (
    DispatcherNotRunningError,
    InvalidConfigurationError,
    QueueFullError,
    TaskQueueClosedError,
    TaskQueueError,
)
from sincpro_task_queue.infrastructure.dispatcher import Dispatcher
from sincpro_task_queue.infrastructure.task_queue import TaskQueue

__all__ = [
    "TaskQueue",
    "Dispatcher",
    "QueueSettings",
    "QueueStats",
    "RunnerState",
    "run_task",
    "submit_task",
    "shutdown",
    "TaskQueueError",
    "InvalidConfigurationError",
    "QueueFullError",
    "TaskQueueClosedError",
    "DispatcherNotRunningError",
]
