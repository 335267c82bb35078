"""
Exception module for sincpro_task_queue.

This module defines specific exceptions that may be raised by the component.
Failures of the submitted tasks themselves are never wrapped: the original
exception is delivered on the task's outcome future.
"""


class TaskQueueError(Exception):
    """Base exception for errors in the TaskQueue."""


class InvalidConfigurationError(TaskQueueError, ValueError):
    """Raised when a queue is configured with invalid settings."""


class QueueFullError(TaskQueueError):
    """Raised when a submission would exceed the configured pending limit."""


class TaskQueueClosedError(TaskQueueError):
    """Raised when submitting to a queue that has been shut down."""


class DispatcherNotRunningError(TaskQueueError):
    """Raised when trying to use the dispatcher after it has been shut down."""
