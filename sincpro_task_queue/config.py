"""
Settings for task queues, loaded from arguments or environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional

from sincpro_task_queue.exceptions import InvalidConfigurationError

ENV_PREFIX = "SINCPRO_TASK_QUEUE"

DEFAULT_CONCURRENCY = 4
DEFAULT_NAME = "task-queue"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise InvalidConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def validate_concurrency(concurrency: int) -> int:
    """
    Validate a concurrency value.

    Raises:
        InvalidConfigurationError: If the value is not a positive integer.
    """
    if isinstance(concurrency, bool) or not isinstance(concurrency, int):
        raise InvalidConfigurationError(
            f"concurrency must be an integer, got {type(concurrency).__name__}"
        )
    if concurrency <= 0:
        raise InvalidConfigurationError(f"concurrency must be positive, got {concurrency}")
    return concurrency


def validate_max_pending(max_pending: Optional[int]) -> Optional[int]:
    """
    Validate an optional pending limit. None means unbounded.

    Raises:
        InvalidConfigurationError: If the value is not None or a non-negative integer.
    """
    if max_pending is None:
        return None
    if isinstance(max_pending, bool) or not isinstance(max_pending, int):
        raise InvalidConfigurationError(
            f"max_pending must be an integer or None, got {type(max_pending).__name__}"
        )
    if max_pending < 0:
        raise InvalidConfigurationError(f"max_pending must not be negative, got {max_pending}")
    return max_pending


@dataclass(frozen=True)
class QueueSettings:
    """
    Settings used to build a queue.

    Attributes:
        concurrency: Number of runners, i.e. maximum tasks in flight.
        max_pending: Maximum tasks waiting for a runner. None means unbounded.
        name: Queue name, used for runner task names and log messages.
        use_uvloop: Create background event loops with uvloop.
    """

    concurrency: int = DEFAULT_CONCURRENCY
    max_pending: Optional[int] = None
    name: str = DEFAULT_NAME
    use_uvloop: bool = True

    def __post_init__(self) -> None:
        validate_concurrency(self.concurrency)
        validate_max_pending(self.max_pending)
        if not self.name:
            raise InvalidConfigurationError("name must not be empty")

    @classmethod
    def from_env(cls) -> "QueueSettings":
        """Load settings from environment with defaults."""
        return cls(
            concurrency=_env_int(_k("CONCURRENCY"), DEFAULT_CONCURRENCY),
            max_pending=_env_int(_k("MAX_PENDING"), None),
            name=os.getenv(_k("NAME"), "").strip() or DEFAULT_NAME,
            use_uvloop=_env_bool(_k("USE_UVLOOP"), True),
        )
