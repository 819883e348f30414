"""
Background task dispatcher for best-effort side effects.

Verification emails, reset emails and operator notifications must never
block or fail the request that triggered them. Tasks run on a bounded
thread pool with retry and exponential backoff; tasks that exhaust their
retries, or that arrive while the queue is full, are dead-lettered and
logged instead of being silently dropped.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..clock import utc_now
from ..resilience.retry import (
    NOTIFICATION_RETRY_CONFIG,
    RetryConfig,
    RetryExhaustedException,
    retry_with_backoff_sync,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeadLetter:
    """A task that could not be delivered."""

    task_name: str
    reason: str
    error_type: str | None
    attempts: int
    failed_at: datetime


class BackgroundTaskDispatcher:
    """
    Bounded worker pool with retries and a dead-letter buffer.

    ``submit`` never blocks and never raises for task failures. With
    ``enable_async=False`` tasks run inline on the caller's thread, which
    keeps tests deterministic while exercising the same retry path.
    """

    def __init__(
        self,
        max_workers: int = 4,
        max_pending: int = 100,
        retry_config: RetryConfig | None = None,
        dead_letter_size: int = 1000,
        enable_async: bool = True,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            max_workers: Maximum number of worker threads
            max_pending: Maximum number of queued plus running tasks
            retry_config: Retry policy applied to each task
            dead_letter_size: Number of dead letters kept in memory
            enable_async: Run tasks on the worker pool instead of inline
        """
        self.max_workers = max_workers
        self.max_pending = max_pending
        self.retry_config = retry_config or NOTIFICATION_RETRY_CONFIG
        self.enable_async = enable_async

        self._slots = threading.BoundedSemaphore(max_pending)
        self._dead_letters: deque[DeadLetter] = deque(maxlen=dead_letter_size)
        self._lock = threading.RLock()
        self._submitted = 0
        self._succeeded = 0
        self._failed = 0
        self._rejected = 0
        self._start_time = time.time()
        self._closed = False

        self._executor: ThreadPoolExecutor | None
        if self.enable_async:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="identity-task"
            )
        else:
            self._executor = None

    def __enter__(self) -> "BackgroundTaskDispatcher":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.shutdown()

    def submit(self, task_name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        """
        Schedule a best-effort task.

        Returns:
            True if the task was accepted, False if it was dead-lettered
            immediately because the dispatcher is full or shut down
        """
        with self._lock:
            self._submitted += 1

        if self._closed:
            self._reject(task_name, "dispatcher is shut down")
            return False

        if not self._slots.acquire(blocking=False):
            self._reject(task_name, "task queue is full")
            return False

        if self._executor is None:
            self._run(task_name, func, args, kwargs)
            return True

        try:
            self._executor.submit(self._run, task_name, func, args, kwargs)
        except RuntimeError as e:
            self._slots.release()
            self._reject(task_name, f"executor unavailable: {e}")
            return False

        return True

    def _run(
        self,
        task_name: str,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        try:
            retry_with_backoff_sync(func, *args, config=self.retry_config, **kwargs)
            with self._lock:
                self._succeeded += 1
            logger.debug(f"Background task {task_name} completed")
        except RetryExhaustedException as e:
            with self._lock:
                self._failed += 1
            last_error = e.last_exception
            self._dead_letter(
                DeadLetter(
                    task_name=task_name,
                    reason=str(last_error) if last_error else str(e),
                    error_type=type(last_error).__name__ if last_error else None,
                    attempts=e.attempts,
                    failed_at=utc_now(),
                )
            )
        finally:
            self._slots.release()

    def _reject(self, task_name: str, reason: str) -> None:
        with self._lock:
            self._rejected += 1
        self._dead_letter(
            DeadLetter(
                task_name=task_name,
                reason=reason,
                error_type=None,
                attempts=0,
                failed_at=utc_now(),
            )
        )

    def _dead_letter(self, letter: DeadLetter) -> None:
        with self._lock:
            self._dead_letters.append(letter)
        logger.error(
            f"Background task {letter.task_name} dead-lettered after {letter.attempts} attempts: "
            f"{letter.reason}",
            extra={"task_name": letter.task_name, "error_type": letter.error_type},
        )

    @property
    def dead_letters(self) -> list[DeadLetter]:
        with self._lock:
            return list(self._dead_letters)

    def get_metrics(self) -> dict[str, Any]:
        """Get dispatcher throughput and failure counts."""
        with self._lock:
            return {
                "submitted": self._submitted,
                "succeeded": self._succeeded,
                "failed": self._failed,
                "rejected": self._rejected,
                "dead_letters": len(self._dead_letters),
                "uptime_seconds": time.time() - self._start_time,
                "async_enabled": self.enable_async,
                "max_workers": self.max_workers,
                "max_pending": self.max_pending,
            }

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks and, by default, wait for running ones."""
        self._closed = True
        if self._executor:
            self._executor.shutdown(wait=wait)
