"""
Retry Logic with Exponential Backoff

Retry mechanisms for database transactions and outbound notification
calls with configurable backoff, jitter and retryable exception sets.
"""

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    # Basic retry settings
    max_retries: int = 3
    initial_delay: float = 1.0  # Initial delay in seconds
    max_delay: float = 60.0  # Maximum delay in seconds
    exponential_base: float = 2.0  # Base for exponential backoff

    # Jitter settings
    jitter: bool = True  # Add random jitter to prevent thundering herd
    jitter_range: float = 0.1  # Jitter as fraction of delay (0.1 = +/-10%)

    # Exception handling
    retryable_exceptions: tuple[type[Exception], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )
    non_retryable_exceptions: tuple[type[Exception], ...] = (
        ValueError,
        TypeError,
        KeyError,
        AttributeError,
    )

    total_timeout: float | None = None  # Total timeout for all attempts

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.max_delay <= 0:
            raise ValueError("max_delay must be positive")
        if self.exponential_base <= 1.0:
            raise ValueError("exponential_base must be greater than 1.0")
        if self.jitter_range < 0 or self.jitter_range > 1:
            raise ValueError("jitter_range must be between 0 and 1")


class RetryExhaustedException(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(self, attempts: int, last_exception: Exception | None, total_time: float) -> None:
        self.attempts = attempts
        self.last_exception = last_exception
        self.total_time = total_time
        error_msg = f"Last error: {last_exception}" if last_exception else "No exception recorded"
        super().__init__(
            f"Retry exhausted after {attempts} attempts in {total_time:.2f}s. {error_msg}"
        )


class ExponentialBackoff:
    """Exponential backoff calculator with jitter."""

    def __init__(self, config: RetryConfig) -> None:
        self.config = config

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay for given attempt number.

        Args:
            attempt: Attempt number (0-based)

        Returns:
            Delay in seconds
        """
        if attempt < 0:
            return 0.0

        delay = self.config.initial_delay * (self.config.exponential_base**attempt)
        delay = min(delay, self.config.max_delay)

        if self.config.jitter and delay > 0:
            jitter_amount = delay * self.config.jitter_range
            jitter = random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.1, delay + jitter)  # Minimum 100ms delay

        return delay


def is_retryable_exception(exception: Exception, config: RetryConfig) -> bool:
    """
    Check if an exception is retryable based on configuration.

    Non-retryable exceptions take precedence; unknown exceptions are
    not retried.
    """
    if isinstance(exception, config.non_retryable_exceptions):
        return False

    if isinstance(exception, config.retryable_exceptions):
        return True

    return False


def retry_with_backoff_sync(
    func: Callable[..., T], *args: Any, config: RetryConfig | None = None, **kwargs: Any
) -> T:
    """
    Execute function with retry and exponential backoff.

    Args:
        func: Function to execute
        *args: Positional arguments for func
        config: Retry configuration
        **kwargs: Keyword arguments for func

    Returns:
        Function result

    Raises:
        RetryExhaustedException: When all retries are exhausted or the
            failure is not retryable
    """
    config = config or RetryConfig()
    backoff = ExponentialBackoff(config)
    func_name = getattr(func, "__name__", repr(func))

    start_time = time.time()
    last_exception = None

    for attempt in range(config.max_retries + 1):  # +1 for initial attempt
        try:
            logger.debug(f"Attempt {attempt + 1}/{config.max_retries + 1} for {func_name}")

            result = func(*args, **kwargs)

            if attempt > 0:
                total_time = time.time() - start_time
                logger.info(
                    f"Function {func_name} succeeded on attempt {attempt + 1} "
                    f"after {total_time:.2f}s"
                )

            return result

        except Exception as e:
            last_exception = e
            elapsed_time = time.time() - start_time

            if config.total_timeout and elapsed_time >= config.total_timeout:
                logger.warning(f"Total timeout ({config.total_timeout}s) reached for {func_name}")
                break

            if attempt >= config.max_retries:
                logger.warning(f"Max retries ({config.max_retries}) reached for {func_name}")
                break

            if not is_retryable_exception(e, config):
                logger.debug(f"Non-retryable exception for {func_name}: {e}")
                break

            delay = backoff.get_delay(attempt)

            if config.total_timeout and elapsed_time + delay >= config.total_timeout:
                remaining_time = config.total_timeout - elapsed_time
                if remaining_time > 0.1:
                    delay = remaining_time
                else:
                    logger.warning(f"Insufficient time remaining for {func_name} retry")
                    break

            logger.warning(
                f"Attempt {attempt + 1} failed for {func_name}: {e}. Retrying in {delay:.2f}s"
            )

            time.sleep(delay)

    total_time = time.time() - start_time
    raise RetryExhaustedException(
        attempts=attempt + 1, last_exception=last_exception, total_time=total_time
    )


# Predefined configurations
DATABASE_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    initial_delay=0.05,
    max_delay=2.0,
    exponential_base=2.0,
    jitter=True,
    retryable_exceptions=(OperationalError, ConnectionError, TimeoutError),
    non_retryable_exceptions=(),
    total_timeout=10.0,
)

NOTIFICATION_RETRY_CONFIG = RetryConfig(
    max_retries=3,
    initial_delay=0.5,
    max_delay=10.0,
    exponential_base=2.0,
    jitter=True,
    retryable_exceptions=(Exception,),
    non_retryable_exceptions=(),
    total_timeout=60.0,
)
