from .retry import (
    DATABASE_RETRY_CONFIG,
    NOTIFICATION_RETRY_CONFIG,
    ExponentialBackoff,
    RetryConfig,
    RetryExhaustedException,
    is_retryable_exception,
    retry_with_backoff_sync,
)

__all__ = [
    "DATABASE_RETRY_CONFIG",
    "NOTIFICATION_RETRY_CONFIG",
    "ExponentialBackoff",
    "RetryConfig",
    "RetryExhaustedException",
    "is_retryable_exception",
    "retry_with_backoff_sync",
]
