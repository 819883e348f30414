"""
Rate limiting for the login path.

Failure counters live in a pluggable storage backend (Redis or memory)
that is also reused for the access-token revocation list.
"""

from .exceptions import RateLimitError, RateLimitStorageError
from .limiter import LoginRateLimiter
from .storage import (
    MemoryRateLimitStorage,
    RateLimitStorage,
    RedisRateLimitStorage,
    create_storage,
)

__all__ = [
    "LoginRateLimiter",
    "MemoryRateLimitStorage",
    "RateLimitError",
    "RateLimitStorage",
    "RateLimitStorageError",
    "RedisRateLimitStorage",
    "create_storage",
]
