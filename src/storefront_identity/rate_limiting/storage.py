"""
Storage backends for rate limiting and token revocation.

Provides Redis and in-memory storage implementations: Redis for
deployments with several application instances, memory for a single
process or development.
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import redis
from redis.exceptions import RedisError

from ..config import LoginRateLimitConfig
from .exceptions import RateLimitStorageError


class RateLimitStorage(ABC):
    """Abstract base class for rate limit storage backends."""

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Get value by key."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value with optional TTL."""
        pass

    @abstractmethod
    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key."""
        pass

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if key exists."""
        pass

    @abstractmethod
    def ttl(self, key: str) -> int:
        """Get TTL for key (-1 if no TTL, -2 if key doesn't exist)."""
        pass

    @abstractmethod
    def health_check(self) -> bool:
        """Check if storage backend is healthy."""
        pass


class MemoryRateLimitStorage(RateLimitStorage):
    """
    In-memory storage backend for rate limiting.

    Suitable for single-instance deployments or development.
    Data is lost when application restarts.
    """

    def __init__(
        self, cleanup_interval: int = 3600, time_func: Callable[[], float] = time.time
    ) -> None:
        self._store: dict[str, tuple[Any, float | None]] = {}  # key -> (value, expires_at)
        self._lock = threading.RLock()
        self._time = time_func
        self.cleanup_interval = cleanup_interval
        self._last_cleanup = self._time()

    def _cleanup_if_needed(self) -> None:
        current_time = self._time()
        if current_time - self._last_cleanup > self.cleanup_interval:
            self.cleanup_expired()
            self._last_cleanup = current_time

    def _is_expired(self, expires_at: float | None) -> bool:
        if expires_at is None:
            return False
        return self._time() >= expires_at

    def get(self, key: str) -> Any | None:
        """Get value by key."""
        with self._lock:
            self._cleanup_if_needed()

            if key not in self._store:
                return None

            value, expires_at = self._store[key]

            if self._is_expired(expires_at):
                del self._store[key]
                return None

            return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value with optional TTL."""
        with self._lock:
            expires_at = None
            if ttl is not None:
                expires_at = self._time() + ttl

            self._store[key] = (value, expires_at)
            return True

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter; a given TTL restarts the expiry."""
        with self._lock:
            current_value = self.get(key) or 0
            new_value = current_value + amount
            if ttl is None and key in self._store:
                _, expires_at = self._store[key]
                self._store[key] = (new_value, expires_at)
            else:
                self.set(key, new_value, ttl)
            return new_value

    def delete(self, key: str) -> bool:
        """Delete key."""
        with self._lock:
            if key in self._store:
                del self._store[key]
                return True
            return False

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        return self.get(key) is not None

    def ttl(self, key: str) -> int:
        """Get TTL for key."""
        with self._lock:
            if self.get(key) is None:
                return -2

            _, expires_at = self._store[key]
            if expires_at is None:
                return -1

            remaining = int(expires_at - self._time())
            return max(0, remaining)

    def cleanup_expired(self) -> int:
        """Clean up expired keys."""
        with self._lock:
            expired_keys = [
                key for key, (_, expires_at) in self._store.items() if self._is_expired(expires_at)
            ]

            for key in expired_keys:
                del self._store[key]

            return len(expired_keys)

    def health_check(self) -> bool:
        """Memory storage is always healthy."""
        return True


class RedisRateLimitStorage(RateLimitStorage):
    """
    Redis storage backend for rate limiting.

    Shares failure counters and revocation entries across all application
    instances.
    """

    def __init__(self, config: LoginRateLimitConfig, client: redis.Redis | None = None) -> None:
        self.config = config
        self.key_prefix = config.redis_key_prefix

        if client is not None:
            self.redis_client = client
            return

        try:
            self.redis_client = redis.from_url(
                config.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )

            # Test connection
            self.redis_client.ping()

        except RedisError as e:
            raise RateLimitStorageError(
                f"Failed to connect to Redis: {e}", operation="connect", storage_backend="redis"
            )

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> Any | None:
        """Get value by key."""
        try:
            value = self.redis_client.get(self._make_key(key))

            if value is None:
                return None

            # Try to deserialize JSON, fallback to string
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return value

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis GET failed: {e}", operation="get", storage_backend="redis"
            )

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value with optional TTL."""
        try:
            prefixed_key = self._make_key(key)

            if isinstance(value, (dict, list)):
                serialized_value = json.dumps(value)
            else:
                serialized_value = str(value)

            if ttl is not None:
                result = self.redis_client.setex(prefixed_key, ttl, serialized_value)
            else:
                result = self.redis_client.set(prefixed_key, serialized_value)

            return bool(result)

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis SET failed: {e}", operation="set", storage_backend="redis"
            )

    def increment(self, key: str, amount: int = 1, ttl: int | None = None) -> int:
        """Atomically increment counter."""
        try:
            prefixed_key = self._make_key(key)

            with self.redis_client.pipeline() as pipe:
                pipe.multi()
                pipe.incrby(prefixed_key, amount)

                if ttl is not None:
                    pipe.expire(prefixed_key, ttl)

                results = pipe.execute()
                return int(results[0])

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis INCREMENT failed: {e}", operation="increment", storage_backend="redis"
            )

    def delete(self, key: str) -> bool:
        """Delete key."""
        try:
            return bool(self.redis_client.delete(self._make_key(key)))

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis DELETE failed: {e}", operation="delete", storage_backend="redis"
            )

    def exists(self, key: str) -> bool:
        """Check if key exists."""
        try:
            return bool(self.redis_client.exists(self._make_key(key)))

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis EXISTS failed: {e}", operation="exists", storage_backend="redis"
            )

    def ttl(self, key: str) -> int:
        """Get TTL for key."""
        try:
            return int(self.redis_client.ttl(self._make_key(key)))

        except RedisError as e:
            raise RateLimitStorageError(
                f"Redis TTL failed: {e}", operation="ttl", storage_backend="redis"
            )

    def health_check(self) -> bool:
        """Check Redis connection health."""
        try:
            return bool(self.redis_client.ping())
        except RedisError:
            return False


def create_storage(config: LoginRateLimitConfig) -> RateLimitStorage:
    """Factory function to create appropriate storage backend."""
    if config.storage_backend.lower() == "redis":
        return RedisRateLimitStorage(config)
    elif config.storage_backend.lower() == "memory":
        return MemoryRateLimitStorage(config.cleanup_interval)
    else:
        raise RateLimitStorageError(
            f"Unknown storage backend: {config.storage_backend}",
            storage_backend=config.storage_backend,
        )
