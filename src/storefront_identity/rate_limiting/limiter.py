"""
Failed-login throttle.

Counts failed login attempts per normalized email in a TTL-bounded
counter. Once ``max_attempts`` failures accumulate inside the window,
further attempts for that email are rejected until the counter expires
or a successful login resets it.
"""

import logging

from ..exceptions import RateLimitedError
from .exceptions import RateLimitStorageError
from .storage import RateLimitStorage

logger = logging.getLogger(__name__)


class LoginRateLimiter:
    """Fixed-window failure counter keyed by email."""

    def __init__(
        self,
        storage: RateLimitStorage,
        max_attempts: int = 5,
        window_seconds: int = 900,
        key_prefix: str = "login:failures:",
    ) -> None:
        self.storage = storage
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.key_prefix = key_prefix

    def _key(self, identifier: str) -> str:
        return f"{self.key_prefix}{identifier}"

    def attempts(self, identifier: str) -> int:
        return int(self.storage.get(self._key(identifier)) or 0)

    def check(self, identifier: str) -> None:
        """
        Reject the attempt if the failure budget is spent.

        Raises:
            RateLimitedError: If the identifier is currently throttled
            RateLimitStorageError: If the counter cannot be read
        """
        key = self._key(identifier)
        failures = int(self.storage.get(key) or 0)
        if failures < self.max_attempts:
            return

        retry_after = self.storage.ttl(key)
        if retry_after <= 0:
            retry_after = self.window_seconds

        logger.warning(
            f"Login throttled after {failures} failed attempts",
            extra={"identifier": identifier, "retry_after": retry_after},
        )
        raise RateLimitedError(
            "Too many failed login attempts, please try again later",
            retry_after=retry_after,
            limit=self.max_attempts,
        )

    def register_failure(self, identifier: str) -> int:
        """Count a failed attempt; each failure restarts the window."""
        try:
            failures = self.storage.increment(self._key(identifier), 1, ttl=self.window_seconds)
        except RateLimitStorageError as e:
            logger.error(f"Could not record failed login attempt: {e}")
            return 0

        if failures >= self.max_attempts:
            logger.warning(f"Failed login threshold reached ({failures}/{self.max_attempts})")
        return failures

    def reset(self, identifier: str) -> None:
        try:
            self.storage.delete(self._key(identifier))
        except RateLimitStorageError as e:
            logger.error(f"Could not reset failed login counter: {e}")
