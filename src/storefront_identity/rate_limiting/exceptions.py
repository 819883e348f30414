"""
Rate limiting exceptions for the identity service.

Storage and configuration failures of the failed-login throttle. Rejected
attempts themselves surface as ``RateLimitedError``.
"""

from typing import Any

from ..exceptions import IdentityError


class RateLimitError(IdentityError):
    """Base exception for all rate limiting infrastructure errors."""

    error_code = "rate_limit_error"


class RateLimitStorageError(RateLimitError):
    """Raised when rate limit storage operations fail."""

    error_code = "rate_limit_storage_error"

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        storage_backend: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message, {"operation": operation, "storage_backend": storage_backend, **kwargs}
        )
        self.operation = operation
        self.storage_backend = storage_backend
