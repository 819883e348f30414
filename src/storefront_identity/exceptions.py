"""
Identity error hierarchy.

Every failure surfaced by the identity core is an ``IdentityError`` carrying a
human-readable message, a machine-readable error code and optional details,
so an outer transport layer can map them onto status codes without parsing
strings.
"""

from datetime import UTC, datetime
from typing import Any


class IdentityError(Exception):
    """Base exception for all identity lifecycle errors."""

    error_code = "identity_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }


class ValidationError(IdentityError):
    """Raised when input fails a validation rule."""

    error_code = "validation_error"

    def __init__(self, message: str, rule: str, **kwargs: Any) -> None:
        super().__init__(message, {"rule": rule, **kwargs})
        self.rule = rule


class ConflictError(IdentityError):
    """Raised when an operation would violate a uniqueness or state constraint."""

    error_code = "conflict"


class NotFoundError(IdentityError):
    """Raised when a referenced entity does not exist."""

    error_code = "not_found"

    def __init__(self, entity_type: str, identifier: str | None = None, **kwargs: Any) -> None:
        message = f"{entity_type} not found"
        super().__init__(message, {"entity_type": entity_type, **kwargs})
        self.entity_type = entity_type
        self.identifier = identifier


class InvalidCredentialsError(IdentityError):
    """Raised for any credential mismatch. Deliberately generic."""

    error_code = "invalid_credentials"

    def __init__(self, message: str = "Invalid email or password", **kwargs: Any) -> None:
        super().__init__(message, kwargs)


class AccountNotActiveError(IdentityError):
    """Raised when a deactivated account attempts to authenticate."""

    error_code = "account_not_active"

    def __init__(self, message: str = "Account is deactivated", **kwargs: Any) -> None:
        super().__init__(message, kwargs)


class UnverifiedAccountError(IdentityError):
    """Raised when login is attempted before the email address is verified."""

    error_code = "unverified_account"

    def __init__(
        self, message: str = "Please verify your email before logging in", **kwargs: Any
    ) -> None:
        super().__init__(message, kwargs)


class ExpiredError(IdentityError):
    """Raised when a code or token is past its expiry."""

    error_code = "expired"


class AlreadyUsedError(IdentityError):
    """Raised when a single-use code or token is redeemed twice."""

    error_code = "already_used"


class RateLimitedError(IdentityError):
    """Raised when an attempt is rejected by a rate limit."""

    error_code = "rate_limited"

    def __init__(self, message: str, retry_after: int | None = None, **kwargs: Any) -> None:
        super().__init__(message, {"retry_after": retry_after, **kwargs})
        self.retry_after = retry_after


class InvalidTokenError(IdentityError):
    """Raised when a bearer or reset token fails verification."""

    error_code = "invalid_token"


class PersistenceError(IdentityError):
    """Raised when a consistency-critical write cannot be completed."""

    error_code = "persistence_error"

    def __init__(self, message: str, operation: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, {"operation": operation, **kwargs})
        self.operation = operation


class ConfigurationError(IdentityError):
    """Raised when configuration is missing or inconsistent."""

    error_code = "configuration_error"

    def __init__(self, message: str, config_field: str | None = None) -> None:
        super().__init__(message, {"config_field": config_field})
        self.config_field = config_field
