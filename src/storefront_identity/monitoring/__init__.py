"""Logging and observability helpers."""

from .logging import (
    IdentityContextFilter,
    IdentityJSONFormatter,
    SensitiveDataConfig,
    SensitiveDataMasker,
    configure_logging,
    correlation_context,
    get_correlation_id,
    user_context,
)

__all__ = [
    "IdentityContextFilter",
    "IdentityJSONFormatter",
    "SensitiveDataConfig",
    "SensitiveDataMasker",
    "configure_logging",
    "correlation_context",
    "get_correlation_id",
    "user_context",
]
