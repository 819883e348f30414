"""
Structured Logging for the Identity Service

JSON structured logs with correlation IDs, user/session context,
OpenTelemetry trace correlation and masking of credentials, tokens
and verification codes.
"""

import json
import logging
import re
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from opentelemetry import trace

# Context variables for correlation tracking
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
session_id_var: ContextVar[str | None] = ContextVar("session_id", default=None)

JWT_PATTERN = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")


@dataclass
class SensitiveDataConfig:
    """Configuration for sensitive data masking."""

    # Credential and token patterns
    secret_patterns: list[str] = field(
        default_factory=lambda: [
            r"password",
            r"passwd",
            r"secret",
            r"access[_-]?token",
            r"refresh[_-]?token",
            r"reset[_-]?token",
            r"authorization",
            r"verification[_-]?code",
        ]
    )

    # Bare parameter names whose values are masked, e.g. ?token= in links
    bare_parameters: list[str] = field(default_factory=lambda: ["token", "code"])

    # Replacement text
    mask_replacement: str = "***MASKED***"

    # Fields to completely exclude from logs
    excluded_fields: set[str] = field(
        default_factory=lambda: {
            "password",
            "current_password",
            "new_password",
            "password_hash",
            "token",
            "code",
            "private_key",
        }
    )


class SensitiveDataMasker:
    """Masks sensitive data in log messages and extra fields."""

    def __init__(self, config: SensitiveDataConfig) -> None:
        self.config = config
        self._compiled_patterns = self._compile_patterns()
        self._bare_parameter_pattern = (
            re.compile(
                rf"((?<![\w-])(?:{'|'.join(config.bare_parameters)})=)[^\s&#]+", re.IGNORECASE
            )
            if config.bare_parameters
            else None
        )

    def _compile_patterns(self) -> list[re.Pattern[str]]:
        """Compile all sensitive data patterns."""
        compiled = []
        for pattern in self.config.secret_patterns:
            try:
                # Match key:value or key=value pairs
                full_pattern = rf'("{pattern}":\s*"[^"]*"|{pattern}=\S+|{pattern}:\s*\S+)'
                compiled.append(re.compile(full_pattern, re.IGNORECASE))
            except re.error as e:
                logging.getLogger(__name__).warning(f"Invalid regex pattern '{pattern}': {e}")

        return compiled

    def mask_message(self, message: str) -> str:
        """Mask sensitive data in log message."""
        masked_message = JWT_PATTERN.sub(self.config.mask_replacement, message)
        if self._bare_parameter_pattern is not None:
            masked_message = self._bare_parameter_pattern.sub(
                lambda m: m.group(1) + self.config.mask_replacement, masked_message
            )

        for pattern in self._compiled_patterns:
            masked_message = pattern.sub(lambda m: self._replace_value(m.group(0)), masked_message)

        return masked_message

    def mask_extra_fields(self, extra: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive data in extra log fields."""
        if not extra:
            return extra

        masked_extra = {}

        for key, value in extra.items():
            if key.lower() in self.config.excluded_fields:
                continue

            if self._is_sensitive_field(key):
                masked_extra[key] = self.config.mask_replacement
            elif isinstance(value, str):
                masked_extra[key] = self.mask_message(value)
            elif isinstance(value, dict):
                masked_extra[key] = self.mask_extra_fields(value)  # type: ignore[assignment]
            else:
                masked_extra[key] = value

        return masked_extra

    def _is_sensitive_field(self, field_name: str) -> bool:
        field_lower = field_name.lower()
        return any(re.search(pattern, field_lower) for pattern in self.config.secret_patterns)

    def _replace_value(self, match: str) -> str:
        if ":" in match:
            key_part = match.split(":", 1)[0]
            return f'{key_part}: "{self.config.mask_replacement}"'
        elif "=" in match:
            key_part = match.split("=", 1)[0]
            return f"{key_part}={self.config.mask_replacement}"
        else:
            return self.config.mask_replacement


class IdentityContextFilter(logging.Filter):
    """Attaches correlation and tracing context to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        record.user_id = getattr(record, "user_id", None) or user_id_var.get()
        record.session_id = getattr(record, "session_id", None) or session_id_var.get()

        span = trace.get_current_span()
        if span.is_recording():
            span_context = span.get_span_context()
            record.trace_id = format(span_context.trace_id, "032x") if span_context.trace_id else None
            record.span_id = format(span_context.span_id, "016x") if span_context.span_id else None
        else:
            record.trace_id = None
            record.span_id = None

        return True


class IdentityJSONFormatter(logging.Formatter):
    """JSON formatter for structured identity service logs."""

    STANDARD_FIELDS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "correlation_id",
        "user_id",
        "session_id",
        "trace_id",
        "span_id",
    }

    def __init__(
        self,
        sensitive_data_config: SensitiveDataConfig | None = None,
        include_extra: bool = True,
        sort_keys: bool = True,
    ):
        super().__init__()
        self.include_extra = include_extra
        self.sort_keys = sort_keys
        self.masker = SensitiveDataMasker(sensitive_data_config or SensitiveDataConfig())

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.masker.mask_message(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for context_field in ("correlation_id", "user_id", "session_id", "trace_id", "span_id"):
            value = getattr(record, context_field, None)
            if value:
                log_entry[context_field] = str(value)

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": self.masker.mask_message(str(record.exc_info[1]))
                if record.exc_info[1]
                else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: self._serialize_value(value)
                for key, value in record.__dict__.items()
                if key not in self.STANDARD_FIELDS and not key.startswith("_")
            }
            if extra:
                log_entry["extra"] = self.masker.mask_extra_fields(extra)

        return json.dumps(log_entry, sort_keys=self.sort_keys, default=self._serialize_value)

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, Decimal):
            return float(value)
        elif isinstance(value, (set, frozenset)):
            return list(value)
        elif isinstance(value, (datetime, uuid.UUID)):
            return str(value)
        elif hasattr(value, "__dict__"):
            return str(value)
        return value


# Correlation ID management
def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return correlation_id_var.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str, None, None]:
    """Context manager for correlation ID scope."""
    if correlation_id is None:
        correlation_id = generate_correlation_id()

    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


@contextmanager
def user_context(user_id: str, session_id: str | None = None) -> Generator[None, None, None]:
    """Context manager for user context scope."""
    user_token = user_id_var.set(user_id)
    session_token = None
    if session_id:
        session_token = session_id_var.set(session_id)

    try:
        yield
    finally:
        user_id_var.reset(user_token)
        if session_token:
            session_id_var.reset(session_token)


def configure_logging(
    level: str = "INFO",
    format_type: str = "json",
    sensitive_data_config: SensitiveDataConfig | None = None,
    log_file: str | None = None,
) -> None:
    """
    Setup structured logging for the identity service.

    Args:
        level: Logging level
        format_type: Formatter type ('json' or 'text')
        sensitive_data_config: Sensitive data masking configuration
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter
    if format_type == "json":
        formatter = IdentityJSONFormatter(sensitive_data_config)
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    context_filter = IdentityContextFilter()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, level.upper()))

    logging.getLogger(__name__).info("Structured logging configured successfully")
