"""
Configuration Management - Loads identity service settings from the environment
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class DatabaseConfig:
    """Database configuration settings"""

    url: str = "sqlite:///storefront_identity.db"
    echo: bool = False
    pool_pre_ping: bool = True

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Load database config from environment variables"""
        return cls(
            url=os.getenv("DATABASE_URL", "sqlite:///storefront_identity.db"),
            echo=_env_bool("DATABASE_ECHO"),
        )


@dataclass
class TokenConfig:
    """JWT signing configuration"""

    algorithm: str = "HS256"
    secret_key: str | None = None
    private_key_path: str | None = None
    public_key_path: str | None = None
    access_token_ttl: timedelta = timedelta(hours=24)
    refresh_token_ttl: timedelta = timedelta(days=7)

    @classmethod
    def from_env(cls) -> "TokenConfig":
        """Load token config from environment variables"""
        return cls(
            algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            secret_key=os.getenv("JWT_SECRET"),
            private_key_path=os.getenv("JWT_PRIVATE_KEY_PATH"),
            public_key_path=os.getenv("JWT_PUBLIC_KEY_PATH"),
            access_token_ttl=timedelta(hours=int(os.getenv("ACCESS_TOKEN_TTL_HOURS", "24"))),
            refresh_token_ttl=timedelta(days=int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "7"))),
        )


@dataclass
class LoginRateLimitConfig:
    """Failed-login throttling configuration"""

    storage_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "identity:"
    max_attempts: int = 5
    window_seconds: int = 900
    cleanup_interval: int = 3600

    @classmethod
    def from_env(cls) -> "LoginRateLimitConfig":
        """Load rate limit config from environment variables"""
        return cls(
            storage_backend=os.getenv("RATE_LIMIT_STORAGE", "memory"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            redis_key_prefix=os.getenv("RATE_LIMIT_KEY_PREFIX", "identity:"),
            max_attempts=int(os.getenv("LOGIN_MAX_FAILED_ATTEMPTS", "5")),
            window_seconds=int(os.getenv("LOGIN_FAILURE_WINDOW_SECONDS", "900")),
        )


@dataclass
class VerificationConfig:
    """Email and phone verification settings"""

    email_code_ttl: timedelta = timedelta(hours=24)
    phone_code_ttl: timedelta = timedelta(minutes=10)
    max_phone_attempts: int = 5
    verification_link_base: str = "http://localhost:8080/api/v1/auth/verify-email"
    welcome_link: str = "http://localhost:3000/"

    @classmethod
    def from_env(cls) -> "VerificationConfig":
        """Load verification config from environment variables"""
        return cls(
            email_code_ttl=timedelta(hours=int(os.getenv("EMAIL_VERIFICATION_TTL_HOURS", "24"))),
            phone_code_ttl=timedelta(
                minutes=int(os.getenv("PHONE_VERIFICATION_TTL_MINUTES", "10"))
            ),
            max_phone_attempts=int(os.getenv("PHONE_VERIFICATION_MAX_ATTEMPTS", "5")),
            verification_link_base=os.getenv(
                "VERIFICATION_LINK_BASE", "http://localhost:8080/api/v1/auth/verify-email"
            ),
            welcome_link=os.getenv("WELCOME_LINK", "http://localhost:3000/"),
        )


@dataclass
class PasswordResetConfig:
    """Password reset settings"""

    token_ttl: timedelta = timedelta(hours=1)
    reset_link_base: str = "http://localhost:3000/reset-password"

    @classmethod
    def from_env(cls) -> "PasswordResetConfig":
        """Load password reset config from environment variables"""
        return cls(
            token_ttl=timedelta(minutes=int(os.getenv("PASSWORD_RESET_TTL_MINUTES", "60"))),
            reset_link_base=os.getenv("RESET_LINK_BASE", "http://localhost:3000/reset-password"),
        )


@dataclass
class DispatcherConfig:
    """Background task dispatcher settings"""

    max_workers: int = 4
    max_pending: int = 100
    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 10.0
    dead_letter_size: int = 1000

    @classmethod
    def from_env(cls) -> "DispatcherConfig":
        """Load dispatcher config from environment variables"""
        return cls(
            max_workers=int(os.getenv("DISPATCHER_MAX_WORKERS", "4")),
            max_pending=int(os.getenv("DISPATCHER_MAX_PENDING", "100")),
            max_retries=int(os.getenv("DISPATCHER_MAX_RETRIES", "3")),
            initial_delay=float(os.getenv("DISPATCHER_INITIAL_DELAY", "0.5")),
            max_delay=float(os.getenv("DISPATCHER_MAX_DELAY", "10.0")),
            dead_letter_size=int(os.getenv("DISPATCHER_DEAD_LETTER_SIZE", "1000")),
        )


@dataclass
class PasswordConfig:
    """Password hashing settings"""

    bcrypt_rounds: int = 12

    @classmethod
    def from_env(cls) -> "PasswordConfig":
        return cls(bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "12")))


@dataclass
class IdentityConfig:
    """Identity service configuration"""

    environment: str = "development"
    log_level: str = "INFO"
    log_format: str = "json"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    tokens: TokenConfig = field(default_factory=TokenConfig)
    rate_limit: LoginRateLimitConfig = field(default_factory=LoginRateLimitConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    password_reset: PasswordResetConfig = field(default_factory=PasswordResetConfig)
    dispatcher: DispatcherConfig = field(default_factory=DispatcherConfig)
    passwords: PasswordConfig = field(default_factory=PasswordConfig)

    @classmethod
    def from_env(cls) -> "IdentityConfig":
        """Load all configuration from environment variables"""
        config = cls(
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
            database=DatabaseConfig.from_env(),
            tokens=TokenConfig.from_env(),
            rate_limit=LoginRateLimitConfig.from_env(),
            verification=VerificationConfig.from_env(),
            password_reset=PasswordResetConfig.from_env(),
            dispatcher=DispatcherConfig.from_env(),
            passwords=PasswordConfig.from_env(),
        )
        config.validate()
        return config

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def validate(self) -> None:
        """
        Check settings that cannot be corrected at runtime.

        Raises:
            ConfigurationError: If a setting is missing or out of range
        """
        if self.tokens.algorithm not in ("HS256", "RS256"):
            raise ConfigurationError(
                f"Unsupported JWT algorithm: {self.tokens.algorithm}", config_field="algorithm"
            )
        if self.is_production:
            if self.tokens.algorithm == "HS256" and not self.tokens.secret_key:
                raise ConfigurationError(
                    "JWT_SECRET is required in production", config_field="secret_key"
                )
            if self.tokens.algorithm == "RS256" and not (
                self.tokens.private_key_path and self.tokens.public_key_path
            ):
                raise ConfigurationError(
                    "JWT key paths are required in production", config_field="private_key_path"
                )
        if self.rate_limit.max_attempts < 1:
            raise ConfigurationError(
                "LOGIN_MAX_FAILED_ATTEMPTS must be positive", config_field="max_attempts"
            )
        if self.rate_limit.window_seconds < 1:
            raise ConfigurationError(
                "LOGIN_FAILURE_WINDOW_SECONDS must be positive", config_field="window_seconds"
            )
        if self.passwords.bcrypt_rounds < 4 or self.passwords.bcrypt_rounds > 31:
            raise ConfigurationError(
                "BCRYPT_ROUNDS must be between 4 and 31", config_field="bcrypt_rounds"
            )
        if self.dispatcher.max_workers < 1 or self.dispatcher.max_pending < 1:
            raise ConfigurationError(
                "Dispatcher workers and queue size must be positive", config_field="dispatcher"
            )
