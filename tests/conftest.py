"""Global pytest configuration and fixtures."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from sqlalchemy.exc import OperationalError

from storefront_identity.config import (
    DatabaseConfig,
    DispatcherConfig,
    IdentityConfig,
    LoginRateLimitConfig,
    PasswordConfig,
    TokenConfig,
)
from storefront_identity.container import IdentityContainer, build_identity_service
from storefront_identity.database import create_db_engine, create_schema, create_session_factory
from storefront_identity.rate_limiting import MemoryRateLimitStorage
from storefront_identity.repositories import TransactionManager, UnitOfWorkFactory
from storefront_identity.resilience import RetryConfig
from storefront_identity.services import (
    BcryptPasswordHasher,
    StorageRevocationList,
    TokenIssuer,
    UserSnapshot,
)
from storefront_identity.services.orchestrator import IdentityOrchestrator
from storefront_identity.tasks import BackgroundTaskDispatcher

TEST_SECRET = "test-secret-key-for-hs256-signing-0123456789"
STRONG_PASSWORD = "Str0ngP@ss1"


class FrozenClock:
    """Controllable replacement for ``utc_now``."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now += timedelta(**kwargs)

    def timestamp(self) -> float:
        return self.now.replace(tzinfo=UTC).timestamp()


class RecordingEmailSender:
    """Email sender that keeps every message for assertions."""

    def __init__(self) -> None:
        self.verification: list[tuple[str, str, str]] = []
        self.password_reset: list[tuple[str, str, str]] = []
        self.welcome: list[tuple[str, str, str]] = []

    def send_verification_email(self, recipient: str, display_name: str, link: str) -> None:
        self.verification.append((recipient, display_name, link))

    def send_password_reset_email(self, recipient: str, display_name: str, link: str) -> None:
        self.password_reset.append((recipient, display_name, link))

    def send_welcome_email(self, recipient: str, display_name: str, link: str) -> None:
        self.welcome.append((recipient, display_name, link))

    @staticmethod
    def token_from(link: str) -> str:
        return link.split("token=", 1)[1]

    def last_verification_token(self) -> str:
        return self.token_from(self.verification[-1][2])

    def last_reset_token(self) -> str:
        return self.token_from(self.password_reset[-1][2])


class RecordingSmsSender:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def send_verification_code(self, phone: str, code: str) -> None:
        self.messages.append((phone, code))


class RecordingNotifier:
    def __init__(self) -> None:
        self.new_users: list[tuple[str, str, str]] = []

    def notify_new_user(self, user_id: str, email: str, display_name: str) -> None:
        self.new_users.append((user_id, email, display_name))


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock starting at 2025-01-15 12:00 UTC."""
    return FrozenClock()


@pytest.fixture
def fast_retry_config() -> RetryConfig:
    """Database retry policy without real waiting."""
    return RetryConfig(
        max_retries=2,
        initial_delay=0.001,
        max_delay=0.01,
        jitter=False,
        retryable_exceptions=(OperationalError,),
        non_retryable_exceptions=(),
    )


@pytest.fixture
def engine():
    """In-memory SQLite engine with the identity schema."""
    engine = create_db_engine(DatabaseConfig(url="sqlite://"))
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def uow_factory(engine) -> UnitOfWorkFactory:
    return UnitOfWorkFactory(create_session_factory(engine))


@pytest.fixture
def transactions(uow_factory, fast_retry_config) -> TransactionManager:
    return TransactionManager(uow_factory, fast_retry_config)


@pytest.fixture
def hasher() -> BcryptPasswordHasher:
    """Bcrypt hasher at the minimum cost factor to keep tests fast."""
    return BcryptPasswordHasher(rounds=4)


@pytest.fixture
def memory_storage(clock) -> MemoryRateLimitStorage:
    """Memory storage whose expiry follows the frozen clock."""
    return MemoryRateLimitStorage(time_func=clock.timestamp)


@pytest.fixture
def revocation(memory_storage) -> StorageRevocationList:
    return StorageRevocationList(memory_storage)


@pytest.fixture
def jwt_secret() -> str:
    return TEST_SECRET


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(algorithm="HS256", secret_key=TEST_SECRET)


@pytest.fixture
def token_issuer(token_config, revocation, clock) -> TokenIssuer:
    return TokenIssuer(token_config, environment="testing", revocation=revocation, clock=clock)


@pytest.fixture
def dispatcher() -> BackgroundTaskDispatcher:
    """Dispatcher running tasks inline so side effects are deterministic."""
    dispatcher = BackgroundTaskDispatcher(
        enable_async=False,
        retry_config=RetryConfig(
            max_retries=1,
            initial_delay=0.001,
            max_delay=0.01,
            jitter=False,
            retryable_exceptions=(Exception,),
            non_retryable_exceptions=(),
        ),
    )
    yield dispatcher
    dispatcher.shutdown()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def sms_sender() -> RecordingSmsSender:
    return RecordingSmsSender()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def identity_config() -> IdentityConfig:
    return IdentityConfig(
        environment="testing",
        database=DatabaseConfig(url="sqlite://"),
        tokens=TokenConfig(algorithm="HS256", secret_key=TEST_SECRET),
        rate_limit=LoginRateLimitConfig(storage_backend="memory", max_attempts=5),
        dispatcher=DispatcherConfig(max_retries=1, initial_delay=0.001, max_delay=0.01),
        passwords=PasswordConfig(bcrypt_rounds=4),
    )


@pytest.fixture
def container(
    identity_config, clock, memory_storage, revocation, email_sender, sms_sender, notifier
) -> IdentityContainer:
    """Fully wired identity core with inline side effects and a frozen clock."""
    container = build_identity_service(
        identity_config,
        email_sender=email_sender,
        sms_sender=sms_sender,
        notifier=notifier,
        revocation=revocation,
        storage=memory_storage,
        enable_async=False,
        clock=clock,
    )
    yield container
    container.shutdown()


@pytest.fixture
def identity(container) -> IdentityOrchestrator:
    return container.identity


@pytest.fixture
def verified_user(identity, email_sender) -> Callable[..., UserSnapshot]:
    """Factory registering a user and redeeming the emailed verification link."""

    def create(
        email: str = "shopper@example.com",
        password: str = STRONG_PASSWORD,
        first_name: str = "Ada",
        last_name: str = "Lovelace",
    ) -> UserSnapshot:
        identity.register(email, password, first_name, last_name)
        return identity.verify_email(email_sender.last_verification_token())

    return create
