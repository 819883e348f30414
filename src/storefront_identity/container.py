"""
Dependency wiring for the identity core.

Builds every collaborator from an ``IdentityConfig`` and hands back a
container holding the orchestrator together with the resources that need
an explicit shutdown.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Engine

from .clock import Clock, utc_now
from .config import IdentityConfig
from .database import check_connection, create_db_engine, create_schema, create_session_factory
from .interfaces import (
    DeviceResolver,
    EmailSender,
    GeoResolver,
    Notifier,
    PasswordHasher,
    RateLimiter,
    RevocationChecker,
    SessionIdentifier,
    SmsSender,
)
from .monitoring import configure_logging
from .notifications import LoggingEmailSender, LoggingNotifier, LoggingSmsSender
from .rate_limiting import LoginRateLimiter, RateLimitStorage, create_storage
from .repositories import TransactionManager, UnitOfWorkFactory
from .resilience import RetryConfig
from .services import (
    BcryptPasswordHasher,
    IdentityOrchestrator,
    LoginAuditor,
    NullRevocationChecker,
    PasswordResetFlow,
    SessionRegistry,
    StorageRevocationList,
    TokenIssuer,
    VerificationLedger,
)
from .tasks import BackgroundTaskDispatcher

logger = logging.getLogger(__name__)


@dataclass
class IdentityContainer:
    """Wired identity core and the resources it owns."""

    config: IdentityConfig
    engine: Engine
    uow_factory: UnitOfWorkFactory
    storage: RateLimitStorage
    dispatcher: BackgroundTaskDispatcher
    tokens: TokenIssuer
    identity: IdentityOrchestrator

    def health_check(self) -> dict[str, Any]:
        """Report database, rate limit storage and dispatcher health."""
        health: dict[str, Any] = {
            "healthy": True,
            "database": check_connection(self.engine),
            "storage": self.storage.health_check(),
            "dispatcher": self.dispatcher.get_metrics(),
            "errors": [],
        }

        if not health["database"]:
            health["errors"].append("Database connection failed")
        if not health["storage"]:
            health["errors"].append("Rate limit storage unavailable")
        if health["dispatcher"]["dead_letters"]:
            logger.warning(f"{health['dispatcher']['dead_letters']} background tasks dead-lettered")

        health["healthy"] = not health["errors"]
        return health

    def shutdown(self, wait: bool = True) -> None:
        """Stop background tasks and release database connections."""
        self.dispatcher.shutdown(wait=wait)
        self.engine.dispose()
        logger.info("Identity container shut down")


def build_identity_service(
    config: IdentityConfig | None = None,
    *,
    email_sender: EmailSender | None = None,
    sms_sender: SmsSender | None = None,
    notifier: Notifier | None = None,
    revocation: RevocationChecker | None = None,
    session_identifier: SessionIdentifier | None = None,
    device_resolver: DeviceResolver | None = None,
    geo_resolver: GeoResolver | None = None,
    storage: RateLimitStorage | None = None,
    rate_limiter: RateLimiter | None = None,
    hasher: PasswordHasher | None = None,
    enable_async: bool = True,
    create_tables: bool = True,
    setup_logging: bool = False,
    clock: Clock = utc_now,
) -> IdentityContainer:
    """
    Wire the identity core.

    Args:
        config: Settings; loaded from the environment when omitted
        email_sender: Email transport, logging-only by default
        sms_sender: SMS transport, logging-only by default
        notifier: Operator notifications, logging-only by default
        revocation: Token revocation list; with Redis storage the shared
            list is used, otherwise tokens live until they expire
        session_identifier: Decides which listed session is the caller's
        device_resolver: User agent classifier for login history
        geo_resolver: IP location lookup for login history
        storage: Rate limit storage overriding the configured backend
        rate_limiter: Failed-login throttle; counts failures in the storage by default
        hasher: Password hasher; bcrypt at the configured cost by default
        enable_async: Run side effects on the worker pool instead of inline
        create_tables: Create missing tables on startup
        setup_logging: Install the structured log handlers from the config
        clock: Source of the current UTC time

    Returns:
        The wired container
    """
    config = config or IdentityConfig.from_env()
    config.validate()
    if setup_logging:
        configure_logging(config.log_level, config.log_format)

    engine = create_db_engine(config.database)
    if create_tables:
        create_schema(engine)
    uow_factory = UnitOfWorkFactory(create_session_factory(engine))
    transactions = TransactionManager(uow_factory)

    storage = storage or create_storage(config.rate_limit)
    rate_limiter = rate_limiter or LoginRateLimiter(
        storage,
        max_attempts=config.rate_limit.max_attempts,
        window_seconds=config.rate_limit.window_seconds,
    )

    if revocation is None:
        if config.rate_limit.storage_backend.lower() == "redis":
            revocation = StorageRevocationList(storage)
        else:
            revocation = NullRevocationChecker()

    tokens = TokenIssuer(
        config.tokens, environment=config.environment, revocation=revocation, clock=clock
    )
    hasher = hasher or BcryptPasswordHasher(rounds=config.passwords.bcrypt_rounds)

    dispatcher = BackgroundTaskDispatcher(
        max_workers=config.dispatcher.max_workers,
        max_pending=config.dispatcher.max_pending,
        retry_config=RetryConfig(
            max_retries=config.dispatcher.max_retries,
            initial_delay=config.dispatcher.initial_delay,
            max_delay=config.dispatcher.max_delay,
            retryable_exceptions=(Exception,),
            non_retryable_exceptions=(),
        ),
        dead_letter_size=config.dispatcher.dead_letter_size,
        enable_async=enable_async,
    )

    email_sender = email_sender or LoggingEmailSender()

    sessions = SessionRegistry(uow_factory, tokens, session_identifier, clock=clock)
    ledger = VerificationLedger(transactions, config.verification, clock=clock)
    password_resets = PasswordResetFlow(
        transactions,
        hasher,
        sessions,
        email_sender,
        dispatcher,
        config=config.password_reset,
        clock=clock,
    )
    auditor = LoginAuditor(
        uow_factory,
        rate_limiter,
        device_resolver=device_resolver,
        geo_resolver=geo_resolver,
        clock=clock,
    )

    identity = IdentityOrchestrator(
        transactions=transactions,
        hasher=hasher,
        tokens=tokens,
        sessions=sessions,
        ledger=ledger,
        password_resets=password_resets,
        auditor=auditor,
        dispatcher=dispatcher,
        email_sender=email_sender,
        sms_sender=sms_sender or LoggingSmsSender(),
        notifier=notifier or LoggingNotifier(),
        verification_config=config.verification,
        clock=clock,
    )

    logger.info(f"Identity core initialized for {config.environment} environment")
    return IdentityContainer(
        config=config,
        engine=engine,
        uow_factory=uow_factory,
        storage=storage,
        dispatcher=dispatcher,
        tokens=tokens,
        identity=identity,
    )
