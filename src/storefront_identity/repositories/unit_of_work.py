"""
SQLAlchemy Unit of Work Implementation

Manages one database transaction across the identity repositories so
multi-row state changes commit or roll back together.
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import PersistenceError
from ..interfaces import (
    LoginHistoryStore,
    PasswordResetStore,
    SessionStore,
    UserDirectory,
    VerificationStore,
)
from ..resilience.retry import (
    DATABASE_RETRY_CONFIG,
    RetryConfig,
    RetryExhaustedException,
    is_retryable_exception,
    retry_with_backoff_sync,
)
from .login_history import SqlAlchemyLoginHistoryRepository
from .password_resets import SqlAlchemyPasswordResetRepository
from .sessions import SqlAlchemySessionRepository
from .users import SqlAlchemyUserRepository
from .verifications import SqlAlchemyVerificationRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UnitOfWork:
    """
    Transaction scope over a single SQLAlchemy session.

    Automatically commits on success or rolls back on exception when used
    as a context manager.
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self.users: UserDirectory = SqlAlchemyUserRepository(session)
        self.sessions: SessionStore = SqlAlchemySessionRepository(session)
        self.verifications: VerificationStore = SqlAlchemyVerificationRepository(session)
        self.password_resets: PasswordResetStore = SqlAlchemyPasswordResetRepository(session)
        self.login_history: LoginHistoryStore = SqlAlchemyLoginHistoryRepository(session)

    def commit(self) -> None:
        self.session.commit()
        logger.debug("Unit of Work transaction committed")

    def rollback(self) -> None:
        self.session.rollback()
        logger.debug("Unit of Work transaction rolled back")

    def __enter__(self) -> "UnitOfWork":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        try:
            if exc_type is None:
                try:
                    self.commit()
                except Exception as commit_error:
                    logger.error(f"Failed to commit in context manager: {commit_error}")
                    try:
                        self.rollback()
                    except Exception as rollback_error:
                        logger.error(f"Failed to rollback after commit error: {rollback_error}")
                    raise
            else:
                try:
                    self.rollback()
                except Exception as rollback_error:
                    logger.error(f"Failed to rollback in context manager: {rollback_error}")
        finally:
            self.session.close()

        return False  # Don't suppress exceptions


class UnitOfWorkFactory:
    """Creates a fresh unit of work, and session, per operation."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def __call__(self) -> UnitOfWork:
        return UnitOfWork(self.session_factory())


class TransactionManager:
    """
    Runs operations that must be all-or-nothing.

    Transient database failures are retried with backoff; when retries run
    out the caller gets ``PersistenceError`` and no partial state is kept.
    Domain errors raised by the operation propagate unchanged.
    """

    def __init__(
        self, factory: UnitOfWorkFactory, retry_config: RetryConfig | None = None
    ) -> None:
        self.factory = factory
        self.retry_config = retry_config or DATABASE_RETRY_CONFIG

    def execute_in_transaction(self, operation: Callable[[UnitOfWork], T]) -> T:
        with self.factory() as uow:
            return operation(uow)

    def execute_with_retry(self, operation: Callable[[UnitOfWork], T], name: str) -> T:
        """
        Execute an operation in its own transaction, retrying transient failures.

        Args:
            operation: Callable receiving the unit of work
            name: Operation name for logs and errors

        Raises:
            PersistenceError: If the transaction keeps failing
        """
        try:
            return retry_with_backoff_sync(
                self.execute_in_transaction, operation, config=self.retry_config
            )
        except RetryExhaustedException as e:
            last_error = e.last_exception
            if last_error is not None and not is_retryable_exception(
                last_error, self.retry_config
            ):
                raise last_error
            logger.error(f"Transaction {name} failed after {e.attempts} attempts: {last_error}")
            raise PersistenceError(
                f"Could not complete {name}", operation=name, attempts=e.attempts
            ) from last_error
