"""SQLAlchemy-backed stores and the unit of work that groups them."""

from .login_history import SqlAlchemyLoginHistoryRepository
from .password_resets import SqlAlchemyPasswordResetRepository
from .sessions import SqlAlchemySessionRepository
from .unit_of_work import TransactionManager, UnitOfWork, UnitOfWorkFactory
from .users import SqlAlchemyUserRepository
from .verifications import SqlAlchemyVerificationRepository

__all__ = [
    "SqlAlchemyLoginHistoryRepository",
    "SqlAlchemyPasswordResetRepository",
    "SqlAlchemySessionRepository",
    "SqlAlchemyUserRepository",
    "SqlAlchemyVerificationRepository",
    "TransactionManager",
    "UnitOfWork",
    "UnitOfWorkFactory",
]
