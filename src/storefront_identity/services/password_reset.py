"""
Password reset and password change.

Reset tokens are single-use UUIDs with a short expiry. Issuing a token
never reveals whether the email is registered. Redeeming one updates the
password hash, consumes the token and signs the user out everywhere in a
single transaction.
"""

import logging
import uuid
from uuid import UUID

from ..clock import Clock, utc_now
from ..config import PasswordResetConfig
from ..exceptions import (
    AlreadyUsedError,
    ExpiredError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from ..interfaces import EmailSender, PasswordHasher
from ..models import PasswordResetToken
from ..repositories.unit_of_work import TransactionManager, UnitOfWork
from ..tasks.dispatcher import BackgroundTaskDispatcher
from ..validation import normalize_email, validate_password_complexity
from .session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class PasswordResetFlow:
    """Forgot/reset password and authenticated password change."""

    def __init__(
        self,
        transactions: TransactionManager,
        hasher: PasswordHasher,
        sessions: SessionRegistry,
        email_sender: EmailSender,
        dispatcher: BackgroundTaskDispatcher,
        config: PasswordResetConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.transactions = transactions
        self.hasher = hasher
        self.sessions = sessions
        self.email_sender = email_sender
        self.dispatcher = dispatcher
        self.config = config or PasswordResetConfig()
        self.clock = clock

    def forgot(self, email: str) -> None:
        """
        Start a password reset.

        Always returns normally. When the email belongs to a user, any
        pending reset tokens are superseded by a new one and the reset link
        is handed to the dispatcher.
        """
        email = normalize_email(email or "")
        now = self.clock()
        token_value = str(uuid.uuid4())

        def operation(uow: UnitOfWork) -> tuple[str, str] | None:
            user = uow.users.get_by_email(email) if email else None
            if user is None:
                return None

            uow.password_resets.expire_pending(user.id, now)
            uow.password_resets.add(
                PasswordResetToken(
                    user_id=user.id,
                    token=token_value,
                    expires_at=now + self.config.token_ttl,
                    created_at=now,
                )
            )
            return user.email, user.full_name

        recipient = self.transactions.execute_with_retry(operation, "forgot_password")
        if recipient is None:
            logger.info("Password reset requested for unknown email")
            return

        address, display_name = recipient
        link = f"{self.config.reset_link_base}?token={token_value}"
        self.dispatcher.submit(
            "send_password_reset_email",
            self.email_sender.send_password_reset_email,
            address,
            display_name,
            link,
        )
        logger.info(f"Password reset token issued for {address}")

    def reset(self, token: str, new_password: str) -> None:
        """
        Redeem a reset token and set a new password.

        Raises:
            InvalidTokenError: If no token is given
            NotFoundError: If the token does not exist
            ExpiredError: If the token is past its expiry
            AlreadyUsedError: If the token was already redeemed
            ValidationError: If the new password is too weak
            PersistenceError: If the change could not be committed
        """
        if not token:
            raise InvalidTokenError("Reset token is required")

        now = self.clock()

        with self.transactions.factory() as uow:
            record = uow.password_resets.get_by_token(token)
            if record is None:
                raise NotFoundError("Password reset token")
            if record.is_expired(now):
                raise ExpiredError("Password reset token has expired")
            if record.is_used:
                raise AlreadyUsedError("Password reset token has already been used")
            token_id = record.id
            user_id = record.user_id

        validate_password_complexity(new_password)
        password_hash = self.hasher.hash(new_password)

        def operation(uow: UnitOfWork) -> list[str]:
            if not uow.password_resets.mark_used(token_id, now):
                raise AlreadyUsedError("Password reset token has already been used")
            uow.users.update_password(user_id, password_hash, now)
            return self.sessions.deactivate_all(uow, user_id)

        token_refs = self.transactions.execute_with_retry(operation, "reset_password")
        self.sessions.revoke_tokens(token_refs)

        logger.info(
            f"Password reset for user {user_id}; {len(token_refs)} sessions invalidated"
        )

    def change_password(self, user_id: UUID, current_password: str, new_password: str) -> None:
        """
        Change the password of an authenticated user.

        Raises:
            NotFoundError: If the user does not exist
            InvalidCredentialsError: If the current password does not match
            ValidationError: If the new password is too weak or unchanged
        """
        with self.transactions.factory() as uow:
            user = uow.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User", str(user_id))
            current_hash = user.password_hash

        if not self.hasher.check(current_password, current_hash):
            logger.warning(f"Password change rejected for user {user_id}: wrong current password")
            raise InvalidCredentialsError("Current password is incorrect")

        validate_password_complexity(new_password)
        if new_password == current_password:
            raise ValidationError(
                "New password must be different from the current password",
                rule="password_reuse",
            )

        password_hash = self.hasher.hash(new_password)

        def operation(uow: UnitOfWork) -> None:
            uow.users.update_password(user_id, password_hash, self.clock())

        self.transactions.execute_with_retry(operation, "change_password")
        logger.info(f"Password changed for user {user_id}")
