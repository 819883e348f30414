"""SQLAlchemy repository for password reset tokens."""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models import PasswordResetToken

logger = logging.getLogger(__name__)

# Superseded tokens are moved just past their expiry boundary
SUPERSEDED_OFFSET = timedelta(seconds=1)


class SqlAlchemyPasswordResetRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, token: PasswordResetToken) -> PasswordResetToken:
        self.session.add(token)
        self.session.flush()
        return token

    def get_by_token(self, token: str) -> PasswordResetToken | None:
        query = select(PasswordResetToken).where(PasswordResetToken.token == token)
        return self.session.scalars(query).first()

    def expire_pending(self, user_id: UUID, now: datetime) -> int:
        """Expire unused, unexpired tokens so only the newest one is redeemable."""
        result = self.session.execute(
            update(PasswordResetToken)
            .where(
                PasswordResetToken.user_id == user_id,
                PasswordResetToken.used_at.is_(None),
                PasswordResetToken.expires_at >= now,
            )
            .values(expires_at=now - SUPERSEDED_OFFSET)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount:
            logger.debug(f"Superseded {result.rowcount} pending reset tokens for user {user_id}")
        return int(result.rowcount or 0)

    def mark_used(self, token_id: UUID, now: datetime) -> bool:
        """Consume a token; False if it was consumed concurrently."""
        result = self.session.execute(
            update(PasswordResetToken)
            .where(PasswordResetToken.id == token_id, PasswordResetToken.used_at.is_(None))
            .values(used_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1
