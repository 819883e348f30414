"""SQLAlchemy repository for login sessions."""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..models import UserSession

logger = logging.getLogger(__name__)


class SqlAlchemySessionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, user_session: UserSession) -> UserSession:
        self.session.add(user_session)
        self.session.flush()
        return user_session

    def get(self, session_id: UUID) -> UserSession | None:
        return self.session.get(UserSession, session_id)

    def list_by_user(self, user_id: UUID, limit: int, offset: int) -> list[UserSession]:
        """Sessions for a user, most recent first."""
        query = (
            select(UserSession)
            .where(UserSession.user_id == user_id)
            .order_by(UserSession.created_at.desc(), UserSession.id)
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(query))

    def count_by_user(self, user_id: UUID) -> int:
        query = select(func.count(UserSession.id)).where(UserSession.user_id == user_id)
        return int(self.session.scalar(query) or 0)

    def deactivate_all(self, user_id: UUID, now: datetime) -> list[str]:
        """
        Deactivate every active session of a user.

        Returns:
            Token references of the sessions that were active
        """
        token_refs = list(
            self.session.scalars(
                select(UserSession.token_ref).where(
                    UserSession.user_id == user_id, UserSession.is_active.is_(True)
                )
            )
        )
        self.session.execute(
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.is_active.is_(True))
            .values(is_active=False, updated_at=now)
        )
        logger.debug(f"Deactivated {len(token_refs)} sessions for user {user_id}")
        return token_refs
