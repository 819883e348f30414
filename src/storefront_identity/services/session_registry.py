"""
Session registry.

Tracks the login sessions created at each successful login: listing them
for the account owner, recording activity, and invalidating one or all
of them.
"""

import logging
from datetime import datetime
from uuid import UUID

from ..clock import Clock, utc_now
from ..exceptions import NotFoundError
from ..interfaces import SessionIdentifier
from ..models import UserSession
from ..repositories.unit_of_work import UnitOfWork, UnitOfWorkFactory
from .token_service import TokenIssuer
from .types import SessionPage, SessionView

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class NoCurrentSession:
    """Default session identifier: no session is ever flagged as current."""

    def is_current(self, session: UserSession) -> bool:
        return False


class SessionRegistry:
    """Creates, lists and invalidates login sessions."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        token_issuer: TokenIssuer,
        session_identifier: SessionIdentifier | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.uow_factory = uow_factory
        self.token_issuer = token_issuer
        self.session_identifier = session_identifier or NoCurrentSession()
        self.clock = clock

    def create(
        self,
        uow: UnitOfWork,
        user_id: UUID,
        token_ref: str,
        expires_at: datetime,
        device_info: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        location: str | None = None,
    ) -> UserSession:
        """Record a new session inside the caller's transaction."""
        now = self.clock()
        session = UserSession(
            user_id=user_id,
            token_ref=token_ref,
            device_info=device_info,
            ip_address=ip_address,
            user_agent=user_agent,
            location=location,
            is_active=True,
            last_activity=now,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        uow.sessions.add(session)
        logger.info(f"Created session {session.id} for user {user_id}")
        return session

    def list_by_user(
        self, user_id: UUID, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> SessionPage:
        """Sessions for a user, most recent first, with the total count."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        with self.uow_factory() as uow:
            sessions = uow.sessions.list_by_user(user_id, limit, offset)
            total = uow.sessions.count_by_user(user_id)
            views = [
                SessionView.from_model(session, self.session_identifier.is_current(session))
                for session in sessions
            ]

        return SessionPage(sessions=views, total=total, limit=limit, offset=offset)

    def touch(self, session_id: UUID) -> None:
        """
        Record activity on a live session.

        Raises:
            NotFoundError: If the session does not exist, was revoked or has expired
        """
        now = self.clock()
        with self.uow_factory() as uow:
            session = uow.sessions.get(session_id)
            if session is None or not session.is_active or session.is_expired(now):
                raise NotFoundError("Session", str(session_id))
            session.update_activity(now)

    def invalidate_one(self, user_id: UUID, session_id: UUID) -> None:
        """
        Invalidate a single session owned by ``user_id``.

        Raises:
            NotFoundError: If the session does not exist or belongs to another user
        """
        with self.uow_factory() as uow:
            session = uow.sessions.get(session_id)
            if session is None or session.user_id != user_id:
                raise NotFoundError("Session", str(session_id))

            was_active = bool(session.is_active)
            session.revoke(self.clock())
            token_ref = session.token_ref
            expires_at = session.expires_at

        if was_active:
            self.token_issuer.revoke(token_ref, expires_at)
        logger.info(f"Invalidated session {session_id} for user {user_id}")

    def invalidate_all(self, user_id: UUID) -> int:
        """Invalidate every active session of a user; returns how many were active."""
        with self.uow_factory() as uow:
            token_refs = self.deactivate_all(uow, user_id)

        self.revoke_tokens(token_refs)
        logger.info(f"Invalidated {len(token_refs)} sessions for user {user_id}")
        return len(token_refs)

    def deactivate_all(self, uow: UnitOfWork, user_id: UUID) -> list[str]:
        """Deactivate sessions inside the caller's transaction; returns their token refs."""
        return uow.sessions.deactivate_all(user_id, self.clock())

    def revoke_tokens(self, token_refs: list[str]) -> None:
        expires_at = self.clock() + self.token_issuer.access_token_ttl
        for token_ref in token_refs:
            self.token_issuer.revoke(token_ref, expires_at)
