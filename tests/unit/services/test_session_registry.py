"""
Tests for the session registry.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from storefront_identity.exceptions import InvalidTokenError, NotFoundError
from storefront_identity.models import User
from storefront_identity.services.session_registry import SessionRegistry


class FirstSessionIsCurrent:
    """Session identifier that flags a fixed session id."""

    def __init__(self) -> None:
        self.current_id = None

    def is_current(self, session) -> bool:
        return session.id == self.current_id


@pytest.fixture
def registry(uow_factory, token_issuer, clock):
    return SessionRegistry(uow_factory, token_issuer, clock=clock)


@pytest.fixture
def user(uow_factory, clock):
    with uow_factory() as uow:
        user = User(
            email="shopper@example.com",
            password_hash="x",
            email_verified=True,
            created_at=clock(),
            updated_at=clock(),
        )
        return uow.users.create(user)


def open_session(registry, uow_factory, user_id, token_ref, expires_at, **kwargs):
    with uow_factory() as uow:
        return registry.create(uow, user_id, token_ref, expires_at, **kwargs).id


class TestSessionRegistry:
    """Test session lifecycle operations."""

    def test_create_and_list(self, registry, uow_factory, user, clock):
        """Test that sessions are listed most recent first with a total."""
        first = open_session(
            registry,
            uow_factory,
            user.id,
            "jti-1",
            clock() + timedelta(hours=24),
            device_info="Mac Desktop",
            ip_address="127.0.0.1",
            user_agent="Mozilla/5.0 (Macintosh)",
            location="Local",
        )
        clock.advance(minutes=5)
        second = open_session(registry, uow_factory, user.id, "jti-2", clock() + timedelta(hours=24))

        page = registry.list_by_user(user.id)

        assert page.total == 2
        assert [view.id for view in page.sessions] == [second, first]
        assert page.sessions[1].device_info == "Mac Desktop"
        assert page.sessions[1].ip_address == "127.0.0.1"
        assert all(view.is_active for view in page.sessions)
        assert not any(view.is_current for view in page.sessions)

    def test_pagination_limits(self, registry, uow_factory, user, clock):
        """Test paging and clamping of the page size."""
        for index in range(3):
            open_session(registry, uow_factory, user.id, f"jti-{index}", clock() + timedelta(hours=1))
            clock.advance(seconds=1)

        page = registry.list_by_user(user.id, limit=2, offset=2)
        assert page.total == 3
        assert len(page.sessions) == 1

        page = registry.list_by_user(user.id, limit=1000, offset=-5)
        assert page.limit == 100
        assert page.offset == 0

    def test_session_identifier_marks_current(self, uow_factory, token_issuer, user, clock):
        """Test that the injected identifier decides which session is current."""
        identifier = FirstSessionIsCurrent()
        registry = SessionRegistry(uow_factory, token_issuer, identifier, clock=clock)
        session_id = open_session(registry, uow_factory, user.id, "jti-1", clock() + timedelta(hours=1))
        open_session(registry, uow_factory, user.id, "jti-2", clock() + timedelta(hours=1))
        identifier.current_id = session_id

        page = registry.list_by_user(user.id)

        assert [view.id for view in page.sessions if view.is_current] == [session_id]

    def test_touch_updates_activity(self, registry, uow_factory, user, clock):
        """Test activity pings."""
        session_id = open_session(registry, uow_factory, user.id, "jti-1", clock() + timedelta(hours=1))
        clock.advance(minutes=30)

        registry.touch(session_id)

        assert registry.list_by_user(user.id).sessions[0].last_activity == clock()

    def test_touch_unknown_session(self, registry):
        """Test touching a session that does not exist."""
        with pytest.raises(NotFoundError):
            registry.touch(uuid4())

    def test_touch_revoked_session(self, registry, uow_factory, user, clock):
        """Test that a signed-out session stops recording activity."""
        session_id = open_session(registry, uow_factory, user.id, "jti-1", clock() + timedelta(hours=1))
        registry.invalidate_one(user.id, session_id)
        opened_at = clock()
        clock.advance(minutes=5)

        with pytest.raises(NotFoundError):
            registry.touch(session_id)

        assert registry.list_by_user(user.id).sessions[0].last_activity == opened_at

    def test_touch_expired_session(self, registry, uow_factory, user, clock):
        session_id = open_session(registry, uow_factory, user.id, "jti-1", clock() + timedelta(hours=1))
        clock.advance(hours=1)
        registry.touch(session_id)

        clock.advance(seconds=1)
        with pytest.raises(NotFoundError):
            registry.touch(session_id)

    def test_invalidate_one(self, registry, uow_factory, user, clock):
        """Test invalidating a single session."""
        session_id = open_session(registry, uow_factory, user.id, "jti-1", clock() + timedelta(hours=1))
        other_id = open_session(registry, uow_factory, user.id, "jti-2", clock() + timedelta(hours=1))

        registry.invalidate_one(user.id, session_id)

        active = {view.id: view.is_active for view in registry.list_by_user(user.id).sessions}
        assert active == {session_id: False, other_id: True}

    def test_invalidate_one_revokes_token(self, registry, uow_factory, user, token_issuer):
        """Test that invalidation forwards the session's token to the revocation list."""
        with uow_factory() as uow:
            stored = uow.users.get_by_id(user.id)
            pair = token_issuer.mint_pair(stored)
            session_id = registry.create(uow, user.id, pair.access_jti, pair.expires_at).id

        token_issuer.validate_access(pair.access_token)
        registry.invalidate_one(user.id, session_id)

        with pytest.raises(InvalidTokenError, match="revoked"):
            token_issuer.validate_access(pair.access_token)

    def test_invalidate_other_users_session(self, registry, uow_factory, user, clock):
        """Test that a session owned by someone else is reported as not found."""
        session_id = open_session(registry, uow_factory, user.id, "jti-1", clock() + timedelta(hours=1))

        with pytest.raises(NotFoundError):
            registry.invalidate_one(uuid4(), session_id)

        assert registry.list_by_user(user.id).sessions[0].is_active is True

    def test_invalidate_missing_session(self, registry, user):
        """Test invalidating an unknown session."""
        with pytest.raises(NotFoundError):
            registry.invalidate_one(user.id, uuid4())

    def test_invalidate_all(self, registry, uow_factory, user, clock):
        """Test invalidating every session of a user."""
        for index in range(3):
            open_session(registry, uow_factory, user.id, f"jti-{index}", clock() + timedelta(hours=1))

        assert registry.invalidate_all(user.id) == 3
        assert registry.invalidate_all(user.id) == 0
        assert not any(view.is_active for view in registry.list_by_user(user.id).sessions)

    def test_session_expiry(self, registry, uow_factory, user, clock):
        """Test the session expiry boundary."""
        with uow_factory() as uow:
            session = registry.create(uow, user.id, "jti-1", clock() + timedelta(hours=1))

        assert session.is_expired(clock()) is False
        assert session.is_expired(clock() + timedelta(hours=1)) is False
        assert session.is_expired(clock() + timedelta(hours=1, seconds=1)) is True
