"""
Tests for the identity orchestrator.
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from sqlalchemy import delete, select

from storefront_identity.exceptions import (
    AccountNotActiveError,
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    ValidationError,
)
from storefront_identity.interfaces import UserFilters
from storefront_identity.models import LoginHistoryEntry, User, UserSession
from storefront_identity.services import BcryptPasswordHasher

STRONG_PASSWORD = "Str0ngP@ss1"
MAC_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) Safari/605.1.15"


def history_reasons(uow_factory):
    with uow_factory() as uow:
        query = select(LoginHistoryEntry).order_by(LoginHistoryEntry.created_at)
        return [entry.fail_reason for entry in uow.session.scalars(query)]


class TestRegister:
    """Test account registration."""

    def test_register_creates_unverified_customer(self, identity, clock):
        """Test the created account's initial state."""
        result = identity.register(
            "  Ada@Example.COM ", STRONG_PASSWORD, " Ada ", "Lovelace", "+1 (555) 123-4567"
        )

        user = result.user
        assert result.verification_required is True
        assert user.email == "ada@example.com"
        assert user.first_name == "Ada"
        assert user.full_name == "Ada Lovelace"
        assert user.phone == "+1 (555) 123-4567"
        assert user.role == "customer"
        assert user.email_verified is False
        assert user.phone_verified is False
        assert user.is_active is True
        assert user.total_orders == 0
        assert user.created_at == clock()

    def test_register_sends_verification_and_notifies(self, identity, email_sender, notifier):
        """Test the side effects of registration."""
        result = identity.register("ada@example.com", STRONG_PASSWORD, "Ada", "Lovelace")

        recipient, display_name, link = email_sender.verification[-1]
        assert recipient == "ada@example.com"
        assert display_name == "Ada Lovelace"
        assert link.startswith("http://localhost:8080/api/v1/auth/verify-email?token=")
        assert notifier.new_users == [(str(result.user.id), "ada@example.com", "Ada Lovelace")]

    def test_password_is_hashed(self, identity, container):
        """Test that only a bcrypt hash is stored."""
        result = identity.register("ada@example.com", STRONG_PASSWORD)

        with container.uow_factory() as uow:
            stored = uow.users.get_by_id(result.user.id).password_hash

        assert stored != STRONG_PASSWORD
        assert identity.hasher.check(STRONG_PASSWORD, stored)

    def test_duplicate_email_conflicts(self, identity):
        """Test that emails are unique regardless of case."""
        identity.register("ada@example.com", STRONG_PASSWORD)

        with pytest.raises(ConflictError):
            identity.register("ADA@example.com", STRONG_PASSWORD)

    @pytest.mark.parametrize(
        "email,password,phone,rule",
        [
            ("", STRONG_PASSWORD, None, "email_required"),
            ("ada.example.com", STRONG_PASSWORD, None, "email_format"),
            ("ada@example.com", "short1!", None, "password_length"),
            ("ada@example.com", "nouppercase1!", None, "password_complexity"),
            ("ada@example.com", STRONG_PASSWORD, "12345", "phone_format"),
        ],
    )
    def test_invalid_input(self, identity, email_sender, email, password, phone, rule):
        """Test that invalid input is rejected before anything is stored or sent."""
        with pytest.raises(ValidationError) as exc_info:
            identity.register(email, password, phone=phone)

        assert exc_info.value.rule == rule
        assert email_sender.verification == []

    def test_verification_email_failure_does_not_fail_registration(
        self, identity, email_sender, container
    ):
        """Test that a failing mail transport is dead-lettered."""
        with patch.object(
            email_sender, "send_verification_email", side_effect=ConnectionError("smtp down")
        ):
            result = identity.register("ada@example.com", STRONG_PASSWORD)

        assert result.user.email == "ada@example.com"
        assert "send_verification_email" in [
            letter.task_name for letter in container.dispatcher.dead_letters
        ]


class TestLogin:
    """Test password authentication."""

    def test_login_success(self, identity, verified_user, container, clock):
        """Test tokens, session and bookkeeping on a successful login."""
        user = verified_user()

        result = identity.login(
            "Shopper@Example.com", STRONG_PASSWORD, ip_address="127.0.0.1", user_agent=MAC_UA
        )

        assert result.user.id == user.id
        assert result.user.last_login_at == clock()
        assert result.expires_at == clock() + timedelta(hours=24)
        claims = identity.validate_access(result.access_token)
        assert claims.user_id == user.id

        with container.uow_factory() as uow:
            session = uow.sessions.get(result.session_id)
            assert session.token_ref == claims.jti
            assert session.device_info == "Mac Desktop"
            assert session.location == "Local"
            assert session.ip_address == "127.0.0.1"
            assert session.is_active is True

        stats = identity.login_stats(user.id)
        assert stats.successful_logins == 1

    def test_unknown_email(self, identity, container):
        """Test that unknown users get the generic credential error."""
        with pytest.raises(InvalidCredentialsError) as exc_info:
            identity.login("ghost@example.com", STRONG_PASSWORD)

        assert exc_info.value.message == "Invalid email or password"
        assert history_reasons(container.uow_factory) == ["user not found"]

    def test_overlong_email_writes_nothing(self, identity, container):
        """Test that an email no account can have is rejected before any write."""
        email = "a" * 250 + "@example.com"

        with patch.object(identity.hasher, "dummy_check") as dummy_check:
            with pytest.raises(InvalidCredentialsError):
                identity.login(email, STRONG_PASSWORD)

        dummy_check.assert_called_once_with(STRONG_PASSWORD)
        assert history_reasons(container.uow_factory) == []
        assert identity.auditor.rate_limiter.attempts(email) == 0

    def test_unparseable_ip_is_not_stored(self, identity, verified_user, container):
        verified_user()

        result = identity.login(
            "shopper@example.com", STRONG_PASSWORD, ip_address="203.0.113.7, 10.0.0.1"
        )

        with container.uow_factory() as uow:
            assert uow.sessions.get(result.session_id).ip_address is None
            entries = list(uow.session.scalars(select(LoginHistoryEntry)))
        assert [entry.ip_address for entry in entries] == [None]

    def test_wrong_password(self, identity, verified_user, container):
        """Test that a wrong password looks the same as an unknown user."""
        verified_user()

        with pytest.raises(InvalidCredentialsError) as exc_info:
            identity.login("shopper@example.com", "Wr0ng!Password")

        assert exc_info.value.message == "Invalid email or password"
        assert history_reasons(container.uow_factory) == ["invalid password"]

    def test_deactivated_account(self, identity, verified_user, container):
        user = verified_user()
        identity.deactivate_user(user.id)

        with pytest.raises(AccountNotActiveError):
            identity.login("shopper@example.com", STRONG_PASSWORD)

        assert history_reasons(container.uow_factory) == ["account deactivated"]

    def test_failures_count_towards_throttle(self, identity, verified_user, container):
        """Test that each rejected login increments the failure counter."""
        verified_user()

        for _ in range(2):
            with pytest.raises(InvalidCredentialsError):
                identity.login("shopper@example.com", "Wr0ng!Password")

        assert container.identity.auditor.rate_limiter.attempts("shopper@example.com") == 2

    def test_success_resets_throttle(self, identity, verified_user):
        verified_user()
        for _ in range(4):
            with pytest.raises(InvalidCredentialsError):
                identity.login("shopper@example.com", "Wr0ng!Password")

        identity.login("shopper@example.com", STRONG_PASSWORD)

        assert identity.auditor.rate_limiter.attempts("shopper@example.com") == 0

    def test_login_upgrades_weak_hash(self, identity, verified_user, container):
        """Test that a hash below the configured cost is replaced on login."""
        user = verified_user()
        identity.hasher = BcryptPasswordHasher(rounds=5)

        identity.login("shopper@example.com", STRONG_PASSWORD)

        with container.uow_factory() as uow:
            stored = uow.users.get_by_id(user.id).password_hash
        assert stored.startswith("$2b$05$")
        assert identity.hasher.check(STRONG_PASSWORD, stored)


class TestRefreshToken:
    """Test refresh token exchange."""

    def test_refresh_issues_new_pair(self, identity, verified_user, container, clock):
        """Test that refreshing mints new tokens without touching sessions."""
        verified_user()
        login = identity.login("shopper@example.com", STRONG_PASSWORD)
        clock.advance(hours=1)

        pair = identity.refresh_token(login.refresh_token)

        assert pair.access_token != login.access_token
        assert pair.expires_at == clock() + timedelta(hours=24)
        assert identity.validate_access(pair.access_token).jti == pair.access_jti
        with container.uow_factory() as uow:
            query = select(UserSession.id).where(UserSession.token_ref == pair.access_jti)
            assert uow.session.scalar(query) is None

    def test_refresh_token_is_single_use(self, identity, verified_user):
        """Test that a refresh token is revoked once exchanged."""
        verified_user()
        login = identity.login("shopper@example.com", STRONG_PASSWORD)
        identity.refresh_token(login.refresh_token)

        with pytest.raises(InvalidTokenError, match="revoked"):
            identity.refresh_token(login.refresh_token)

    def test_refresh_rejects_access_token(self, identity, verified_user):
        verified_user()
        login = identity.login("shopper@example.com", STRONG_PASSWORD)

        with pytest.raises(InvalidTokenError):
            identity.refresh_token(login.access_token)

    def test_refresh_for_deactivated_user(self, identity, verified_user):
        user = verified_user()
        login = identity.login("shopper@example.com", STRONG_PASSWORD)
        identity.deactivate_user(user.id)

        with pytest.raises(AccountNotActiveError):
            identity.refresh_token(login.refresh_token)

    def test_refresh_for_deleted_user(self, identity, verified_user, container):
        """Test that tokens of removed users stop working."""
        user = verified_user()
        login = identity.login("shopper@example.com", STRONG_PASSWORD)
        with container.uow_factory() as uow:
            uow.session.execute(delete(User).where(User.id == user.id))

        with pytest.raises(InvalidTokenError):
            identity.refresh_token(login.refresh_token)


class TestVerification:
    """Test verification entry points."""

    def test_verify_email_sends_welcome(self, identity, email_sender):
        identity.register("ada@example.com", STRONG_PASSWORD, "Ada", "Lovelace")

        user = identity.verify_email(email_sender.last_verification_token())

        assert user.email_verified is True
        assert email_sender.welcome == [("ada@example.com", "Ada Lovelace", "http://localhost:3000/")]

    def test_resend_verification(self, identity, email_sender):
        """Test that a resend replaces the earlier token."""
        identity.register("ada@example.com", STRONG_PASSWORD)
        first = email_sender.last_verification_token()

        identity.resend_verification("ADA@example.com")
        second = email_sender.last_verification_token()

        assert first != second
        with pytest.raises(NotFoundError):
            identity.verify_email(first)
        assert identity.verify_email(second).email_verified is True

    def test_resend_for_unknown_email_is_silent(self, identity, email_sender):
        identity.resend_verification("ghost@example.com")

        assert email_sender.verification == []

    def test_resend_when_already_verified(self, identity, verified_user):
        user = verified_user()

        with pytest.raises(ConflictError):
            identity.resend_verification("shopper@example.com")

        with pytest.raises(ConflictError):
            identity.send_email_verification(user.id)

    def test_phone_verification(self, identity, verified_user, sms_sender, clock):
        """Test the phone verification round trip."""
        user = verified_user()

        expires_at = identity.send_phone_verification(user.id, "555-123-4567")

        assert expires_at == clock() + timedelta(minutes=10)
        phone, code = sms_sender.messages[-1]
        assert phone == "555-123-4567"
        assert identity.verification_status(user.id).phone_pending is True

        snapshot = identity.verify_phone(user.id, code)

        assert snapshot.phone_verified is True
        status = identity.verification_status(user.id)
        assert status.phone_verified is True
        assert status.phone_pending is False
        assert status.email_verified is True

    def test_changing_phone_clears_verification(self, identity, verified_user, sms_sender):
        user = verified_user()
        identity.send_phone_verification(user.id, "555-123-4567")
        identity.verify_phone(user.id, sms_sender.messages[-1][1])

        identity.send_phone_verification(user.id, "555-765-4321")

        profile = identity.get_profile(user.id)
        assert profile.phone == "555-765-4321"
        assert profile.phone_verified is False

    def test_phone_verification_for_unknown_user(self, identity):
        with pytest.raises(NotFoundError):
            identity.send_phone_verification(uuid4(), "555-123-4567")


class TestSessions:
    """Test session management entry points."""

    def test_logout_one_session(self, identity, verified_user):
        """Test that logging out one device leaves the other signed in."""
        user = verified_user()
        laptop = identity.login("shopper@example.com", STRONG_PASSWORD, user_agent=MAC_UA)
        phone = identity.login("shopper@example.com", STRONG_PASSWORD)

        identity.logout(user.id, laptop.session_id)

        with pytest.raises(InvalidTokenError):
            identity.validate_access(laptop.access_token)
        identity.validate_access(phone.access_token)
        page = identity.list_sessions(user.id)
        assert page.total == 2
        assert {view.id: view.is_active for view in page.sessions} == {
            laptop.session_id: False,
            phone.session_id: True,
        }

    def test_logout_everywhere(self, identity, verified_user):
        user = verified_user()
        logins = [identity.login("shopper@example.com", STRONG_PASSWORD) for _ in range(3)]

        assert identity.logout_everywhere(user.id) == 3

        for login in logins:
            with pytest.raises(InvalidTokenError):
                identity.validate_access(login.access_token)

    def test_touch_session(self, identity, verified_user, clock):
        user = verified_user()
        login = identity.login("shopper@example.com", STRONG_PASSWORD)
        clock.advance(minutes=10)

        identity.touch_session(login.session_id)

        assert identity.list_sessions(user.id).sessions[0].last_activity == clock()


class TestProfileAndAdministration:
    """Test profile and account administration."""

    def test_update_profile(self, identity, verified_user):
        """Test that omitted fields are left unchanged."""
        user = verified_user()

        updated = identity.update_profile(user.id, first_name="Augusta")

        assert updated.first_name == "Augusta"
        assert updated.last_name == "Lovelace"

    def test_update_profile_phone_resets_verification(self, identity, verified_user, sms_sender):
        user = verified_user()
        identity.send_phone_verification(user.id, "555-123-4567")
        identity.verify_phone(user.id, sms_sender.messages[-1][1])

        updated = identity.update_profile(user.id, phone="555-000-1111")

        assert updated.phone == "555-000-1111"
        assert updated.phone_verified is False

    def test_update_profile_invalid_phone(self, identity, verified_user):
        user = verified_user()

        with pytest.raises(ValidationError):
            identity.update_profile(user.id, phone="abc")

    def test_get_profile_unknown_user(self, identity):
        with pytest.raises(NotFoundError):
            identity.get_profile(uuid4())

    def test_deactivate_and_activate(self, identity, verified_user):
        """Test that deactivation signs the user out and activation allows login again."""
        user = verified_user()
        login = identity.login("shopper@example.com", STRONG_PASSWORD)

        identity.deactivate_user(user.id)

        assert identity.get_profile(user.id).is_active is False
        with pytest.raises(InvalidTokenError):
            identity.validate_access(login.access_token)

        identity.activate_user(user.id)

        assert identity.login("shopper@example.com", STRONG_PASSWORD).user.is_active is True

    def test_deactivate_unknown_user(self, identity):
        with pytest.raises(NotFoundError):
            identity.deactivate_user(uuid4())

    def test_list_users(self, identity, verified_user, clock):
        """Test filtering, searching and paging users."""
        verified_user("ada@example.com", first_name="Ada")
        clock.advance(minutes=1)
        verified_user("grace@example.com", first_name="Grace", last_name="Hopper")
        clock.advance(minutes=1)
        identity.register("alan@example.com", STRONG_PASSWORD, "Alan", "Turing")

        page = identity.list_users()
        assert page.total == 3
        assert [user.email for user in page.users] == [
            "alan@example.com",
            "grace@example.com",
            "ada@example.com",
        ]

        verified = identity.list_users(UserFilters(email_verified=True))
        assert {user.email for user in verified.users} == {"ada@example.com", "grace@example.com"}

        searched = identity.list_users(UserFilters(search="HOPPER"))
        assert [user.email for user in searched.users] == ["grace@example.com"]

        paged = identity.list_users(limit=1, offset=1)
        assert paged.total == 3
        assert [user.email for user in paged.users] == ["grace@example.com"]

        assert identity.list_users(limit=0).limit == 1
        assert identity.list_users(limit=1000).limit == 100

    def test_login_history(self, identity, verified_user, clock):
        user = verified_user()
        with pytest.raises(InvalidCredentialsError):
            identity.login("shopper@example.com", "Wr0ng!Password")
        clock.advance(seconds=30)
        identity.login("shopper@example.com", STRONG_PASSWORD)

        page = identity.login_history(user.id)

        assert page.total == 2
        assert [entry.success for entry in page.entries] == [True, False]
        assert page.stats.failed_logins == 1
        assert page.stats.success_rate == pytest.approx(50.0)
