"""
Identity orchestrator.

Composes the directory, ledger, reset flow, session registry, token
issuer and login auditor into the account lifecycle operations:
registration, login, token refresh, verification, password management,
session management and account administration.

Best-effort side effects (emails, SMS, operator notifications) go through
the background dispatcher and never fail the originating call.
"""

import logging
from datetime import datetime
from uuid import UUID

from ..clock import Clock, utc_now
from ..config import VerificationConfig
from ..exceptions import (
    AccountNotActiveError,
    ConflictError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    RateLimitedError,
    UnverifiedAccountError,
)
from ..interfaces import EmailSender, Notifier, PasswordHasher, SmsSender, UserFilters
from ..models import User, UserRole, VerificationPurpose
from ..repositories.unit_of_work import TransactionManager, UnitOfWork
from ..tasks.dispatcher import BackgroundTaskDispatcher
from ..validation import (
    EMAIL_MAX_LENGTH,
    normalize_email,
    normalize_ip_address,
    validate_email_address,
    validate_password_complexity,
    validate_phone_number,
)
from .login_auditor import LoginAuditor
from .password_reset import PasswordResetFlow
from .session_registry import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SessionRegistry
from .token_service import TokenIssuer
from .types import (
    LoginAttempt,
    LoginHistoryPage,
    LoginResult,
    LoginStats,
    RegistrationResult,
    SessionPage,
    TokenClaims,
    TokenPair,
    UserPage,
    UserSnapshot,
    VerificationStatus,
)
from .verification_ledger import VerificationLedger

logger = logging.getLogger(__name__)


class IdentityOrchestrator:
    """Account lifecycle operations for the storefront."""

    def __init__(
        self,
        transactions: TransactionManager,
        hasher: PasswordHasher,
        tokens: TokenIssuer,
        sessions: SessionRegistry,
        ledger: VerificationLedger,
        password_resets: PasswordResetFlow,
        auditor: LoginAuditor,
        dispatcher: BackgroundTaskDispatcher,
        email_sender: EmailSender,
        sms_sender: SmsSender,
        notifier: Notifier,
        verification_config: VerificationConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.transactions = transactions
        self.hasher = hasher
        self.tokens = tokens
        self.sessions = sessions
        self.ledger = ledger
        self.password_resets = password_resets
        self.auditor = auditor
        self.dispatcher = dispatcher
        self.email_sender = email_sender
        self.sms_sender = sms_sender
        self.notifier = notifier
        self.verification_config = verification_config or VerificationConfig()
        self.clock = clock

    # Registration

    def register(
        self,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        phone: str | None = None,
    ) -> RegistrationResult:
        """
        Register a new customer account.

        Args:
            email: Email address, normalized to lower case
            password: Plaintext password meeting the complexity rules
            first_name: Given name
            last_name: Family name
            phone: Optional phone number

        Returns:
            The created user; email verification is always required

        Raises:
            ValidationError: If the email, password or phone is invalid
            ConflictError: If the email is already registered
        """
        email = validate_email_address(email or "")
        validate_password_complexity(password or "")
        if phone:
            phone = validate_phone_number(phone)

        with self.transactions.factory() as uow:
            if uow.users.exists_by_email(email):
                raise ConflictError("Email already registered", {"email": email})

        password_hash = self.hasher.hash(password)
        now = self.clock()

        def operation(uow: UnitOfWork) -> UserSnapshot:
            user = User(
                email=email,
                password_hash=password_hash,
                first_name=(first_name or "").strip(),
                last_name=(last_name or "").strip(),
                phone=phone or None,
                role=UserRole.CUSTOMER.value,
                email_verified=False,
                phone_verified=False,
                is_active=True,
                total_orders=0,
                created_at=now,
                updated_at=now,
            )
            uow.users.create(user)
            return UserSnapshot.from_model(user)

        user = self.transactions.execute_with_retry(operation, "register")
        logger.info(f"Registered user {user.id}")

        self._dispatch_verification_email(user)
        self.dispatcher.submit(
            "notify_new_user",
            self.notifier.notify_new_user,
            str(user.id),
            user.email,
            user.full_name,
        )

        return RegistrationResult(user=user, verification_required=True)

    # Authentication

    def login(
        self,
        email: str,
        password: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """
        Authenticate with email and password.

        Only three failures are distinguishable to the caller: invalid
        credentials, a deactivated account and an unverified email.

        Raises:
            RateLimitedError: If too many failed attempts were made for the email
            InvalidCredentialsError: If the email is unknown or the password is wrong
            AccountNotActiveError: If the account is deactivated
            UnverifiedAccountError: If the email is not verified yet
        """
        email = normalize_email(email or "")

        # No account can hold an address this long; nothing is recorded for it
        if len(email) > EMAIL_MAX_LENGTH:
            self.hasher.dummy_check(password or "")
            logger.info("Rejected login with an over-long email")
            raise InvalidCredentialsError()

        try:
            self.auditor.check_rate_limit(email)
        except RateLimitedError:
            self.auditor.record(
                LoginAttempt(
                    email=email,
                    success=False,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    fail_reason="rate limited",
                )
            )
            raise

        with self.transactions.factory() as uow:
            user = uow.users.get_by_email(email) if email else None

        if user is None:
            self.hasher.dummy_check(password or "")
            self._reject_login(email, None, "user not found", ip_address, user_agent)
            raise InvalidCredentialsError()

        if not user.is_active:
            self._reject_login(email, user.id, "account deactivated", ip_address, user_agent)
            raise AccountNotActiveError()

        if not user.email_verified:
            self._reject_login(email, user.id, "email not verified", ip_address, user_agent)
            raise UnverifiedAccountError()

        if not self.hasher.check(password or "", user.password_hash):
            self._reject_login(email, user.id, "invalid password", ip_address, user_agent)
            raise InvalidCredentialsError()

        self.auditor.reset_failures(email)

        pair = self.tokens.mint_pair(user)
        device_info = self.auditor.resolve_device(user_agent)
        location = self.auditor.resolve_location(ip_address)
        new_hash = self.hasher.hash(password) if self.hasher.needs_rehash(user.password_hash) else None
        now = self.clock()
        user_id = user.id

        def operation(uow: UnitOfWork) -> tuple[UUID, UserSnapshot]:
            current = uow.users.get_by_id(user_id)
            if current is None:
                raise InvalidCredentialsError()

            session = self.sessions.create(
                uow,
                user_id,
                token_ref=pair.access_jti,
                expires_at=pair.expires_at,
                device_info=device_info,
                ip_address=normalize_ip_address(ip_address),
                user_agent=user_agent,
                location=location,
            )

            current.last_login_at = now  # type: ignore[assignment]
            current.last_activity_at = now  # type: ignore[assignment]
            current.updated_at = now  # type: ignore[assignment]
            if new_hash is not None:
                current.password_hash = new_hash  # type: ignore[assignment]
            uow.users.update(current)

            self.auditor.record(
                LoginAttempt(
                    email=email,
                    success=True,
                    user_id=user_id,
                    ip_address=ip_address,
                    user_agent=user_agent,
                ),
                uow=uow,
            )
            return session.id, UserSnapshot.from_model(current)

        session_id, snapshot = self.transactions.execute_with_retry(operation, "login")
        if new_hash is not None:
            logger.info(f"Upgraded password hash cost for user {user_id}")

        return LoginResult(
            user=snapshot,
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            expires_at=pair.expires_at,
            session_id=session_id,
        )

    def _reject_login(
        self,
        email: str,
        user_id: UUID | None,
        reason: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> None:
        self.auditor.record(
            LoginAttempt(
                email=email,
                success=False,
                user_id=user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                fail_reason=reason,
            )
        )
        self.auditor.register_failure(email)

    def refresh_token(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new token pair.

        The presented refresh token is revoked when a revocation list is
        configured. Sessions are not touched.

        Raises:
            InvalidTokenError: If the token is invalid, expired, revoked or its user is gone
            AccountNotActiveError: If the account was deactivated
        """
        claims = self.tokens.validate_refresh(refresh_token)

        with self.transactions.factory() as uow:
            user = uow.users.get_by_id(claims.user_id)

        if user is None:
            raise InvalidTokenError("Token user no longer exists")
        if not user.is_active:
            raise AccountNotActiveError()

        pair = self.tokens.mint_pair(user)
        self.tokens.revoke(claims.jti, claims.expires_at)
        logger.info(f"Refreshed tokens for user {user.id}")
        return pair

    def validate_access(self, access_token: str) -> TokenClaims:
        """Authenticate a request's bearer token."""
        return self.tokens.validate_access(access_token)

    # Passwords

    def change_password(self, user_id: UUID, current_password: str, new_password: str) -> None:
        self.password_resets.change_password(user_id, current_password, new_password)

    def forgot_password(self, email: str) -> None:
        self.password_resets.forgot(email)

    def reset_password(self, token: str, new_password: str) -> None:
        self.password_resets.reset(token, new_password)

    # Verification

    def _dispatch_verification_email(self, user: UserSnapshot) -> bool:
        return self.dispatcher.submit(
            "send_verification_email",
            self._send_verification_email,
            user.id,
            user.email,
            user.full_name,
        )

    def _send_verification_email(self, user_id: UUID, email: str, display_name: str) -> None:
        issued = self.ledger.issue(user_id, VerificationPurpose.EMAIL)
        link = f"{self.verification_config.verification_link_base}?token={issued.code}"
        self.email_sender.send_verification_email(email, display_name, link)

    def verify_email(self, token: str) -> UserSnapshot:
        """
        Redeem an email verification token.

        Raises:
            NotFoundError: If the token does not exist
            ExpiredError: If the token has expired
            AlreadyUsedError: If the token was already redeemed
        """
        user = self.ledger.verify(token, VerificationPurpose.EMAIL)
        self.dispatcher.submit(
            "send_welcome_email",
            self.email_sender.send_welcome_email,
            user.email,
            user.full_name,
            self.verification_config.welcome_link,
        )
        return user

    def resend_verification(self, email: str) -> None:
        """
        Send a fresh verification email.

        Unknown emails are ignored silently so the call cannot be used to
        discover which accounts exist.

        Raises:
            ConflictError: If the email is already verified
        """
        email = normalize_email(email or "")
        with self.transactions.factory() as uow:
            user = uow.users.get_by_email(email) if email else None

        if user is None:
            logger.info("Verification resend requested for unknown email")
            return
        if user.email_verified:
            raise ConflictError("Email is already verified")

        self._dispatch_verification_email(UserSnapshot.from_model(user))

    def send_email_verification(self, user_id: UUID) -> None:
        user = self.get_profile(user_id)
        if user.email_verified:
            raise ConflictError("Email is already verified")
        self._dispatch_verification_email(user)

    def send_phone_verification(self, user_id: UUID, phone: str) -> datetime:
        """
        Store a phone number and send it a verification code.

        Changing the number clears an earlier phone verification.

        Returns:
            When the code expires
        """
        phone = validate_phone_number(phone or "")
        now = self.clock()

        def operation(uow: UnitOfWork) -> None:
            user = uow.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User", str(user_id))
            if user.phone != phone:
                user.phone = phone  # type: ignore[assignment]
                user.phone_verified = False  # type: ignore[assignment]
                user.updated_at = now  # type: ignore[assignment]
                uow.users.update(user)

        self.transactions.execute_with_retry(operation, "set_phone")

        issued = self.ledger.issue(user_id, VerificationPurpose.PHONE)
        self.dispatcher.submit(
            "send_verification_sms", self.sms_sender.send_verification_code, phone, issued.code
        )
        return issued.expires_at

    def verify_phone(self, user_id: UUID, code: str) -> UserSnapshot:
        return self.ledger.verify(code, VerificationPurpose.PHONE, user_id=user_id)

    def verification_status(self, user_id: UUID) -> VerificationStatus:
        user = self.get_profile(user_id)
        pending = self.ledger.pending(user_id)
        return VerificationStatus(
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
            email_pending=pending[VerificationPurpose.EMAIL],
            phone_pending=pending[VerificationPurpose.PHONE],
        )

    # Sessions

    def list_sessions(
        self, user_id: UUID, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> SessionPage:
        return self.sessions.list_by_user(user_id, limit, offset)

    def touch_session(self, session_id: UUID) -> None:
        self.sessions.touch(session_id)

    def logout(self, user_id: UUID, session_id: UUID) -> None:
        self.sessions.invalidate_one(user_id, session_id)

    def logout_everywhere(self, user_id: UUID) -> int:
        return self.sessions.invalidate_all(user_id)

    # Profile and administration

    def get_profile(self, user_id: UUID) -> UserSnapshot:
        with self.transactions.factory() as uow:
            user = uow.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User", str(user_id))
            return UserSnapshot.from_model(user)

    def update_profile(
        self,
        user_id: UUID,
        first_name: str | None = None,
        last_name: str | None = None,
        phone: str | None = None,
    ) -> UserSnapshot:
        """Update profile fields; ``None`` leaves a field unchanged."""
        if phone:
            phone = validate_phone_number(phone)
        now = self.clock()

        def operation(uow: UnitOfWork) -> UserSnapshot:
            user = uow.users.get_by_id(user_id)
            if user is None:
                raise NotFoundError("User", str(user_id))

            if first_name is not None:
                user.first_name = first_name.strip()  # type: ignore[assignment]
            if last_name is not None:
                user.last_name = last_name.strip()  # type: ignore[assignment]
            if phone is not None and phone != (user.phone or ""):
                user.phone = phone or None  # type: ignore[assignment]
                user.phone_verified = False  # type: ignore[assignment]
            user.updated_at = now  # type: ignore[assignment]

            uow.users.update(user)
            return UserSnapshot.from_model(user)

        return self.transactions.execute_with_retry(operation, "update_profile")

    def deactivate_user(self, user_id: UUID) -> None:
        """Deactivate an account and sign it out everywhere."""
        now = self.clock()

        def operation(uow: UnitOfWork) -> list[str]:
            if uow.users.get_by_id(user_id) is None:
                raise NotFoundError("User", str(user_id))
            uow.users.set_active(user_id, False, now)
            return self.sessions.deactivate_all(uow, user_id)

        token_refs = self.transactions.execute_with_retry(operation, "deactivate_user")
        self.sessions.revoke_tokens(token_refs)
        logger.info(f"Deactivated user {user_id}; {len(token_refs)} sessions invalidated")

    def activate_user(self, user_id: UUID) -> None:
        now = self.clock()

        def operation(uow: UnitOfWork) -> None:
            if uow.users.get_by_id(user_id) is None:
                raise NotFoundError("User", str(user_id))
            uow.users.set_active(user_id, True, now)

        self.transactions.execute_with_retry(operation, "activate_user")
        logger.info(f"Activated user {user_id}")

    def list_users(
        self, filters: UserFilters | None = None, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> UserPage:
        filters = filters or UserFilters()
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        with self.transactions.factory() as uow:
            users = [
                UserSnapshot.from_model(user)
                for user in uow.users.list_users(filters, limit, offset)
            ]
            total = uow.users.count_users(filters)

        return UserPage(users=users, total=total, limit=limit, offset=offset)

    # Login history

    def login_history(
        self, user_id: UUID, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> LoginHistoryPage:
        return self.auditor.history(user_id, limit, offset)

    def login_stats(self, user_id: UUID) -> LoginStats:
        return self.auditor.stats(user_id)
