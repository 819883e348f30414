"""
Verification ledger.

Issues and redeems single-use, expiring verification codes per user and
purpose. Email codes are UUID tokens delivered as links; phone codes are
six digits delivered by SMS and limited in the number of guesses.
Redeeming a code and flipping the user's verified flag happen in one
transaction.
"""

import hmac
import logging
import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from ..clock import Clock, utc_now
from ..config import VerificationConfig
from ..exceptions import AlreadyUsedError, ExpiredError, NotFoundError, RateLimitedError
from ..models import VerificationPurpose, VerificationRecord
from ..repositories.unit_of_work import TransactionManager, UnitOfWork
from .types import UserSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedCode:
    user_id: UUID
    purpose: VerificationPurpose
    code: str
    expires_at: datetime


class VerificationLedger:
    """Single-use verification codes keyed by (user, purpose)."""

    def __init__(
        self,
        transactions: TransactionManager,
        config: VerificationConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.transactions = transactions
        self.config = config or VerificationConfig()
        self.clock = clock
        # A concurrent first issue for the same (user, purpose) loses the insert race;
        # retrying turns it into an overwrite.
        self._issue_transactions = TransactionManager(
            transactions.factory,
            replace(
                transactions.retry_config,
                retryable_exceptions=(*transactions.retry_config.retryable_exceptions, IntegrityError),
            ),
        )

    def _new_code(self, purpose: VerificationPurpose) -> tuple[str, datetime]:
        now = self.clock()
        if purpose == VerificationPurpose.EMAIL:
            return str(uuid.uuid4()), now + self.config.email_code_ttl
        return f"{secrets.randbelow(10**6):06d}", now + self.config.phone_code_ttl

    def issue(self, user_id: UUID, purpose: VerificationPurpose) -> IssuedCode:
        """
        Issue a fresh code, replacing any earlier code for the same purpose.

        Args:
            user_id: User the code belongs to
            purpose: Email or phone verification

        Returns:
            The new code and its expiry
        """
        code, expires_at = self._new_code(purpose)

        def operation(uow: UnitOfWork) -> None:
            uow.verifications.upsert(user_id, purpose, code, expires_at)

        self._issue_transactions.execute_with_retry(operation, f"issue_{purpose.value}_code")
        logger.info(f"Issued {purpose.value} verification code for user {user_id}")
        return IssuedCode(user_id=user_id, purpose=purpose, code=code, expires_at=expires_at)

    def verify(
        self, code: str, purpose: VerificationPurpose, user_id: UUID | None = None
    ) -> UserSnapshot:
        """
        Redeem a code and mark the matching channel verified.

        Email codes are looked up by value. Phone codes are short, so they are
        looked up by user and compared in constant time, and every wrong guess
        counts against the record.

        Raises:
            NotFoundError: If no matching code exists
            ExpiredError: If the code is past its expiry
            AlreadyUsedError: If the code was already redeemed
            RateLimitedError: If too many wrong phone codes were tried
            PersistenceError: If the redemption could not be committed
        """
        if purpose == VerificationPurpose.EMAIL:
            return self._verify_email(code)
        if user_id is None:
            raise NotFoundError("Verification code")
        return self._verify_phone(user_id, code)

    def _verify_email(self, code: str) -> UserSnapshot:
        now = self.clock()

        def operation(uow: UnitOfWork) -> UserSnapshot:
            record = uow.verifications.get_by_code(code, VerificationPurpose.EMAIL) if code else None
            if record is None:
                raise NotFoundError("Verification code")
            return self._redeem(uow, record, now)

        snapshot = self.transactions.execute_with_retry(operation, "verify_email")
        logger.info(f"Email verified for user {snapshot.id}")
        return snapshot

    def _verify_phone(self, user_id: UUID, code: str) -> UserSnapshot:
        now = self.clock()

        def operation(uow: UnitOfWork) -> UserSnapshot | None:
            record = uow.verifications.get_for_user(user_id, VerificationPurpose.PHONE)
            if record is None:
                raise NotFoundError("Verification code")
            if record.attempts >= self.config.max_phone_attempts and not record.is_used:
                raise RateLimitedError(
                    "Too many incorrect verification codes, request a new code",
                    retry_after=None,
                )
            if not hmac.compare_digest(record.code.encode(), code.encode()):
                attempts = uow.verifications.increment_attempts(record.id)
                logger.warning(
                    f"Incorrect phone verification code for user {user_id} "
                    f"({attempts}/{self.config.max_phone_attempts})"
                )
                # Committed so the attempt counts; reported after the transaction
                return None
            return self._redeem(uow, record, now)

        snapshot = self.transactions.execute_with_retry(operation, "verify_phone")
        if snapshot is None:
            raise NotFoundError("Verification code")

        logger.info(f"Phone verified for user {user_id}")
        return snapshot

    def _redeem(self, uow: UnitOfWork, record: VerificationRecord, now: datetime) -> UserSnapshot:
        if record.is_expired(now):
            raise ExpiredError("Verification code has expired")
        if record.is_used:
            raise AlreadyUsedError("Verification code has already been used")

        if not uow.verifications.mark_used(record.id, now):
            raise AlreadyUsedError("Verification code has already been used")

        user = uow.users.get_by_id(record.user_id)
        if user is None:
            raise NotFoundError("User", str(record.user_id))

        if record.purpose == VerificationPurpose.EMAIL:
            user.email_verified = True  # type: ignore[assignment]
        else:
            user.phone_verified = True  # type: ignore[assignment]
        user.updated_at = now  # type: ignore[assignment]
        uow.users.update(user)

        return UserSnapshot.from_model(user)

    def pending(self, user_id: UUID) -> dict[VerificationPurpose, bool]:
        """Which purposes have an unused, unexpired code outstanding."""
        now = self.clock()
        with self.transactions.factory() as uow:
            status = {}
            for purpose in VerificationPurpose:
                record = uow.verifications.get_for_user(user_id, purpose)
                status[purpose] = bool(
                    record is not None and not record.is_used and not record.is_expired(now)
                )
        return status
