"""
SQLAlchemy Verification Repository

Keeps exactly one verification record per (user, purpose). Issuing a new
code rewrites that row; redeeming uses a conditional update so a code can
only ever be consumed once, even under concurrent redemption.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..models import VerificationPurpose, VerificationRecord

logger = logging.getLogger(__name__)


class SqlAlchemyVerificationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def upsert(
        self, user_id: UUID, purpose: VerificationPurpose, code: str, expires_at: datetime
    ) -> VerificationRecord:
        """
        Create or overwrite the record for ``(user_id, purpose)``.

        Raises:
            IntegrityError: If a concurrent call inserted the row first; a
                retry in a new transaction overwrites it
        """
        record = self.get_for_user(user_id, purpose)
        if record is None:
            record = VerificationRecord(user_id=user_id, purpose=purpose)
            self.session.add(record)

        record.code = code  # type: ignore[assignment]
        record.expires_at = expires_at  # type: ignore[assignment]
        record.is_used = False  # type: ignore[assignment]
        record.verified_at = None  # type: ignore[assignment]
        record.attempts = 0  # type: ignore[assignment]

        self.session.flush()
        return record

    def get_by_code(self, code: str, purpose: VerificationPurpose) -> VerificationRecord | None:
        query = select(VerificationRecord).where(
            VerificationRecord.code == code, VerificationRecord.purpose == purpose
        )
        return self.session.scalars(query).first()

    def get_for_user(
        self, user_id: UUID, purpose: VerificationPurpose
    ) -> VerificationRecord | None:
        query = select(VerificationRecord).where(
            VerificationRecord.user_id == user_id, VerificationRecord.purpose == purpose
        )
        return self.session.scalars(query).first()

    def mark_used(self, record_id: UUID, now: datetime) -> bool:
        """
        Consume a record.

        Returns:
            False if another caller consumed it first
        """
        result = self.session.execute(
            update(VerificationRecord)
            .where(VerificationRecord.id == record_id, VerificationRecord.is_used.is_(False))
            .values(is_used=True, verified_at=now, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def increment_attempts(self, record_id: UUID) -> int:
        self.session.execute(
            update(VerificationRecord)
            .where(VerificationRecord.id == record_id)
            .values(attempts=VerificationRecord.attempts + 1)
            .execution_options(synchronize_session="fetch")
        )
        attempts = self.session.scalar(
            select(VerificationRecord.attempts).where(VerificationRecord.id == record_id)
        )
        return int(attempts or 0)
