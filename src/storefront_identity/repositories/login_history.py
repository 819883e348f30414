"""
SQLAlchemy Login History Repository

Append-only storage of authentication attempts plus the aggregate
queries behind per-user login statistics.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from ..interfaces import LoginAggregates
from ..models import LoginHistoryEntry

logger = logging.getLogger(__name__)


class SqlAlchemyLoginHistoryRepository:
    """Login history persistence; entries are never updated or deleted."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entry: LoginHistoryEntry) -> LoginHistoryEntry:
        self.session.add(entry)
        self.session.flush()
        return entry

    def list_by_user(self, user_id: UUID, limit: int, offset: int) -> list[LoginHistoryEntry]:
        query = (
            select(LoginHistoryEntry)
            .where(LoginHistoryEntry.user_id == user_id)
            .order_by(LoginHistoryEntry.created_at.desc(), LoginHistoryEntry.id)
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(query))

    def count_by_user(self, user_id: UUID) -> int:
        query = select(func.count(LoginHistoryEntry.id)).where(LoginHistoryEntry.user_id == user_id)
        return int(self.session.scalar(query) or 0)

    def aggregate_for_user(self, user_id: UUID, failures_since: datetime) -> LoginAggregates:
        """
        Compute login statistics for a user in a handful of queries.

        Args:
            user_id: User identifier
            failures_since: Lower bound for the recent-failure count

        Returns:
            Aggregated counts, timestamps and most-used device/location
        """
        is_success = LoginHistoryEntry.success.is_(True)
        is_failure = LoginHistoryEntry.success.is_(False)

        row = self.session.execute(
            select(
                func.count(LoginHistoryEntry.id),
                func.coalesce(func.sum(case((is_success, 1), else_=0)), 0),
                func.max(case((is_success, LoginHistoryEntry.created_at))),
                func.max(case((is_failure, LoginHistoryEntry.created_at))),
                func.count(func.distinct(LoginHistoryEntry.ip_address)),
                func.count(func.distinct(LoginHistoryEntry.device_info)),
                func.coalesce(
                    func.sum(
                        case(
                            (is_failure & (LoginHistoryEntry.created_at >= failures_since), 1),
                            else_=0,
                        )
                    ),
                    0,
                ),
            ).where(LoginHistoryEntry.user_id == user_id)
        ).one()

        total, successful, last_success, last_failure, unique_ips, unique_devices, recent = row

        return LoginAggregates(
            total=int(total),
            successful=int(successful),
            failed=int(total) - int(successful),
            last_success_at=last_success,
            last_failure_at=last_failure,
            unique_ips=int(unique_ips),
            unique_devices=int(unique_devices),
            most_used_device=self._most_used(user_id, LoginHistoryEntry.device_info),
            most_used_location=self._most_used(user_id, LoginHistoryEntry.location),
            failed_since=int(recent),
        )

    def _most_used(self, user_id: UUID, column: Any) -> str | None:
        query = (
            select(column, func.count().label("uses"))
            .where(LoginHistoryEntry.user_id == user_id, column.is_not(None))
            .group_by(column)
            .order_by(func.count().desc(), column)
            .limit(1)
        )
        row = self.session.execute(query).first()
        return row[0] if row else None
