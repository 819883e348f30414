"""
SQLAlchemy User Repository

User directory over the ``users`` table: creation with uniqueness
enforcement, lookups, profile and credential updates, and filtered listing.
"""

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import ConflictError
from ..interfaces import UserFilters
from ..models import User

logger = logging.getLogger(__name__)


class SqlAlchemyUserRepository:
    """
    SQLAlchemy implementation of the user directory.

    Emails are stored lower-cased; callers normalize before lookup.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, user: User) -> User:
        """
        Insert a new user.

        A uniqueness violation rolls back the enclosing transaction.

        Raises:
            ConflictError: If the email is already registered
        """
        self.session.add(user)
        try:
            self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"Duplicate registration rejected for {user.email}")
            raise ConflictError("Email already registered", {"email": user.email}) from e

        logger.debug(f"Created user {user.id}")
        return user

    def get_by_id(self, user_id: UUID) -> User | None:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        return self.session.scalars(select(User).where(User.email == email)).first()

    def exists_by_email(self, email: str) -> bool:
        count = self.session.scalar(select(func.count(User.id)).where(User.email == email))
        return bool(count)

    def update(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def update_password(self, user_id: UUID, password_hash: str, now: datetime) -> None:
        self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash, updated_at=now)
        )

    def set_active(self, user_id: UUID, is_active: bool, now: datetime) -> None:
        self.session.execute(
            update(User).where(User.id == user_id).values(is_active=is_active, updated_at=now)
        )

    def list_users(self, filters: UserFilters, limit: int, offset: int) -> list[User]:
        query = self._apply_filters(select(User), filters)
        query = query.order_by(User.created_at.desc(), User.id).limit(limit).offset(offset)
        return list(self.session.scalars(query))

    def count_users(self, filters: UserFilters) -> int:
        query = self._apply_filters(select(func.count(User.id)), filters)
        return int(self.session.scalar(query) or 0)

    def _apply_filters(self, query: Select, filters: UserFilters) -> Select:
        if filters.role is not None:
            query = query.where(User.role == filters.role)
        if filters.is_active is not None:
            query = query.where(User.is_active == filters.is_active)
        if filters.email_verified is not None:
            query = query.where(User.email_verified == filters.email_verified)
        if filters.search:
            pattern = f"%{filters.search.lower()}%"
            query = query.where(
                or_(
                    func.lower(User.email).like(pattern),
                    func.lower(User.first_name).like(pattern),
                    func.lower(User.last_name).like(pattern),
                )
            )
        return query
