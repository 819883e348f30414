"""
Database models for the identity lifecycle.

This module defines SQLAlchemy models for users, login sessions,
verification records, password reset tokens and login history.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import INET
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import String as SQLString
from sqlalchemy.types import TypeDecorator

from .clock import utc_now


class IPAddress(TypeDecorator[str]):
    """Database-agnostic IP address field."""

    impl = SQLString
    cache_ok = True

    def load_dialect_impl(self, dialect: Any) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(INET())
        else:
            return dialect.type_descriptor(SQLString(45))  # IPv6 max length


Base = declarative_base()


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    MODERATOR = "moderator"


class VerificationPurpose(str, enum.Enum):
    EMAIL = "email"
    PHONE = "phone"


class User(Base):  # type: ignore[valid-type, misc]
    """Storefront customer or staff account."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(254), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    # Profile information
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(32))
    role = Column(String(20), nullable=False, default=UserRole.CUSTOMER.value)

    # Verification and status
    email_verified = Column(Boolean, nullable=False, default=False)
    phone_verified = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    # Order aggregates, maintained by the ordering side
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    last_login_at = Column(DateTime)
    last_activity_at = Column(DateTime)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    sessions = relationship("UserSession", back_populates="user")

    __table_args__ = (Index("idx_user_role_active", "role", "is_active"),)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class UserSession(Base):  # type: ignore[valid-type, misc]
    """Login session bound to the access token it was issued with."""

    __tablename__ = "user_sessions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_ref = Column(String(64), nullable=False, index=True)

    # Device and location info
    device_info = Column(String(100))
    ip_address = Column(IPAddress)
    user_agent = Column(Text)
    location = Column(String(100))

    # Status
    is_active = Column(Boolean, nullable=False, default=True)
    last_activity = Column(DateTime, default=utc_now)
    expires_at = Column(DateTime, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    user = relationship("User", back_populates="sessions")

    __table_args__ = (
        Index("idx_session_user", "user_id", "is_active"),
        Index("idx_session_expiry", "expires_at", "is_active"),
    )

    def is_expired(self, now: datetime) -> bool:
        """Check if session is expired."""
        return bool(now > self.expires_at)

    def revoke(self, now: datetime) -> None:
        """Revoke the session."""
        self.is_active = False  # type: ignore[assignment]
        self.updated_at = now  # type: ignore[assignment]

    def update_activity(self, now: datetime) -> None:
        """Update last activity timestamp."""
        self.last_activity = now  # type: ignore[assignment]


class VerificationRecord(Base):  # type: ignore[valid-type, misc]
    """
    Single-use verification code for one (user, purpose) pair.

    Re-issuing a code overwrites the existing row, so at most one pending
    code exists per user and purpose.
    """

    __tablename__ = "verification_records"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    purpose = Column(
        Enum(
            VerificationPurpose,
            name="verification_purpose",
            native_enum=False,
            length=16,
            values_callable=lambda members: [member.value for member in members],
        ),
        nullable=False,
    )
    code = Column(String(64), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime)
    attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint("user_id", "purpose", name="uq_verification_user_purpose"),
        Index("idx_verification_code_purpose", "code", "purpose"),
    )

    def is_expired(self, now: datetime) -> bool:
        return bool(now > self.expires_at)


class PasswordResetToken(Base):  # type: ignore[valid-type, misc]
    """Single-use password reset token."""

    __tablename__ = "password_reset_tokens"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    created_at = Column(DateTime, default=utc_now)

    __table_args__ = (Index("idx_reset_user", "user_id"),)

    def is_expired(self, now: datetime) -> bool:
        return bool(now > self.expires_at)

    @property
    def is_used(self) -> bool:
        return self.used_at is not None


class LoginHistoryEntry(Base):  # type: ignore[valid-type, misc]
    """Append-only record of one authentication attempt."""

    __tablename__ = "login_history"

    id = Column(Uuid, primary_key=True, default=uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    email = Column(String(254), nullable=False)
    ip_address = Column(IPAddress)
    user_agent = Column(Text)
    device_info = Column(String(100))
    location = Column(String(100))
    login_type = Column(String(20), nullable=False, default="password")
    success = Column(Boolean, nullable=False)
    fail_reason = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("idx_login_history_user_created", "user_id", "created_at"),
        Index("idx_login_history_email", "email"),
    )
