"""
Collaborator interfaces for the identity core.

Stores are implemented over SQLAlchemy in ``repositories``; transports,
resolvers and revocation lists are injected so deployments can swap them.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from .models import (
    LoginHistoryEntry,
    PasswordResetToken,
    User,
    UserSession,
    VerificationPurpose,
    VerificationRecord,
)


@dataclass
class UserFilters:
    """Search filters for user listing."""

    role: str | None = None
    is_active: bool | None = None
    email_verified: bool | None = None
    search: str | None = None


@dataclass
class LoginAggregates:
    """Raw login history aggregates for one user."""

    total: int
    successful: int
    failed: int
    last_success_at: datetime | None
    last_failure_at: datetime | None
    unique_ips: int
    unique_devices: int
    most_used_device: str | None
    most_used_location: str | None
    failed_since: int


class UserDirectory(Protocol):
    def create(self, user: User) -> User: ...

    def get_by_id(self, user_id: UUID) -> User | None: ...

    def get_by_email(self, email: str) -> User | None: ...

    def update(self, user: User) -> User: ...

    def update_password(self, user_id: UUID, password_hash: str, now: datetime) -> None: ...

    def set_active(self, user_id: UUID, is_active: bool, now: datetime) -> None: ...

    def exists_by_email(self, email: str) -> bool: ...

    def list_users(self, filters: UserFilters, limit: int, offset: int) -> list[User]: ...

    def count_users(self, filters: UserFilters) -> int: ...


class SessionStore(Protocol):
    def add(self, user_session: UserSession) -> UserSession: ...

    def get(self, session_id: UUID) -> UserSession | None: ...

    def list_by_user(self, user_id: UUID, limit: int, offset: int) -> list[UserSession]: ...

    def count_by_user(self, user_id: UUID) -> int: ...

    def deactivate_all(self, user_id: UUID, now: datetime) -> list[str]: ...


class VerificationStore(Protocol):
    def upsert(
        self, user_id: UUID, purpose: VerificationPurpose, code: str, expires_at: datetime
    ) -> VerificationRecord: ...

    def get_by_code(self, code: str, purpose: VerificationPurpose) -> VerificationRecord | None: ...

    def get_for_user(
        self, user_id: UUID, purpose: VerificationPurpose
    ) -> VerificationRecord | None: ...

    def mark_used(self, record_id: UUID, now: datetime) -> bool: ...

    def increment_attempts(self, record_id: UUID) -> int: ...


class PasswordResetStore(Protocol):
    def add(self, token: PasswordResetToken) -> PasswordResetToken: ...

    def get_by_token(self, token: str) -> PasswordResetToken | None: ...

    def expire_pending(self, user_id: UUID, now: datetime) -> int: ...

    def mark_used(self, token_id: UUID, now: datetime) -> bool: ...


class LoginHistoryStore(Protocol):
    def add(self, entry: LoginHistoryEntry) -> LoginHistoryEntry: ...

    def list_by_user(self, user_id: UUID, limit: int, offset: int) -> list[LoginHistoryEntry]: ...

    def count_by_user(self, user_id: UUID) -> int: ...

    def aggregate_for_user(self, user_id: UUID, failures_since: datetime) -> LoginAggregates: ...


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str: ...

    def check(self, password: str, password_hash: str) -> bool: ...

    def needs_rehash(self, password_hash: str) -> bool: ...

    def dummy_check(self, password: str) -> None: ...


class EmailSender(Protocol):
    def send_verification_email(self, recipient: str, display_name: str, link: str) -> None: ...

    def send_password_reset_email(self, recipient: str, display_name: str, link: str) -> None: ...

    def send_welcome_email(self, recipient: str, display_name: str, link: str) -> None: ...


class SmsSender(Protocol):
    def send_verification_code(self, phone: str, code: str) -> None: ...


class Notifier(Protocol):
    def notify_new_user(self, user_id: str, email: str, display_name: str) -> None: ...


class RateLimiter(Protocol):
    def check(self, key: str) -> None: ...

    def register_failure(self, key: str) -> int: ...

    def reset(self, key: str) -> None: ...


class GeoResolver(Protocol):
    def resolve(self, ip_address: str | None) -> str: ...


class DeviceResolver(Protocol):
    def resolve(self, user_agent: str | None) -> str: ...


class SessionIdentifier(Protocol):
    def is_current(self, session: UserSession) -> bool: ...


@runtime_checkable
class RevocationChecker(Protocol):
    def is_revoked(self, jti: str) -> bool: ...

    def revoke(self, jti: str, ttl_seconds: int) -> None: ...
