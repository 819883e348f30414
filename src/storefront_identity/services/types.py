"""
Result types returned by the identity services.

Services never hand ORM instances to callers; these detached snapshots
are safe to serialize and to use after the session is closed.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ..models import LoginHistoryEntry, User, UserSession


@dataclass(frozen=True)
class UserSnapshot:
    id: UUID
    email: str
    first_name: str
    last_name: str
    phone: str | None
    role: str
    email_verified: bool
    phone_verified: bool
    is_active: bool
    total_orders: int
    total_spent: Decimal
    last_login_at: datetime | None
    last_activity_at: datetime | None
    created_at: datetime | None

    @classmethod
    def from_model(cls, user: User) -> "UserSnapshot":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            phone=user.phone,
            role=user.role,
            email_verified=bool(user.email_verified),
            phone_verified=bool(user.phone_verified),
            is_active=bool(user.is_active),
            total_orders=int(user.total_orders or 0),
            total_spent=Decimal(user.total_spent or 0),
            last_login_at=user.last_login_at,
            last_activity_at=user.last_activity_at,
            created_at=user.created_at,
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["id"] = str(self.id)
        data["total_spent"] = str(self.total_spent)
        return data


@dataclass(frozen=True)
class TokenClaims:
    """Verified claims of an access or refresh token."""

    user_id: UUID
    email: str
    role: str
    jti: str
    issued_at: datetime
    expires_at: datetime
    token_type: str = "access"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_jti: str
    refresh_jti: str
    expires_at: datetime
    refresh_expires_at: datetime
    token_type: str = "Bearer"


@dataclass(frozen=True)
class LoginResult:
    user: UserSnapshot
    access_token: str
    refresh_token: str
    expires_at: datetime
    session_id: UUID


@dataclass(frozen=True)
class RegistrationResult:
    user: UserSnapshot
    verification_required: bool = True


@dataclass(frozen=True)
class SessionView:
    id: UUID
    device_info: str | None
    ip_address: str | None
    user_agent: str | None
    location: str | None
    is_active: bool
    is_current: bool
    last_activity: datetime | None
    created_at: datetime | None
    expires_at: datetime

    @classmethod
    def from_model(cls, session: UserSession, is_current: bool = False) -> "SessionView":
        return cls(
            id=session.id,
            device_info=session.device_info,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            location=session.location,
            is_active=bool(session.is_active),
            is_current=is_current,
            last_activity=session.last_activity,
            created_at=session.created_at,
            expires_at=session.expires_at,
        )


@dataclass(frozen=True)
class SessionPage:
    sessions: list[SessionView]
    total: int
    limit: int
    offset: int


@dataclass
class LoginAttempt:
    """An authentication attempt as seen by the login path."""

    email: str
    success: bool
    user_id: UUID | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    fail_reason: str | None = None
    login_type: str = "password"


@dataclass(frozen=True)
class LoginHistoryItem:
    id: UUID
    ip_address: str | None
    user_agent: str | None
    device_info: str | None
    location: str | None
    login_type: str
    success: bool
    fail_reason: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, entry: LoginHistoryEntry) -> "LoginHistoryItem":
        return cls(
            id=entry.id,
            ip_address=entry.ip_address,
            user_agent=entry.user_agent,
            device_info=entry.device_info,
            location=entry.location,
            login_type=entry.login_type,
            success=bool(entry.success),
            fail_reason=entry.fail_reason,
            created_at=entry.created_at,
        )


@dataclass(frozen=True)
class LoginStats:
    total_logins: int = 0
    successful_logins: int = 0
    failed_logins: int = 0
    success_rate: float = 0.0
    last_login_at: datetime | None = None
    last_failed_login_at: datetime | None = None
    unique_ips: int = 0
    unique_devices: int = 0
    most_used_device: str | None = None
    most_used_location: str | None = None
    recent_failed_attempts: int = 0


@dataclass(frozen=True)
class LoginHistoryPage:
    entries: list[LoginHistoryItem]
    total: int
    limit: int
    offset: int
    stats: LoginStats = field(default_factory=LoginStats)


@dataclass(frozen=True)
class VerificationStatus:
    email_verified: bool
    phone_verified: bool
    email_pending: bool
    phone_pending: bool


@dataclass(frozen=True)
class UserPage:
    users: list[UserSnapshot]
    total: int
    limit: int
    offset: int
