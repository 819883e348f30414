"""
Login auditing.

Records every authentication attempt, successful or not, computes
per-user login statistics and enforces the failed-login throttle.
"""

import logging
from datetime import timedelta
from uuid import UUID

from ..clock import Clock, utc_now
from ..interfaces import DeviceResolver, GeoResolver, RateLimiter
from ..models import LoginHistoryEntry
from ..repositories.unit_of_work import UnitOfWork, UnitOfWorkFactory
from ..validation import normalize_email, normalize_ip_address
from .resolvers import (
    UNKNOWN_DEVICE,
    UNKNOWN_LOCATION,
    StaticGeoResolver,
    UserAgentDeviceResolver,
)
from .types import LoginAttempt, LoginHistoryItem, LoginHistoryPage, LoginStats

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100
RECENT_FAILURE_WINDOW = timedelta(hours=24)


class LoginAuditor:
    """Login history, statistics and the failed-login throttle."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        rate_limiter: RateLimiter,
        device_resolver: DeviceResolver | None = None,
        geo_resolver: GeoResolver | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.uow_factory = uow_factory
        self.rate_limiter = rate_limiter
        self.device_resolver = device_resolver or UserAgentDeviceResolver()
        self.geo_resolver = geo_resolver or StaticGeoResolver()
        self.clock = clock

    def resolve_device(self, user_agent: str | None) -> str:
        try:
            return self.device_resolver.resolve(user_agent) or UNKNOWN_DEVICE
        except Exception as e:
            logger.warning(f"Device resolution failed: {e}")
            return UNKNOWN_DEVICE

    def resolve_location(self, ip_address: str | None) -> str:
        try:
            return self.geo_resolver.resolve(ip_address) or UNKNOWN_LOCATION
        except Exception as e:
            logger.warning(f"Location resolution failed for {ip_address}: {e}")
            return UNKNOWN_LOCATION

    def record(self, attempt: LoginAttempt, uow: UnitOfWork | None = None) -> None:
        """
        Append a login history entry.

        Args:
            attempt: The attempt to record
            uow: Record inside this unit of work instead of a new one
        """
        entry = LoginHistoryEntry(
            user_id=attempt.user_id,
            email=normalize_email(attempt.email or ""),
            ip_address=normalize_ip_address(attempt.ip_address),
            user_agent=attempt.user_agent,
            device_info=self.resolve_device(attempt.user_agent),
            location=self.resolve_location(attempt.ip_address),
            login_type=attempt.login_type,
            success=attempt.success,
            fail_reason=attempt.fail_reason,
            created_at=self.clock(),
        )

        if uow is not None:
            uow.login_history.add(entry)
        else:
            with self.uow_factory() as own_uow:
                own_uow.login_history.add(entry)

        if attempt.success:
            logger.info(f"Successful login for user {attempt.user_id}")
        else:
            logger.info(f"Failed login: {attempt.fail_reason}", extra={"login_type": attempt.login_type})

    def stats(self, user_id: UUID) -> LoginStats:
        """Aggregate login statistics for a user."""
        since = self.clock() - RECENT_FAILURE_WINDOW
        with self.uow_factory() as uow:
            aggregates = uow.login_history.aggregate_for_user(user_id, since)

        success_rate = 0.0
        if aggregates.total:
            success_rate = aggregates.successful / aggregates.total * 100

        return LoginStats(
            total_logins=aggregates.total,
            successful_logins=aggregates.successful,
            failed_logins=aggregates.failed,
            success_rate=success_rate,
            last_login_at=aggregates.last_success_at,
            last_failed_login_at=aggregates.last_failure_at,
            unique_ips=aggregates.unique_ips,
            unique_devices=aggregates.unique_devices,
            most_used_device=aggregates.most_used_device,
            most_used_location=aggregates.most_used_location,
            recent_failed_attempts=aggregates.failed_since,
        )

    def history(
        self, user_id: UUID, limit: int = DEFAULT_HISTORY_LIMIT, offset: int = 0
    ) -> LoginHistoryPage:
        """Paginated login history for a user, newest first, with statistics."""
        if limit <= 0:
            limit = DEFAULT_HISTORY_LIMIT
        limit = min(limit, MAX_HISTORY_LIMIT)
        offset = max(0, offset)

        with self.uow_factory() as uow:
            entries = uow.login_history.list_by_user(user_id, limit, offset)
            total = uow.login_history.count_by_user(user_id)
            items = [LoginHistoryItem.from_model(entry) for entry in entries]

        return LoginHistoryPage(
            entries=items, total=total, limit=limit, offset=offset, stats=self.stats(user_id)
        )

    # Failed-login throttle, keyed by normalized email

    def check_rate_limit(self, email: str) -> None:
        self.rate_limiter.check(normalize_email(email))

    def register_failure(self, email: str) -> int:
        return self.rate_limiter.register_failure(normalize_email(email))

    def reset_failures(self, email: str) -> None:
        self.rate_limiter.reset(normalize_email(email))
