"""Time helpers. All persisted timestamps are naive UTC."""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current UTC time without tzinfo, matching the database columns."""
    return datetime.now(UTC).replace(tzinfo=None)
