"""
Unit tests for login history aggregates.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from storefront_identity.models import LoginHistoryEntry, User


@pytest.fixture
def user_id(uow_factory):
    with uow_factory() as uow:
        return uow.users.create(User(email="shopper@example.com", password_hash="x")).id


def add_entry(uow_factory, user_id, created_at, success, device=None, location=None, ip=None):
    with uow_factory() as uow:
        uow.login_history.add(
            LoginHistoryEntry(
                user_id=user_id,
                email="shopper@example.com",
                ip_address=ip,
                device_info=device,
                location=location,
                success=success,
                fail_reason=None if success else "invalid password",
                created_at=created_at,
            )
        )


class TestLoginHistoryRepository:
    """Test listing and aggregation."""

    def test_aggregate_empty(self, uow_factory, user_id, clock):
        with uow_factory() as uow:
            aggregates = uow.login_history.aggregate_for_user(user_id, clock())

        assert aggregates.total == 0
        assert aggregates.successful == 0
        assert aggregates.failed == 0
        assert aggregates.last_success_at is None
        assert aggregates.last_failure_at is None
        assert aggregates.most_used_device is None
        assert aggregates.most_used_location is None
        assert aggregates.failed_since == 0

    def test_aggregate_counts(self, uow_factory, user_id, clock):
        """Test counts, timestamps and distinct values."""
        start = clock()
        hour = timedelta(hours=1)
        add_entry(uow_factory, user_id, start, False, "iPhone", "Local", "10.0.0.1")
        add_entry(uow_factory, user_id, start + hour, True, "iPhone", "Local", "10.0.0.1")
        add_entry(uow_factory, user_id, start + 2 * hour, True, "Mac Desktop", None, "10.0.0.2")
        add_entry(uow_factory, user_id, start + 3 * hour, False)

        with uow_factory() as uow:
            aggregates = uow.login_history.aggregate_for_user(user_id, start + hour / 2)

        assert aggregates.total == 4
        assert aggregates.successful == 2
        assert aggregates.failed == 2
        assert aggregates.last_success_at == start + 2 * hour
        assert aggregates.last_failure_at == start + 3 * hour
        assert aggregates.unique_ips == 2
        assert aggregates.unique_devices == 2
        assert aggregates.most_used_device == "iPhone"
        assert aggregates.most_used_location == "Local"
        assert aggregates.failed_since == 1

    def test_most_used_tie_breaks_alphabetically(self, uow_factory, user_id, clock):
        add_entry(uow_factory, user_id, clock(), True, "Windows Desktop")
        add_entry(uow_factory, user_id, clock(), True, "Mac Desktop")

        with uow_factory() as uow:
            aggregates = uow.login_history.aggregate_for_user(user_id, clock())

        assert aggregates.most_used_device == "Mac Desktop"

    def test_entries_are_scoped_to_user(self, uow_factory, user_id, clock):
        add_entry(uow_factory, user_id, clock(), True)
        add_entry(uow_factory, None, clock(), False)

        with uow_factory() as uow:
            assert uow.login_history.count_by_user(user_id) == 1
            assert uow.login_history.count_by_user(uuid4()) == 0
            assert len(uow.login_history.list_by_user(user_id, limit=10, offset=0)) == 1
