"""Pytest configuration and fixtures for the notification engine tests.

Provides a controllable clock, the in-memory repository, a recording
dispatcher and a fixed digest preference source, plus builders for stored
notifications in any lifecycle state.
"""

import os

os.environ.setdefault("CSR_NOTIFY_ENVIRONMENT", "test")

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest

from csr_notifications.core.config import DigestConfig, SchedulingConfig
from csr_notifications.modules.notification.application.services import (
    NotificationDigestService,
    NotificationSchedulingService,
)
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
)
from csr_notifications.modules.notification.domain.enums import (
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
    RecurrenceFrequency,
)
from csr_notifications.modules.notification.domain.interfaces.services import (
    DispatchResult,
    IDigestPreferenceSource,
    INotificationDispatcher,
)
from csr_notifications.modules.notification.domain.value_objects import (
    RecurrenceConfig,
)
from csr_notifications.modules.notification.infrastructure.engines import (
    JinjaDigestRenderer,
)
from csr_notifications.modules.notification.infrastructure.repositories import (
    InMemoryNotificationRepository,
)

NOW = datetime(2025, 1, 10, 8, 0, tzinfo=UTC)


class FakeClock:
    """Clock returning a fixed time until moved."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDispatcher(INotificationDispatcher):
    """Dispatcher that records every send and fails selected notifications."""

    def __init__(self):
        self.sent: list[Notification] = []
        self.fail_ids: set = set()
        self.raise_ids: set = set()

    def send(self, notification: Notification, delivery_options: dict[str, Any]) -> DispatchResult:
        if notification.id in self.raise_ids:
            raise ConnectionError("provider unreachable")
        if notification.id in self.fail_ids:
            return DispatchResult.failed("rejected by provider")
        self.sent.append(notification)
        return DispatchResult.ok(provider_message_id=f"msg-{len(self.sent)}")


class FakePreferences(IDigestPreferenceSource):
    """Preference source backed by a frequency -> users mapping."""

    def __init__(self, users_by_frequency: dict[int, list[str]] | None = None):
        self.users_by_frequency = users_by_frequency or {}
        self.frequencies: dict[str, int] = {}
        self.requested: list[int] = []

    def find_users_by_digest_frequency(self, frequency: int) -> list[str]:
        self.requested.append(frequency)
        return list(self.users_by_frequency.get(frequency, []))

    def get_digest_frequency(self, user_id: str) -> int | None:
        return self.frequencies.get(user_id)


@pytest.fixture
def clock():
    """Fixed clock at 2025-01-10 08:00 UTC."""
    return FakeClock()


@pytest.fixture
def repository(clock):
    """Empty in-memory notification store."""
    return InMemoryNotificationRepository(clock)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def preferences():
    return FakePreferences()


@pytest.fixture
def scheduling_service(repository, dispatcher, clock):
    """Scheduling facade over the in-memory store."""
    return NotificationSchedulingService(
        repository, dispatcher, config=SchedulingConfig(), clock=clock
    )


@pytest.fixture
def digest_service(repository, preferences, clock):
    """Digest facade over the in-memory store."""
    return NotificationDigestService(
        repository,
        preferences,
        JinjaDigestRenderer(),
        config=DigestConfig(),
        clock=clock,
    )


@pytest.fixture
def make_notification(repository):
    """Build and store a notification; keyword arguments override defaults."""

    def _make(**overrides: Any) -> Notification:
        fields: dict[str, Any] = {
            "recipient_id": "donor-1",
            "title": "Donation received",
            "message": "Thank you for your donation",
            "notification_type": "donation_received",
            "channel": NotificationChannel.EMAIL,
            "priority": NotificationPriority.NORMAL,
            "created_at": NOW - timedelta(hours=2),
        }
        fields.update(overrides)
        notification = Notification(**fields)
        repository.add(notification)
        return notification

    return _make


@pytest.fixture
def make_due(make_notification):
    """Store a scheduled notification whose time passed ``minutes_ago`` minutes ago."""

    def _make(minutes_ago: int = 5, **overrides: Any) -> Notification:
        fields: dict[str, Any] = {
            "status": NotificationStatus.SCHEDULED,
            "scheduled_for": NOW - timedelta(minutes=minutes_ago),
        }
        fields.update(overrides)
        return make_notification(**fields)

    return _make


@pytest.fixture
def make_template(make_notification):
    """Store an active recurring series template."""

    def _make(
        scheduled_for: datetime = datetime(2025, 1, 1, 9, 0, tzinfo=UTC),
        frequency: RecurrenceFrequency = RecurrenceFrequency.DAYS,
        interval: int = 1,
        max_occurrences: int = 100,
        end_date: datetime | None = None,
        **overrides: Any,
    ) -> Notification:
        fields: dict[str, Any] = {
            "status": NotificationStatus.SCHEDULED,
            "scheduled_for": scheduled_for,
            "schedule_id": str(uuid4()),
            "recurrence": RecurrenceConfig(
                frequency, interval, max_occurrences=max_occurrences, end_date=end_date
            ),
            "is_recurring": True,
            "recurring_active": True,
            "created_at": scheduled_for - timedelta(days=1),
        }
        fields.update(overrides)
        return make_notification(**fields)

    return _make
