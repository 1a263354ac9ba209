"""Tests for the recurrence generator."""

from datetime import UTC, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from csr_notifications.modules.notification.application.services import (
    RecurrenceGenerator,
    occurrence_key,
)
from csr_notifications.modules.notification.domain.enums import (
    NotificationStatus,
    RecurrenceFrequency,
)
from csr_notifications.modules.notification.domain.errors import (
    DuplicateNotificationError,
    InvalidConfigurationError,
    InvalidDataError,
    MissingConfigurationError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    NotificationFilters,
)

START = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
HORIZON = datetime(2025, 1, 10, 23, 59, tzinfo=UTC)


def scheduled_times(repository, schedule_id):
    instances = repository.find_by_filters(
        NotificationFilters(
            schedule_id=schedule_id, recurring_instance=True, order_by="scheduled_for"
        )
    )
    return [instance.scheduled_for for instance in instances]


@pytest.fixture
def generator(repository, clock):
    return RecurrenceGenerator(repository, clock)


class TestCalculateNextOccurrence:
    """Test suite for next occurrence arithmetic."""

    def test_accepts_raw_mapping(self):
        assert RecurrenceGenerator.calculate_next_occurrence(
            START, {"frequency": "hours", "interval": 6}
        ) == datetime(2025, 1, 1, 15, 0, tzinfo=UTC)

    def test_rejects_unknown_frequency(self):
        with pytest.raises(InvalidConfigurationError):
            RecurrenceGenerator.calculate_next_occurrence(START, {"frequency": "years"})


class TestOccurrenceKey:
    """Test suite for slot idempotency keys."""

    def test_same_instant_same_key_across_offsets(self):
        local = datetime(2025, 1, 2, 11, 0, tzinfo=timezone(timedelta(hours=2)))

        assert occurrence_key("series-1", local) == occurrence_key(
            "series-1", datetime(2025, 1, 2, 9, 0, tzinfo=UTC)
        )
        assert occurrence_key("series-1", local).endswith("+00:00")


class TestGenerateInstances:
    """Test suite for instance generation up to a horizon."""

    def test_daily_series_bounded_by_max_occurrences(self, generator, repository, make_template):
        """Daily series with max 3 from Jan 1 yields Jan 2, 3 and 4."""
        template = make_template(scheduled_for=START, max_occurrences=3)

        created = generator.generate_instances(template, HORIZON)

        assert len(created) == 3
        assert scheduled_times(repository, template.schedule_id) == [
            datetime(2025, 1, 2, 9, 0, tzinfo=UTC),
            datetime(2025, 1, 3, 9, 0, tzinfo=UTC),
            datetime(2025, 1, 4, 9, 0, tzinfo=UTC),
        ]

    def test_second_run_creates_nothing(self, generator, repository, make_template):
        """Generation is idempotent for the same horizon."""
        template = make_template(scheduled_for=START, max_occurrences=3)

        generator.generate_instances(template, HORIZON)
        second = generator.generate_instances(template, HORIZON)

        assert second == []
        assert len(scheduled_times(repository, template.schedule_id)) == 3

    def test_extending_horizon_only_adds_new_slots(self, generator, repository, make_template):
        template = make_template(scheduled_for=START)

        generator.generate_instances(template, datetime(2025, 1, 3, 9, 0, tzinfo=UTC))
        created = generator.generate_instances(template, datetime(2025, 1, 5, 9, 0, tzinfo=UTC))

        assert len(created) == 2
        assert len(scheduled_times(repository, template.schedule_id)) == 4

    def test_instances_are_scheduled_members_of_series(self, generator, repository, make_template):
        template = make_template(scheduled_for=START, max_occurrences=1)

        [instance_id] = generator.generate_instances(template, HORIZON)
        instance = repository.find_by_id(instance_id)

        assert instance.status == NotificationStatus.SCHEDULED
        assert instance.schedule_id == template.schedule_id
        assert instance.parent_notification_id == template.id
        assert instance.recurring_instance is True
        assert instance.idempotency_key == occurrence_key(
            template.schedule_id, datetime(2025, 1, 2, 9, 0, tzinfo=UTC)
        )

    def test_end_date_is_inclusive(self, generator, repository, make_template):
        template = make_template(
            scheduled_for=START, end_date=datetime(2025, 1, 3, 9, 0, tzinfo=UTC)
        )

        generator.generate_instances(template, HORIZON)

        assert scheduled_times(repository, template.schedule_id) == [
            datetime(2025, 1, 2, 9, 0, tzinfo=UTC),
            datetime(2025, 1, 3, 9, 0, tzinfo=UTC),
        ]

    def test_monthly_series_clamps_to_month_end(self, generator, repository, make_template):
        template = make_template(
            scheduled_for=datetime(2025, 1, 31, 9, 0, tzinfo=UTC),
            frequency=RecurrenceFrequency.MONTHS,
        )

        generator.generate_instances(template, datetime(2025, 4, 30, 23, 0, tzinfo=UTC))

        assert scheduled_times(repository, template.schedule_id) == [
            datetime(2025, 2, 28, 9, 0, tzinfo=UTC),
            datetime(2025, 3, 28, 9, 0, tzinfo=UTC),
            datetime(2025, 4, 28, 9, 0, tzinfo=UTC),
        ]

    def test_template_is_not_modified(self, generator, repository, make_template):
        template = make_template(scheduled_for=START, max_occurrences=2)
        before = repository.find_by_id(template.id).to_dict()

        generator.generate_instances(template, HORIZON)

        assert repository.find_by_id(template.id).to_dict() == before

    def test_inactive_series_generates_nothing(self, generator, repository, make_template):
        template = make_template(scheduled_for=START, recurring_active=False)

        assert generator.generate_instances(template, HORIZON) == []
        assert len(repository) == 1

    def test_missing_config_raises(self, generator, make_notification):
        template = make_notification(
            scheduled_for=START, is_recurring=True, recurring_active=True
        )

        with pytest.raises(MissingConfigurationError):
            generator.generate_instances(template, HORIZON)

    def test_naive_horizon_raises(self, generator, make_template):
        template = make_template(scheduled_for=START)

        with pytest.raises(InvalidDataError):
            generator.generate_instances(template, datetime(2025, 1, 10))

    def test_concurrent_insert_counts_as_existing(self, generator, repository, make_template):
        """A slot created by another worker after the lookup is not reported."""
        template = make_template(scheduled_for=START, max_occurrences=2)
        original_create = repository.create
        calls = []

        def racing_create(draft):
            calls.append(draft.idempotency_key)
            if len(calls) == 1:
                original_create(draft)
                raise DuplicateNotificationError(draft.idempotency_key, None)
            return original_create(draft)

        with patch.object(repository, "create", side_effect=racing_create):
            created = generator.generate_instances(template, HORIZON)

        assert len(created) == 1
        assert len(scheduled_times(repository, template.schedule_id)) == 2

    def test_offset_template_stays_idempotent(self, generator, repository, make_template):
        """A template scheduled in local time generates the same slots on every run."""
        local_start = datetime(2025, 1, 1, 11, 0, tzinfo=timezone(timedelta(hours=2)))
        template = make_template(scheduled_for=local_start, max_occurrences=3)

        generator.generate_instances(template, HORIZON)
        stored = repository.find_by_id(template.id)
        second = generator.generate_instances(stored, HORIZON)

        assert second == []
        assert scheduled_times(repository, template.schedule_id)[0] == datetime(
            2025, 1, 2, 9, 0, tzinfo=UTC
        )
