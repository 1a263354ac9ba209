"""Tests for the scheduling facade."""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest

from csr_notifications.core.config import SchedulingConfig
from csr_notifications.core.errors import NotFoundError
from csr_notifications.modules.notification.application.services import (
    NotificationSchedulingService,
)
from csr_notifications.modules.notification.domain.enums import (
    NotificationChannel,
    NotificationStatus,
    RecurrenceFrequency,
)
from csr_notifications.modules.notification.domain.errors import (
    DuplicateNotificationError,
    InvalidConfigurationError,
    InvalidDataError,
    InvalidStateError,
    InvalidTimeError,
    NotificationNotFoundError,
    SchedulingFailedError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    NotificationFilters,
)


def schedule(service, clock, **overrides):
    fields = {
        "recipient_id": "donor-1",
        "title": "Monthly impact report",
        "message": "See what your donations achieved",
        "notification_type": "impact_report",
        "scheduled_for": clock() + timedelta(hours=1),
        "channel": NotificationChannel.EMAIL,
    }
    fields.update(overrides)
    return service.schedule_notification(**fields)


class TestScheduleNotification:
    """Test suite for the scheduled creation path."""

    def test_one_off(self, scheduling_service, repository, clock):
        notification = schedule(
            scheduling_service, clock, delivery_options={"reply_to": "team@example.org"}
        )

        stored = repository.find_by_id(notification.id)
        assert stored.status == NotificationStatus.SCHEDULED
        assert stored.is_recurring is False
        assert stored.schedule_id is None
        assert stored.metadata["delivery_options"] == {"reply_to": "team@example.org"}

    def test_recurring_gets_series_id(self, scheduling_service, clock):
        notification = schedule(
            scheduling_service, clock, recurrence={"frequency": "weeks", "interval": 1}
        )

        assert notification.is_recurring is True
        assert notification.recurring_active is True
        assert notification.schedule_id
        assert notification.recurrence.frequency is RecurrenceFrequency.WEEKS
        assert notification.recurrence.max_occurrences == 100

    def test_recurring_keeps_given_series_id(self, scheduling_service, clock):
        notification = schedule(
            scheduling_service,
            clock,
            recurrence={"frequency": "days"},
            schedule_id="receipts-2025",
        )

        assert notification.schedule_id == "receipts-2025"

    @pytest.mark.parametrize(
        "scheduled_for",
        [
            datetime(2025, 1, 10, 8, 0, tzinfo=UTC),
            datetime(2025, 1, 9, 8, 0, tzinfo=UTC),
            datetime(2026, 1, 11, 8, 0, tzinfo=UTC),
            datetime(2025, 1, 11, 8, 0),
        ],
    )
    def test_rejects_out_of_range_time(self, scheduling_service, clock, scheduled_for):
        """Now, past, over a year ahead and naive times are rejected."""
        with pytest.raises(InvalidTimeError):
            schedule(scheduling_service, clock, scheduled_for=scheduled_for)

    def test_rejects_blank_title(self, scheduling_service, clock):
        with pytest.raises(InvalidDataError):
            schedule(scheduling_service, clock, title=" ")

    def test_rejects_malformed_recurrence(self, scheduling_service, clock):
        with pytest.raises(InvalidConfigurationError):
            schedule(scheduling_service, clock, recurrence={"frequency": "days", "interval": 0})

    def test_idempotency_key_rejects_duplicate(self, scheduling_service, clock):
        schedule(scheduling_service, clock, idempotency_key="welcome:donor-1")

        with pytest.raises(DuplicateNotificationError):
            schedule(scheduling_service, clock, idempotency_key="welcome:donor-1")


class TestProcessAndGenerate:
    """Test suite for the batch entry points."""

    def test_process_due_uses_default_limit(self, repository, dispatcher, clock, make_due):
        service = NotificationSchedulingService(
            repository, dispatcher, config=SchedulingConfig(due_batch_limit=2), clock=clock
        )
        for minutes in (1, 2, 3):
            make_due(minutes_ago=minutes)

        assert service.process_due().total_found == 2
        assert service.process_due(limit=5).total_found == 1

    def test_claim_timeout_comes_from_config(self, repository, dispatcher, clock, make_due):
        service = NotificationSchedulingService(
            repository, dispatcher, config=SchedulingConfig(claim_timeout_minutes=3), clock=clock
        )
        in_flight = make_due()
        repository.update_by_id(
            in_flight.id,
            {"status": NotificationStatus.PROCESSING, "updated_at": clock() - timedelta(minutes=4)},
        )

        result = service.process_due()

        assert result.released == [str(in_flight.id)]
        assert result.processed == [str(in_flight.id)]

    def test_generate_recurring_for_active_templates(
        self, scheduling_service, repository, make_template
    ):
        active = make_template(scheduled_for=datetime(2025, 1, 10, 9, 0, tzinfo=UTC))
        make_template(recurring_active=False)

        result = scheduling_service.generate_recurring()

        assert result["total_recurring"] == 1
        assert result["skipped"] == []
        assert result["generation_period_end"] == "2025-01-24T08:00:00+00:00"
        # Jan 11 .. Jan 23 at 09:00 fit before the 14-day horizon
        assert len(result["generated"]) == 13
        assert repository.count_by_filters(
            NotificationFilters(schedule_id=active.schedule_id, recurring_instance=True)
        ) == 13

    def test_generated_instances_are_not_templates(self, scheduling_service, make_template):
        make_template(scheduled_for=datetime(2025, 1, 10, 9, 0, tzinfo=UTC), max_occurrences=2)

        scheduling_service.generate_recurring()
        second = scheduling_service.generate_recurring()

        assert second["total_recurring"] == 1
        assert second["generated"] == []

    def test_series_failure_is_skipped(self, scheduling_service, make_template):
        broken = make_template()
        make_template()
        original = scheduling_service.generator.generate_instances

        def fail_first(template, horizon):
            if template.id == broken.id:
                raise RuntimeError("bad series")
            return original(template, horizon)

        with patch.object(
            scheduling_service.generator, "generate_instances", side_effect=fail_first
        ):
            result = scheduling_service.generate_recurring()

        assert result["skipped"] == [{"notification_id": str(broken.id), "error": "bad series"}]
        assert result["generated"]

    def test_template_listing_failure_raises(self, scheduling_service, repository):
        with patch.object(repository, "find_by_filters", side_effect=RuntimeError("db down")):
            with pytest.raises(SchedulingFailedError):
                scheduling_service.generate_recurring()

    def test_reschedule_delegates(self, scheduling_service, repository, clock):
        notification = schedule(scheduling_service, clock)
        new_time = clock() + timedelta(days=2)

        assert scheduling_service.reschedule_notification(notification.id, new_time) is True
        assert repository.find_by_id(notification.id).scheduled_for == new_time


class TestCancellation:
    """Test suite for cancellation and series deactivation."""

    def test_cancel_one(self, scheduling_service, repository, clock):
        notification = schedule(scheduling_service, clock)

        cancelled = scheduling_service.cancel_scheduled(notification.id, "donor opted out")

        stored = repository.find_by_id(notification.id)
        assert cancelled == [str(notification.id)]
        assert stored.status == NotificationStatus.CANCELLED
        assert stored.metadata["cancellation"]["reason"] == "donor opted out"

    def test_cancel_sent_raises(self, scheduling_service, make_notification, clock):
        notification = make_notification(status=NotificationStatus.SENT, sent_at=clock())

        with pytest.raises(InvalidStateError):
            scheduling_service.cancel_scheduled(notification.id)

    def test_cancel_unknown(self, scheduling_service):
        with pytest.raises(NotificationNotFoundError):
            scheduling_service.cancel_scheduled(uuid4())

    def test_cancel_series(self, scheduling_service, repository, make_template, clock):
        template = make_template(scheduled_for=datetime(2025, 1, 10, 9, 0, tzinfo=UTC))
        scheduling_service.generate_instances(template, clock() + timedelta(days=3, hours=2))

        cancelled = scheduling_service.cancel_scheduled(template.id, cancel_series=True)

        assert len(cancelled) == 4
        assert repository.find_by_id(template.id).recurring_active is False
        assert repository.count_by_filters(
            NotificationFilters(
                schedule_id=template.schedule_id, status=NotificationStatus.SCHEDULED
            )
        ) == 0

    def test_deactivate_series_keeps_instances(
        self, scheduling_service, repository, make_template, clock
    ):
        template = make_template(scheduled_for=datetime(2025, 1, 10, 9, 0, tzinfo=UTC))
        scheduling_service.generate_instances(template, clock() + timedelta(days=3, hours=2))

        assert scheduling_service.deactivate_series(template.schedule_id) == 1

        stored = repository.find_by_id(template.id)
        assert stored.recurring_active is False
        assert scheduling_service.generate_instances(stored, clock() + timedelta(days=10)) == []
        assert repository.count_by_filters(
            NotificationFilters(
                schedule_id=template.schedule_id,
                recurring_instance=True,
                status=NotificationStatus.SCHEDULED,
            )
        ) == 3

    def test_deactivate_unknown_series(self, scheduling_service):
        with pytest.raises(NotFoundError):
            scheduling_service.deactivate_series("missing-series")

    def test_cancel_series_without_explicit_id(
        self, scheduling_service, repository, make_template, clock
    ):
        """A series keyed by its template ID cancels the template too."""
        template = make_template(
            scheduled_for=datetime(2025, 1, 10, 9, 0, tzinfo=UTC), schedule_id=None
        )
        scheduling_service.generate_instances(template, clock() + timedelta(days=3, hours=2))

        cancelled = scheduling_service.cancel_scheduled(template.id, cancel_series=True)

        stored = repository.find_by_id(template.id)
        assert len(cancelled) == 4
        assert str(template.id) in cancelled
        assert stored.status == NotificationStatus.CANCELLED
        assert stored.recurring_active is False
        assert repository.count_by_filters(
            NotificationFilters(schedule_id=str(template.id), status=NotificationStatus.SCHEDULED)
        ) == 0

    def test_cancel_series_from_instance_without_explicit_id(
        self, scheduling_service, repository, make_template, clock
    ):
        template = make_template(
            scheduled_for=datetime(2025, 1, 10, 9, 0, tzinfo=UTC), schedule_id=None
        )
        instance_ids = scheduling_service.generate_instances(
            template, clock() + timedelta(days=3, hours=2)
        )

        cancelled = scheduling_service.cancel_scheduled(instance_ids[0], cancel_series=True)

        assert len(cancelled) == 4
        assert repository.find_by_id(template.id).recurring_active is False

    def test_deactivate_series_by_template_id(self, scheduling_service, repository, make_template):
        template = make_template(schedule_id=None)

        assert scheduling_service.deactivate_series(str(template.id)) == 1
        assert repository.find_by_id(template.id).recurring_active is False


class TestSchedulingStats:
    """Test suite for scheduling health counts."""

    def test_stats(self, scheduling_service, make_due, make_template):
        make_due(minutes_ago=5)
        make_due(minutes_ago=90)
        make_due(minutes_ago=-30)
        make_due(minutes_ago=-180)
        make_template(scheduled_for=datetime(2025, 1, 11, 9, 0, tzinfo=UTC))

        stats = scheduling_service.get_scheduling_stats()

        assert stats == {
            "due_now": 2,
            "due_next_hour": 1,
            "due_next_24_hours": 2,
            "active_recurring": 1,
            "overdue": 1,
            "processing": 0,
        }

    def test_stats_count_open_claims(self, scheduling_service, make_due):
        make_due(status=NotificationStatus.PROCESSING)
        make_due()

        stats = scheduling_service.get_scheduling_stats()

        assert stats["processing"] == 1
        assert stats["due_now"] == 1

    def test_overdue_threshold_is_strict(self, scheduling_service, make_due):
        make_due(minutes_ago=60)

        assert scheduling_service.get_scheduling_stats()["overdue"] == 0

    def test_count_due(self, scheduling_service, make_due):
        make_due()
        make_due(minutes_ago=-1)

        assert scheduling_service.count_due() == 1
