"""Tests for the Notification entity lifecycle."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from csr_notifications.core.errors import ValidationError
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
    NotificationDraft,
)
from csr_notifications.modules.notification.domain.enums import (
    NotificationStatus,
    RecurrenceFrequency,
)
from csr_notifications.modules.notification.domain.errors import (
    InvalidStateError,
    InvalidTimeError,
    MissingConfigurationError,
)
from csr_notifications.modules.notification.domain.value_objects import (
    RecurrenceConfig,
)

NOW = datetime(2025, 1, 10, 8, 0, tzinfo=UTC)


def build(**overrides):
    fields = {
        "recipient_id": "donor-1",
        "title": "Campaign update",
        "message": "Your campaign reached 50%",
        "notification_type": "campaign_update",
        "created_at": NOW - timedelta(hours=1),
    }
    fields.update(overrides)
    return Notification(**fields)


class TestNotificationCreation:
    """Test suite for entity construction."""

    def test_status_derived_from_scheduled_for(self):
        """A scheduled time makes the notification scheduled."""
        assert build().status == NotificationStatus.PENDING
        assert build(scheduled_for=NOW + timedelta(hours=1)).status == NotificationStatus.SCHEDULED

    @pytest.mark.parametrize("field", ["title", "message", "notification_type"])
    def test_rejects_blank_content(self, field):
        with pytest.raises(ValidationError):
            build(**{field: "   "})

    def test_rejects_read_marker_before_sending(self):
        with pytest.raises(ValidationError):
            build(status=NotificationStatus.SCHEDULED, read_at=NOW)

    def test_rejects_pending_with_future_time(self):
        with pytest.raises(ValidationError):
            build(status=NotificationStatus.PENDING, scheduled_for=NOW + timedelta(days=1))

    def test_from_draft_copies_fields(self):
        draft = NotificationDraft(
            recipient_id="donor-2",
            title="Receipt",
            message="Your receipt is ready",
            notification_type="receipt",
            scheduled_for=NOW + timedelta(hours=2),
            idempotency_key="receipt:42",
        )

        notification = Notification.from_draft(draft, created_at=NOW)

        assert notification.recipient_id == "donor-2"
        assert notification.status == NotificationStatus.SCHEDULED
        assert notification.idempotency_key == "receipt:42"
        assert notification.created_at == NOW

    def test_times_are_stored_in_utc(self):
        local = datetime(2025, 1, 11, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        notification = build(scheduled_for=local, created_at=local - timedelta(days=2))

        assert notification.scheduled_for == datetime(2025, 1, 11, 10, 0, tzinfo=UTC)
        assert notification.scheduled_for.utcoffset() == timedelta(0)
        assert notification.created_at.utcoffset() == timedelta(0)


class TestNotificationTransitions:
    """Test suite for lifecycle transitions."""

    def test_mark_sent_records_time_and_provider_id(self):
        notification = build(scheduled_for=NOW - timedelta(minutes=1))

        notification.mark_sent(NOW, provider_message_id="sg-123")

        assert notification.status == NotificationStatus.SENT
        assert notification.sent_at == NOW
        assert notification.metadata["provider_message_id"] == "sg-123"
        assert notification.updated_at == NOW

    def test_mark_failed_records_reason(self):
        notification = build(scheduled_for=NOW - timedelta(minutes=1))

        notification.mark_failed(NOW, "mailbox full")

        assert notification.status == NotificationStatus.FAILED
        assert notification.metadata["failure"]["reason"] == "mailbox full"

    def test_invalid_transition_raises(self):
        notification = build(status=NotificationStatus.SENT, sent_at=NOW)

        with pytest.raises(InvalidStateError):
            notification.transition_to(NotificationStatus.SCHEDULED, NOW)

    def test_cancel_sent_notification_raises(self):
        notification = build(status=NotificationStatus.SENT, sent_at=NOW)

        with pytest.raises(InvalidStateError):
            notification.cancel(NOW)

    def test_cancel_records_reason(self):
        notification = build(scheduled_for=NOW + timedelta(hours=1))

        notification.cancel(NOW, "campaign ended")

        assert notification.status == NotificationStatus.CANCELLED
        assert notification.metadata["cancellation"]["reason"] == "campaign ended"

    def test_is_due(self):
        due = build(scheduled_for=NOW - timedelta(seconds=1))
        later = build(scheduled_for=NOW + timedelta(seconds=1))

        assert due.is_due(NOW)
        assert not later.is_due(NOW)


class TestNotificationReschedule:
    """Test suite for rescheduling on the entity."""

    def test_reschedule_appends_history(self):
        original = NOW + timedelta(hours=1)
        notification = build(scheduled_for=original)

        first = notification.reschedule(NOW + timedelta(hours=3), NOW, "donor request")
        notification.reschedule(NOW + timedelta(hours=5), NOW)

        assert len(notification.reschedule_history) == 2
        assert notification.reschedule_history[0] == first
        assert first.previous_scheduled_for == original
        assert notification.scheduled_for == NOW + timedelta(hours=5)

    def test_reschedule_pending_becomes_scheduled(self):
        notification = build()

        notification.reschedule(NOW + timedelta(hours=1), NOW)

        assert notification.status == NotificationStatus.SCHEDULED

    def test_reschedule_to_past_raises(self):
        notification = build(scheduled_for=NOW + timedelta(hours=1))

        with pytest.raises(InvalidTimeError):
            notification.reschedule(NOW - timedelta(minutes=1), NOW)

        assert notification.reschedule_history == []


class TestRecurringSeries:
    """Test suite for series template behaviour."""

    def test_require_recurrence_without_config(self):
        template = build(is_recurring=True, scheduled_for=NOW + timedelta(days=1))

        with pytest.raises(MissingConfigurationError):
            template.require_recurrence()

    def test_series_key_falls_back_to_id(self):
        template = build(is_recurring=True)

        assert template.series_key == str(template.id)
        assert build(schedule_id="weekly-report").series_key == "weekly-report"

    def test_build_instance_does_not_touch_template(self):
        template = build(
            scheduled_for=NOW + timedelta(days=1),
            schedule_id="series-1",
            recurrence=RecurrenceConfig(RecurrenceFrequency.DAYS),
            is_recurring=True,
            recurring_active=True,
            metadata={"delivery_options": {"reply_to": "team@example.org"}},
        )
        before = template.to_dict()

        draft = template.build_instance(NOW + timedelta(days=2), generated_at=NOW)

        assert template.to_dict() == before
        assert draft.schedule_id == "series-1"
        assert draft.parent_notification_id == template.id
        assert draft.recurring_instance is True
        assert draft.recurrence is None
        assert draft.status == NotificationStatus.SCHEDULED
        assert draft.metadata["delivery_options"] == {"reply_to": "team@example.org"}
