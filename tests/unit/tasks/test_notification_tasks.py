"""Tests for the Celery periodic tasks, run eagerly without a broker."""

from datetime import timedelta
from unittest.mock import Mock

import pytest
from celery.exceptions import Retry
from celery.schedules import crontab

from csr_notifications.core.config import Settings
from csr_notifications.core.errors import ConfigurationError
from csr_notifications.modules.notification.application.services import (
    DIGEST_NOTIFICATION_TYPE,
)
from csr_notifications.modules.notification.domain.enums import NotificationStatus
from csr_notifications.modules.notification.domain.errors import (
    InvalidDataError,
    SchedulingFailedError,
)
from csr_notifications.modules.notification.infrastructure.dependencies import (
    configure_notification_services,
    reset_notification_services,
)
from csr_notifications.tasks import celery_app
from csr_notifications.tasks.notification_tasks import (
    _error_fields,
    _retry_if_retryable,
    cleanup_old_digests,
    generate_digests,
    generate_recurring_notifications,
    process_due_notifications,
)


@pytest.fixture
def services(repository, dispatcher, preferences, clock):
    configured = configure_notification_services(
        dispatcher,
        preferences,
        settings=Settings(),
        repository=repository,
        clock=clock,
    )
    yield configured
    reset_notification_services()


class TestBeatSchedule:
    """Test suite for the periodic driver schedule."""

    def test_entries(self):
        schedule = celery_app.conf.beat_schedule

        assert schedule["process-due-notifications"]["schedule"] == crontab()
        assert schedule["generate-recurring-notifications"]["schedule"] == crontab(minute=0)
        assert schedule["generate-daily-digests"]["args"] == ("daily",)
        assert schedule["generate-weekly-digests"]["schedule"] == crontab(
            day_of_week=1, hour=8, minute=0
        )
        assert schedule["generate-monthly-digests"]["schedule"] == crontab(
            day_of_month=1, hour=8, minute=0
        )
        assert schedule["cleanup-old-digests"]["schedule"] == crontab(hour=3, minute=0)


class TestNotificationTasks:
    """Test suite for task bodies."""

    def test_process_due(self, services, repository, make_due, dispatcher):
        notification = make_due()

        result = process_due_notifications.apply().get()

        assert result["processed"] == [str(notification.id)]
        assert repository.find_by_id(notification.id).status == NotificationStatus.SENT
        assert len(dispatcher.sent) == 1

    def test_process_due_with_limit(self, services, make_due):
        make_due(minutes_ago=1)
        make_due(minutes_ago=2)

        result = process_due_notifications.apply(kwargs={"limit": 1}).get()

        assert result["total_found"] == 1

    def test_generate_recurring(self, services, make_template, clock):
        make_template(scheduled_for=clock() + timedelta(hours=1), max_occurrences=2)

        result = generate_recurring_notifications.apply().get()

        assert result["total_recurring"] == 1
        assert len(result["generated"]) == 2

    def test_generate_digests(self, services, preferences, make_notification):
        preferences.users_by_frequency = {1: ["donor-1"]}
        make_notification(recipient_id="donor-1")

        result = generate_digests.apply(args=("daily",)).get()

        assert result["digest_type"] == "daily"
        assert [item["user_id"] for item in result["generated"]] == ["donor-1"]

    def test_cleanup_old_digests(self, services, repository, make_notification, clock):
        old_digest = make_notification(
            notification_type=DIGEST_NOTIFICATION_TYPE,
            status=NotificationStatus.DELIVERED,
            created_at=clock() - timedelta(days=45),
        )

        result = cleanup_old_digests.apply().get()

        assert result == {"deleted": 1}
        assert repository.find_by_id(old_digest.id) is None

    def test_unconfigured_services_fail(self):
        reset_notification_services()

        result = process_due_notifications.apply()

        assert result.failed()
        assert isinstance(result.result, ConfigurationError)

    def test_validation_errors_are_not_retried(self, services):
        result = generate_digests.apply(args=("yearly",))

        assert result.failed()
        assert result.result.retryable is False

    def test_retryable_errors_request_retry(self):
        task = Mock()
        task.retry.return_value = Retry()
        error = SchedulingFailedError("process_due", "db down")

        with pytest.raises(Retry):
            _retry_if_retryable(task, error)

        task.retry.assert_called_once_with(exc=error)

    def test_non_retryable_errors_propagate(self):
        task = Mock()

        _retry_if_retryable(task, InvalidDataError("Invalid digest type", field="digest_type"))

        task.retry.assert_not_called()


class TestErrorFields:
    """Test suite for task failure log fields."""

    def test_engine_error_fields(self):
        error = SchedulingFailedError("process_due", "db down")
        error.details["password"] = "hunter2"

        fields = _error_fields(error)

        assert fields["error"] == error.code
        assert fields["error_message"] == error.message
        assert fields["retryable"] is True
        assert fields["error_id"] == error.error_id
        assert fields["details"]["password"] == "***REDACTED***"
        assert "message" not in fields

    def test_foreign_error_fields(self):
        assert _error_fields(RuntimeError("boom")) == {
            "error": "RuntimeError",
            "error_message": "boom",
        }
