"""Notification scheduling background tasks."""

from typing import Any

from celery import Task

from csr_notifications.core.errors import CsrError
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.infrastructure.dependencies import (
    get_digest_service,
    get_scheduling_service,
)
from csr_notifications.tasks import celery_app

logger = get_logger(__name__)


def _error_fields(exc: BaseException) -> dict[str, Any]:
    if isinstance(exc, CsrError):
        fields = exc.to_dict(include_internal=True)
        fields.pop("message")
        fields["error_message"] = fields.pop("internal_message")
        return fields
    return {"error": exc.__class__.__name__, "error_message": str(exc)}


class NotificationTask(Task):
    """Base class for notification tasks with common functionality."""

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        """Called when task fails."""
        logger.error(
            "Notification task failed",
            task_id=task_id,
            task_name=self.name,
            **_error_fields(exc),
        )

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        """Called when task is retried."""
        logger.warning(
            "Notification task retrying",
            task_id=task_id,
            task_name=self.name,
            **_error_fields(exc),
        )


def _retry_if_retryable(task: Task, error: CsrError) -> None:
    if error.retryable:
        raise task.retry(exc=error)


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="csr_notifications.tasks.notification_tasks.process_due_notifications",
)
def process_due_notifications(self, limit: int | None = None) -> dict[str, Any]:
    """Dispatch notifications whose scheduled time has arrived."""
    try:
        result = get_scheduling_service().process_due(limit)
    except CsrError as e:
        _retry_if_retryable(self, e)
        raise

    return result.to_dict()


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="csr_notifications.tasks.notification_tasks.generate_recurring_notifications",
)
def generate_recurring_notifications(self) -> dict[str, Any]:
    """Materialise upcoming instances of every active recurring series."""
    try:
        return get_scheduling_service().generate_recurring()
    except CsrError as e:
        _retry_if_retryable(self, e)
        raise


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="csr_notifications.tasks.notification_tasks.generate_digests",
)
def generate_digests(self, digest_type: str = "daily") -> dict[str, Any]:
    """Create one digest notification per opted-in user."""
    try:
        return get_digest_service().generate_and_send(digest_type)
    except CsrError as e:
        _retry_if_retryable(self, e)
        raise


@celery_app.task(
    bind=True,
    base=NotificationTask,
    name="csr_notifications.tasks.notification_tasks.cleanup_old_digests",
)
def cleanup_old_digests(self, days_old: int | None = None) -> dict[str, Any]:
    """Delete read or delivered digests past the retention window."""
    try:
        deleted = get_digest_service().cleanup_old_digests(days_old)
    except CsrError as e:
        _retry_if_retryable(self, e)
        raise

    return {"deleted": deleted}


__all__ = [
    "cleanup_old_digests",
    "generate_digests",
    "generate_recurring_notifications",
    "process_due_notifications",
]
