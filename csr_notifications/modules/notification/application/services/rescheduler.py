"""Rescheduler: moves a pending or scheduled notification to a new time."""

from datetime import datetime
from uuid import UUID

from csr_notifications.core.clock import Clock, ensure_aware, utc_now
from csr_notifications.core.errors import CsrError
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.domain.errors import (
    InvalidStateError,
    InvalidTimeError,
    NotificationNotFoundError,
    SchedulingFailedError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
)

logger = get_logger(__name__)


class Rescheduler:
    """Reschedules notifications and keeps their audit trail."""

    def __init__(self, repository: INotificationRepository, clock: Clock = utc_now):
        self.repository = repository
        self.clock = clock

    def reschedule(
        self, notification_id: UUID, new_time: datetime, reason: str | None = None
    ) -> bool:
        """
        Move a notification to ``new_time``.

        A history entry is appended; earlier entries are kept.

        Raises:
            NotificationNotFoundError: If the notification does not exist
            InvalidStateError: If it is not pending or scheduled, or changed
                status while being rescheduled
            InvalidTimeError: If ``new_time`` is naive or not in the future
            SchedulingFailedError: If the store fails unexpectedly
        """
        if not ensure_aware(new_time):
            raise InvalidTimeError(
                "New scheduled time must be timezone-aware", requested_time=new_time
            )

        now = self.clock()

        try:
            notification = self.repository.find_by_id(notification_id)
        except Exception as e:
            raise SchedulingFailedError(
                "reschedule", str(e), details={"notification_id": str(notification_id)}, cause=e
            ) from e

        if notification is None:
            raise NotificationNotFoundError(notification_id)

        previous_status = notification.status
        entry = notification.reschedule(new_time, now, reason)

        try:
            updated = self.repository.update_by_id(
                notification.id,
                {
                    "scheduled_for": notification.scheduled_for,
                    "status": notification.status,
                    "reschedule_history": notification.reschedule_history,
                    "updated_at": now,
                },
                expected_status=previous_status,
            )
        except CsrError:
            raise
        except Exception as e:
            logger.exception(
                "Failed to persist reschedule",
                notification_id=str(notification_id),
                error=str(e),
            )
            raise SchedulingFailedError(
                "reschedule", str(e), details={"notification_id": str(notification_id)}, cause=e
            ) from e

        if not updated:
            raise InvalidStateError(
                "Notification changed status while being rescheduled",
                notification_id=notification.id,
                current_status=previous_status.value,
            )

        logger.info(
            "Notification rescheduled",
            notification_id=str(notification_id),
            previous_scheduled_for=entry.previous_scheduled_for.isoformat()
            if entry.previous_scheduled_for
            else None,
            new_scheduled_for=new_time.isoformat(),
            reason=entry.reason,
            history_length=len(notification.reschedule_history),
        )

        return True


__all__ = ["Rescheduler"]
