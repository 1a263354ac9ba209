"""Due-notification processor.

Finds scheduled notifications whose time has passed and hands each one to the
dispatcher. Every item is claimed with an atomic ``scheduled -> processing``
transition before dispatch, so two workers polling the same store never send
the same notification twice. A claim whose outcome was never written (the
worker died, or the outcome update failed) is released back to ``scheduled``
once it is older than the claim timeout, so the item is retried.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from csr_notifications.core.clock import Clock, utc_now
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
)
from csr_notifications.modules.notification.domain.enums import NotificationStatus
from csr_notifications.modules.notification.domain.errors import (
    InvalidDataError,
    SchedulingFailedError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
    NotificationFilters,
)
from csr_notifications.modules.notification.domain.interfaces.services import (
    DispatchResult,
    INotificationDispatcher,
)

logger = get_logger(__name__)


@dataclass
class DueProcessingResult:
    """Summary of one ``process_due`` batch."""

    processed: list[str] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    released: list[str] = field(default_factory=list)
    recurring: int = 0
    total_found: int = 0
    execution_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": list(self.processed),
            "failed": list(self.failed),
            "skipped": list(self.skipped),
            "released": list(self.released),
            "recurring": self.recurring,
            "total_found": self.total_found,
            "execution_time_ms": self.execution_time_ms,
        }


class DueNotificationProcessor:
    """Drives due scheduled notifications to delivery in bounded batches."""

    def __init__(
        self,
        repository: INotificationRepository,
        dispatcher: INotificationDispatcher,
        clock: Clock = utc_now,
        claim_before_dispatch: bool = True,
        claim_timeout: timedelta = timedelta(minutes=15),
    ):
        self.repository = repository
        self.dispatcher = dispatcher
        self.clock = clock
        self.claim_before_dispatch = claim_before_dispatch
        self.claim_timeout = claim_timeout

    def find_due(self, now: datetime, limit: int) -> list[Notification]:
        """Load at most ``limit`` due notifications, oldest first.

        Raises:
            SchedulingFailedError: If the repository cannot be queried
        """
        try:
            return self.repository.find_by_filters(
                NotificationFilters(
                    status=NotificationStatus.SCHEDULED,
                    scheduled_for_lte=now,
                    order_by="scheduled_for",
                ),
                limit=limit,
            )
        except Exception as e:
            logger.exception("Due notification query failed", limit=limit, error=str(e))
            raise SchedulingFailedError(
                "process_due", f"Failed to query due notifications: {e}", cause=e
            ) from e

    def release_stale_claims(self, now: datetime) -> list[str]:
        """Return claims older than ``claim_timeout`` to ``scheduled``.

        Raises:
            SchedulingFailedError: If the repository cannot be queried
        """
        if not self.claim_before_dispatch:
            return []

        try:
            stale = self.repository.find_by_filters(
                NotificationFilters(
                    status=NotificationStatus.PROCESSING,
                    updated_to=now - self.claim_timeout,
                    order_by="scheduled_for",
                )
            )
        except Exception as e:
            logger.exception("Stale claim query failed", error=str(e))
            raise SchedulingFailedError(
                "process_due", f"Failed to query stale claims: {e}", cause=e
            ) from e

        released: list[str] = []
        for notification in stale:
            claimed_at = notification.updated_at
            notification.transition_to(NotificationStatus.SCHEDULED, now)
            notification.metadata["claim_released"] = {
                "claimed_at": claimed_at.isoformat(),
                "released_at": now.isoformat(),
            }

            if self.repository.update_by_id(
                notification.id,
                {
                    "status": notification.status,
                    "metadata": notification.metadata,
                    "updated_at": now,
                },
                expected_status=NotificationStatus.PROCESSING,
            ):
                released.append(str(notification.id))
                logger.warning(
                    "Stale claim released",
                    notification_id=str(notification.id),
                    claimed_at=claimed_at.isoformat(),
                )

        return released

    def process_due(self, limit: int) -> DueProcessingResult:
        """
        Dispatch up to ``limit`` due notifications.

        Stale claims are released first. Dispatch failures are isolated per
        item and reported under ``failed``; items another worker claimed
        first are reported under ``skipped``.

        Raises:
            InvalidDataError: If ``limit`` is not positive
            SchedulingFailedError: If due items cannot be queried at all
        """
        if limit < 1:
            raise InvalidDataError("Limit must be at least 1", field="limit")

        started = time.perf_counter()
        now = self.clock()
        result = DueProcessingResult()

        result.released = self.release_stale_claims(now)
        due = self.find_due(now, limit)
        result.total_found = len(due)

        for notification in due:
            notification_id = str(notification.id)
            try:
                if not self._claim(notification, now):
                    result.skipped.append(notification_id)
                    logger.debug(
                        "Due notification already claimed", notification_id=notification_id
                    )
                    continue

                if notification.is_recurring:
                    result.recurring += 1
                    self._record_series_progress(notification)

                error = self._dispatch(notification, now)
                if error is None:
                    result.processed.append(notification_id)
                else:
                    result.failed.append({"notification_id": notification_id, "error": error})

            except Exception as e:
                result.failed.append({"notification_id": notification_id, "error": str(e)})
                logger.exception(
                    "Failed to process due notification",
                    notification_id=notification_id,
                    error=str(e),
                    scheduled_for=notification.scheduled_for.isoformat()
                    if notification.scheduled_for
                    else None,
                )

        result.execution_time_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            "Due notifications processing completed",
            total_found=result.total_found,
            processed=len(result.processed),
            failed=len(result.failed),
            skipped=len(result.skipped),
            released=len(result.released),
            execution_time_ms=result.execution_time_ms,
        )

        return result

    def _claim(self, notification: Notification, now: datetime) -> bool:
        if not self.claim_before_dispatch:
            return True

        claimed = self.repository.update_by_id(
            notification.id,
            {"status": NotificationStatus.PROCESSING, "updated_at": now},
            expected_status=NotificationStatus.SCHEDULED,
        )
        if claimed:
            notification.transition_to(NotificationStatus.PROCESSING, now)
        return claimed

    def _record_series_progress(self, notification: Notification) -> None:
        # Generation runs on its own cadence; dispatch only tracks the series
        logger.debug(
            "Dispatching recurring series member",
            notification_id=str(notification.id),
            schedule_id=notification.series_key,
            recurring_instance=notification.recurring_instance,
            parent_notification_id=str(notification.parent_notification_id)
            if notification.parent_notification_id
            else None,
        )

    def _dispatch(self, notification: Notification, now: datetime) -> str | None:
        """Send one notification and persist the outcome; return the failure reason."""
        delivery_options = notification.metadata.get("delivery_options", {})

        try:
            outcome = self.dispatcher.send(notification, delivery_options)
        except Exception as e:
            logger.exception(
                "Dispatcher raised", notification_id=str(notification.id), error=str(e)
            )
            outcome = DispatchResult.failed(str(e) or e.__class__.__name__)

        expected = notification.status

        if outcome.success:
            notification.mark_sent(now, outcome.provider_message_id)
            self.repository.update_by_id(
                notification.id,
                {
                    "status": notification.status,
                    "sent_at": notification.sent_at,
                    "metadata": notification.metadata,
                    "updated_at": now,
                },
                expected_status=expected,
            )
            return None

        reason = outcome.message or "Dispatch failed"
        notification.mark_failed(now, reason)
        self.repository.update_by_id(
            notification.id,
            {
                "status": notification.status,
                "metadata": notification.metadata,
                "updated_at": now,
            },
            expected_status=expected,
        )
        logger.error(
            "Notification dispatch failed",
            notification_id=str(notification.id),
            channel=notification.channel.value,
            error=reason,
        )
        return reason


__all__ = ["DueNotificationProcessor", "DueProcessingResult"]
