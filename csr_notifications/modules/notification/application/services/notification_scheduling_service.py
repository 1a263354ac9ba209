"""Notification scheduling service.

Application facade over the scheduling engine: the creation path for
scheduled and recurring notifications, due processing, recurring generation,
rescheduling, cancellation and scheduling health statistics.
"""

import time
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from csr_notifications.core.clock import Clock, ensure_aware, utc_now
from csr_notifications.core.config import SchedulingConfig
from csr_notifications.core.errors import CsrError, NotFoundError
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.application.services.due_notification_processor import (
    DueNotificationProcessor,
    DueProcessingResult,
)
from csr_notifications.modules.notification.application.services.recurrence_generator import (
    RecurrenceGenerator,
)
from csr_notifications.modules.notification.application.services.rescheduler import (
    Rescheduler,
)
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
    NotificationDraft,
    RecipientId,
)
from csr_notifications.modules.notification.domain.enums import (
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from csr_notifications.modules.notification.domain.errors import (
    InvalidDataError,
    InvalidStateError,
    InvalidTimeError,
    NotificationNotFoundError,
    SchedulingFailedError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
    NotificationFilters,
)
from csr_notifications.modules.notification.domain.interfaces.services import (
    INotificationDispatcher,
)
from csr_notifications.modules.notification.domain.value_objects import (
    RecurrenceConfig,
)

logger = get_logger(__name__)

TEMPLATE_STATUSES = (NotificationStatus.SCHEDULED, NotificationStatus.SENT)
CANCELLABLE_STATUSES = (NotificationStatus.PENDING, NotificationStatus.SCHEDULED)


class NotificationSchedulingService:
    """
    Application service for notification scheduling.

    Composes the recurrence generator, due processor and rescheduler over one
    repository and clock.
    """

    def __init__(
        self,
        repository: INotificationRepository,
        dispatcher: INotificationDispatcher,
        config: SchedulingConfig | None = None,
        clock: Clock = utc_now,
    ):
        """
        Initialize scheduling service.

        Args:
            repository: Notification store
            dispatcher: Channel transport used for due notifications
            config: Scheduling limits and defaults
            clock: Time source
        """
        self.repository = repository
        self.config = config or SchedulingConfig()
        self.clock = clock

        self.generator = RecurrenceGenerator(repository, clock)
        self.processor = DueNotificationProcessor(
            repository,
            dispatcher,
            clock,
            claim_before_dispatch=self.config.claim_before_dispatch,
            claim_timeout=timedelta(minutes=self.config.claim_timeout_minutes),
        )
        self.rescheduler = Rescheduler(repository, clock)

    def schedule_notification(
        self,
        recipient_id: RecipientId,
        title: str,
        message: str,
        notification_type: str,
        scheduled_for: datetime,
        channel: NotificationChannel = NotificationChannel.DATABASE,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        sender_id: RecipientId | None = None,
        data: dict[str, Any] | None = None,
        delivery_options: dict[str, Any] | None = None,
        recurrence: RecurrenceConfig | dict[str, Any] | None = None,
        schedule_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> Notification:
        """
        Create a notification due at ``scheduled_for``.

        Passing ``recurrence`` makes the notification the template of a new
        recurring series; a series ID is assigned unless one is given.

        Raises:
            InvalidDataError: If content is empty
            InvalidTimeError: If ``scheduled_for`` is naive, not in the future,
                or further ahead than ``max_schedule_ahead_days``
            InvalidConfigurationError: If ``recurrence`` is malformed
            DuplicateNotificationError: If ``idempotency_key`` is already used
        """
        if not title or not title.strip():
            raise InvalidDataError("Title cannot be empty", field="title")
        if not message or not message.strip():
            raise InvalidDataError("Message cannot be empty", field="message")

        now = self.clock()
        self._validate_schedule_time(scheduled_for, now)

        if isinstance(recurrence, dict):
            recurrence = RecurrenceConfig.from_dict(
                {"max_occurrences": self.config.default_max_occurrences, **recurrence}
            )

        is_recurring = recurrence is not None
        metadata: dict[str, Any] = {}
        if delivery_options:
            metadata["delivery_options"] = dict(delivery_options)

        notification = self.repository.create(
            NotificationDraft(
                recipient_id=recipient_id,
                title=title,
                message=message,
                notification_type=notification_type,
                channel=channel,
                priority=priority,
                sender_id=sender_id,
                data=data or {},
                metadata=metadata,
                scheduled_for=scheduled_for,
                status=NotificationStatus.SCHEDULED,
                schedule_id=(schedule_id or str(uuid4())) if is_recurring else schedule_id,
                recurrence=recurrence,
                is_recurring=is_recurring,
                recurring_active=is_recurring,
                idempotency_key=idempotency_key,
            )
        )

        logger.info(
            "Notification scheduled",
            notification_id=str(notification.id),
            scheduled_for=scheduled_for.isoformat(),
            channel=channel.value,
            is_recurring=is_recurring,
            schedule_id=notification.schedule_id,
        )

        return notification

    def _validate_schedule_time(self, scheduled_for: datetime, now: datetime) -> None:
        if not ensure_aware(scheduled_for):
            raise InvalidTimeError(
                "Scheduled time must be timezone-aware", requested_time=scheduled_for
            )
        if scheduled_for <= now:
            raise InvalidTimeError(
                "Scheduled time must be in the future", requested_time=scheduled_for
            )
        if scheduled_for > now + timedelta(days=self.config.max_schedule_ahead_days):
            raise InvalidTimeError(
                f"Cannot schedule more than {self.config.max_schedule_ahead_days} days ahead",
                requested_time=scheduled_for,
            )

    def process_due(self, limit: int | None = None) -> DueProcessingResult:
        """Dispatch due notifications; ``limit`` defaults to ``due_batch_limit``."""
        if limit is None:
            limit = self.config.due_batch_limit
        return self.processor.process_due(limit)

    def generate_instances(self, template: Notification, horizon: datetime) -> list[UUID]:
        return self.generator.generate_instances(template, horizon)

    def generate_recurring(self, horizon: datetime | None = None) -> dict[str, Any]:
        """
        Generate instances for every active recurring series.

        Args:
            horizon: Generate up to this time (default now + ``recurrence_horizon_days``)

        Returns:
            Summary with created instance IDs and per-series failures

        Raises:
            SchedulingFailedError: If series templates cannot be listed
        """
        started = time.perf_counter()
        horizon = horizon or self.clock() + timedelta(days=self.config.recurrence_horizon_days)

        try:
            templates = self.repository.find_by_filters(
                NotificationFilters(
                    statuses=TEMPLATE_STATUSES,
                    is_recurring=True,
                    recurring_active=True,
                    recurring_instance=False,
                )
            )
        except Exception as e:
            logger.exception(
                "Recurring notifications generation failed",
                horizon=horizon.isoformat(),
                error=str(e),
            )
            raise SchedulingFailedError(
                "generate_recurring", f"Failed to list recurring series: {e}", cause=e
            ) from e

        generated: list[str] = []
        skipped: list[dict[str, str]] = []

        for template in templates:
            try:
                instance_ids = self.generator.generate_instances(template, horizon)
                generated.extend(str(instance_id) for instance_id in instance_ids)
            except Exception as e:
                skipped.append({"notification_id": str(template.id), "error": str(e)})
                logger.warning(
                    "Failed to generate recurring instances",
                    notification_id=str(template.id),
                    error=str(e),
                )

        execution_time_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            "Recurring notifications generation completed",
            total_recurring=len(templates),
            instances_generated=len(generated),
            skipped=len(skipped),
            generation_period_end=horizon.isoformat(),
            execution_time_ms=execution_time_ms,
        )

        return {
            "generated": generated,
            "skipped": skipped,
            "total_recurring": len(templates),
            "generation_period_end": horizon.isoformat(),
            "execution_time_ms": execution_time_ms,
        }

    def reschedule_notification(
        self, notification_id: UUID, new_time: datetime, reason: str | None = None
    ) -> bool:
        return self.rescheduler.reschedule(notification_id, new_time, reason)

    def cancel_scheduled(
        self, notification_id: UUID, reason: str | None = None, cancel_series: bool = False
    ) -> list[str]:
        """
        Cancel a pending or scheduled notification.

        With ``cancel_series`` every pending or scheduled member of the
        notification's series is cancelled and the series is deactivated.

        Returns:
            IDs of the cancelled notifications

        Raises:
            NotificationNotFoundError: If the notification does not exist
            InvalidStateError: If the notification itself cannot be cancelled
        """
        notification = self.repository.find_by_id(notification_id)
        if notification is None:
            raise NotificationNotFoundError(notification_id)

        now = self.clock()

        if not cancel_series or not notification.is_recurring:
            self._cancel_one(notification, now, reason)
            return [str(notification.id)]

        if not notification.status.is_cancellable() and not notification.is_template:
            raise InvalidStateError(
                f"Cannot cancel notification in {notification.status.value} status",
                notification_id=notification.id,
                current_status=notification.status.value,
            )

        members = self.repository.find_by_filters(
            NotificationFilters(
                schedule_id=notification.series_key,
                statuses=CANCELLABLE_STATUSES,
                order_by="scheduled_for",
            )
        )
        known = {member.id for member in members}
        members.extend(
            template
            for template in self._find_series_templates(notification.series_key)
            if template.id not in known and template.status in CANCELLABLE_STATUSES
        )

        cancelled = []
        for member in members:
            try:
                self._cancel_one(member, now, reason)
                cancelled.append(str(member.id))
            except InvalidStateError:
                # Claimed by a worker between the lookup and the update
                logger.debug("Series member no longer cancellable", notification_id=str(member.id))

        self.deactivate_series(notification.series_key)

        logger.info(
            "Recurring series cancelled",
            schedule_id=notification.series_key,
            cancelled=len(cancelled),
            reason=reason,
        )
        return cancelled

    def _cancel_one(self, notification: Notification, now: datetime, reason: str | None) -> None:
        previous_status = notification.status
        notification.cancel(now, reason)

        updated = self.repository.update_by_id(
            notification.id,
            {
                "status": notification.status,
                "metadata": notification.metadata,
                "updated_at": now,
            },
            expected_status=previous_status,
        )
        if not updated:
            raise InvalidStateError(
                "Notification changed status while being cancelled",
                notification_id=notification.id,
                current_status=previous_status.value,
            )

        logger.info(
            "Notification cancelled",
            notification_id=str(notification.id),
            reason=reason,
        )

    def deactivate_series(self, schedule_id: str) -> int:
        """
        Stop future generation for a series.

        Instances already materialized are left untouched.

        Returns:
            Number of series templates deactivated

        Raises:
            NotFoundError: If no template exists for ``schedule_id``
        """
        templates = self._find_series_templates(schedule_id)
        if not templates:
            raise NotFoundError("RecurringSeries", schedule_id)

        now = self.clock()
        for template in templates:
            template.deactivate_series(now)
            self.repository.update_by_id(
                template.id, {"recurring_active": False, "updated_at": now}
            )

        logger.info("Recurring series deactivated", schedule_id=schedule_id)
        return len(templates)

    def _find_series_templates(self, schedule_id: str) -> list[Notification]:
        templates = self.repository.find_by_filters(
            NotificationFilters(
                schedule_id=schedule_id, is_recurring=True, recurring_instance=False
            )
        )
        if templates:
            return templates

        # A series created without an explicit ID is keyed by its template ID
        try:
            template = self.repository.find_by_id(UUID(schedule_id))
        except ValueError:
            return []
        return [template] if template is not None and template.is_template else []

    def count_due(self) -> int:
        return self.repository.count_by_filters(
            NotificationFilters(
                status=NotificationStatus.SCHEDULED, scheduled_for_lte=self.clock()
            )
        )

    def get_scheduling_stats(self) -> dict[str, int]:
        """
        Scheduling health counts.

        ``overdue`` counts scheduled notifications more than
        ``overdue_threshold_minutes`` past their time; ``processing`` counts
        claims not yet resolved.
        """
        now = self.clock()
        scheduled = NotificationStatus.SCHEDULED

        try:
            return {
                "due_now": self.count_due(),
                "due_next_hour": self.repository.count_by_filters(
                    NotificationFilters(
                        status=scheduled,
                        scheduled_for_gte=now,
                        scheduled_for_lte=now + timedelta(hours=1),
                    )
                ),
                "due_next_24_hours": self.repository.count_by_filters(
                    NotificationFilters(
                        status=scheduled,
                        scheduled_for_gte=now,
                        scheduled_for_lte=now + timedelta(days=1),
                    )
                ),
                "active_recurring": self.repository.count_by_filters(
                    NotificationFilters(
                        is_recurring=True, recurring_active=True, recurring_instance=False
                    )
                ),
                "overdue": self.repository.count_by_filters(
                    NotificationFilters(
                        status=scheduled,
                        scheduled_for_lt=now
                        - timedelta(minutes=self.config.overdue_threshold_minutes),
                    )
                ),
                "processing": self.repository.count_by_filters(
                    NotificationFilters(status=NotificationStatus.PROCESSING)
                ),
            }
        except CsrError:
            raise
        except Exception as e:
            raise SchedulingFailedError("get_scheduling_stats", str(e), cause=e) from e


__all__ = ["NotificationSchedulingService"]
