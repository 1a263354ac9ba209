"""Recurrence generator.

Materializes the future members of a recurring series up to a horizon. Each
occurrence slot has a deterministic idempotency key built from the series
identifier and the slot time, so repeated runs (or two workers racing) never
create the same slot twice.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from csr_notifications.core.clock import Clock, ensure_aware, utc_now
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
)
from csr_notifications.modules.notification.domain.errors import (
    DuplicateNotificationError,
    InvalidDataError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
    NotificationFilters,
)
from csr_notifications.modules.notification.domain.value_objects import (
    RecurrenceConfig,
)

logger = get_logger(__name__)


def occurrence_key(series_key: str, occurrence_at: datetime) -> str:
    """Idempotency key identifying one slot of a series, independent of offset."""
    return f"recurrence:{series_key}:{occurrence_at.astimezone(UTC).isoformat()}"


class RecurrenceGenerator:
    """
    Generates recurring notification instances.

    Generation never mutates the series template. Every slot walked from the
    template's own time counts toward ``max_occurrences`` whether it was
    created now or found already present, so the bound holds across runs.
    """

    def __init__(self, repository: INotificationRepository, clock: Clock = utc_now):
        self.repository = repository
        self.clock = clock

    @staticmethod
    def calculate_next_occurrence(
        current_time: datetime, config: RecurrenceConfig | dict[str, Any]
    ) -> datetime:
        """
        Add one interval of the configured frequency to ``current_time``.

        Args:
            current_time: Time of the current occurrence
            config: Recurrence rule, or its raw mapping form

        Returns:
            The next occurrence, strictly after ``current_time``

        Raises:
            InvalidConfigurationError: If the frequency or interval is not recognized
        """
        if not isinstance(config, RecurrenceConfig):
            config = RecurrenceConfig.from_dict(config)
        return config.next_occurrence(current_time)

    def generate_instances(self, template: Notification, horizon: datetime) -> list[UUID]:
        """
        Create every missing instance of ``template``'s series up to ``horizon``.

        Args:
            template: Series template carrying the recurrence rule
            horizon: Latest time an instance may be scheduled for (inclusive)

        Returns:
            IDs of the instances created by this call; slots that already
            existed are not reported

        Raises:
            MissingConfigurationError: If the template has no recurrence rule
            InvalidDataError: If ``horizon`` is naive
        """
        config = template.require_recurrence()

        if not ensure_aware(horizon):
            raise InvalidDataError("Horizon must be timezone-aware", field="horizon")

        if not template.recurring_active:
            logger.debug(
                "Series inactive, skipping generation",
                notification_id=str(template.id),
                schedule_id=template.series_key,
            )
            return []

        now = self.clock()
        series_key = template.series_key
        created: list[UUID] = []
        existing = 0
        instance_count = 0

        next_time = self.calculate_next_occurrence(template.scheduled_for or now, config)

        while (
            next_time <= horizon
            and instance_count < config.max_occurrences
            and config.allows(next_time)
        ):
            key = occurrence_key(series_key, next_time)

            if self._instance_exists(key):
                existing += 1
            else:
                instance_id = self._create_instance(template, next_time, key, now)
                if instance_id is None:
                    existing += 1
                else:
                    created.append(instance_id)

            instance_count += 1
            next_time = self.calculate_next_occurrence(next_time, config)

        logger.info(
            "Recurring instances generated",
            notification_id=str(template.id),
            schedule_id=series_key,
            created=len(created),
            already_present=existing,
            horizon=horizon.isoformat(),
        )

        return created

    def _instance_exists(self, key: str) -> bool:
        return self.repository.count_by_filters(NotificationFilters(idempotency_key=key)) > 0

    def _create_instance(
        self, template: Notification, scheduled_for: datetime, key: str, now: datetime
    ) -> UUID | None:
        draft = template.build_instance(scheduled_for, generated_at=now)
        draft.idempotency_key = key

        try:
            instance = self.repository.create(draft)
        except DuplicateNotificationError:
            # Another run created this slot between the lookup and the insert
            return None

        return instance.id


__all__ = ["RecurrenceGenerator", "occurrence_key"]
