"""Notification Repository Interface.

Domain contract for notification data access. The engine only needs a narrow
surface: filtered finds and counts, lookup by id, field updates with an
optional atomic status guard, creation from a draft and filtered deletes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
    NotificationDraft,
    RecipientId,
)
from csr_notifications.modules.notification.domain.enums import (
    NotificationChannel,
    NotificationStatus,
)


@dataclass
class NotificationFilters:
    """Conjunctive filter over stored notifications; ``None`` means unconstrained."""

    status: NotificationStatus | None = None
    statuses: tuple[NotificationStatus, ...] | None = None
    scheduled_for_lte: datetime | None = None
    scheduled_for_gte: datetime | None = None
    scheduled_for_lt: datetime | None = None
    schedule_id: str | None = None
    is_recurring: bool | None = None
    recurring_active: bool | None = None
    recurring_instance: bool | None = None
    recipient_id: RecipientId | None = None
    notification_type: str | None = None
    channel: NotificationChannel | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    updated_to: datetime | None = None
    unread: bool | None = None
    idempotency_key: str | None = None
    exclude_type: str | None = None
    order_by: str | None = None
    descending: bool = False


class INotificationRepository(ABC):
    """Repository interface for Notification entity operations."""

    @abstractmethod
    def find_by_id(self, notification_id: UUID) -> Notification | None:
        """Find a notification by ID."""

    @abstractmethod
    def find_by_filters(
        self, filters: NotificationFilters, limit: int | None = None
    ) -> list[Notification]:
        """Find notifications matching filters, ordered by ``filters.order_by``."""

    @abstractmethod
    def count_by_filters(self, filters: NotificationFilters) -> int:
        """Count notifications matching filters."""

    @abstractmethod
    def count_by_field(self, filters: NotificationFilters, field_name: str) -> dict[str, int]:
        """Count matching notifications grouped by ``priority``, ``type``, ``channel`` or ``status``."""

    @abstractmethod
    def update_by_id(
        self,
        notification_id: UUID,
        fields: dict[str, Any],
        expected_status: NotificationStatus | None = None,
    ) -> bool:
        """Update fields on one notification.

        When ``expected_status`` is given the update is a single atomic
        compare-and-set: it is applied only if the stored status still equals
        ``expected_status``.

        Returns:
            True if the update was applied, False if the notification does not
            exist or its status did not match
        """

    @abstractmethod
    def create(self, draft: NotificationDraft) -> Notification:
        """Persist a new notification.

        Raises:
            DuplicateNotificationError: If ``draft.idempotency_key`` is already used
        """

    @abstractmethod
    def delete_by_filters(self, filters: NotificationFilters) -> int:
        """Delete notifications matching filters and release their idempotency keys.

        Returns:
            Number of notifications deleted
        """
