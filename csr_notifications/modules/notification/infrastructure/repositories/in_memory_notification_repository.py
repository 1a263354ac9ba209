"""In-memory notification repository.

Thread-safe reference implementation of ``INotificationRepository`` used by
tests and single-process deployments. Entities are copied on the way in and
out, so changes only persist through ``update_by_id``.
"""

import threading
from collections import Counter
from copy import deepcopy
from datetime import datetime
from typing import Any
from uuid import UUID

from csr_notifications.core.clock import Clock, utc_now
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
    NotificationDraft,
)
from csr_notifications.modules.notification.domain.enums import NotificationStatus
from csr_notifications.modules.notification.domain.errors import (
    DuplicateNotificationError,
    InvalidDataError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
    NotificationFilters,
)

UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "scheduled_for",
        "sent_at",
        "read_at",
        "metadata",
        "data",
        "recurring_active",
        "reschedule_history",
        "updated_at",
    }
)

GROUPABLE_FIELDS = {
    "priority": lambda n: n.priority.value,
    "type": lambda n: n.notification_type,
    "channel": lambda n: n.channel.value,
    "status": lambda n: n.status.value,
}


def _in_range(
    value: datetime | None,
    lte: datetime | None = None,
    gte: datetime | None = None,
    lt: datetime | None = None,
) -> bool:
    if lte is None and gte is None and lt is None:
        return True
    if value is None:
        return False
    if lte is not None and value > lte:
        return False
    if gte is not None and value < gte:
        return False
    return not (lt is not None and value >= lt)


def matches(notification: Notification, filters: NotificationFilters) -> bool:
    """Check a notification against every set filter."""
    n, f = notification, filters

    checks = (
        f.status is None or n.status == f.status,
        f.statuses is None or n.status in f.statuses,
        f.schedule_id is None or n.schedule_id == f.schedule_id,
        f.is_recurring is None or n.is_recurring == f.is_recurring,
        f.recurring_active is None or n.recurring_active == f.recurring_active,
        f.recurring_instance is None or n.recurring_instance == f.recurring_instance,
        f.recipient_id is None or str(n.recipient_id) == str(f.recipient_id),
        f.notification_type is None or n.notification_type == f.notification_type,
        f.exclude_type is None or n.notification_type != f.exclude_type,
        f.channel is None or n.channel == f.channel,
        f.unread is None or (n.read_at is None) == f.unread,
        f.idempotency_key is None or n.idempotency_key == f.idempotency_key,
    )
    if not all(checks):
        return False

    return _in_range(
        n.scheduled_for, f.scheduled_for_lte, f.scheduled_for_gte, f.scheduled_for_lt
    ) and _in_range(n.created_at, lte=f.created_to, gte=f.created_from) and _in_range(
        n.updated_at, lte=f.updated_to
    )


class InMemoryNotificationRepository(INotificationRepository):
    """Dict-backed notification store guarded by a single lock."""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock
        self._items: dict[UUID, Notification] = {}
        self._idempotency_keys: dict[str, UUID] = {}
        self._lock = threading.RLock()

    def add(self, notification: Notification) -> Notification:
        """Store an already-built entity as is (fixtures and imports)."""
        with self._lock:
            self._register_key(notification.idempotency_key, notification.id)
            self._items[notification.id] = deepcopy(notification)
        return notification

    def create(self, draft: NotificationDraft) -> Notification:
        with self._lock:
            notification = Notification.from_draft(draft, created_at=self.clock())
            self._register_key(notification.idempotency_key, notification.id)
            self._items[notification.id] = deepcopy(notification)
        return notification

    def _register_key(self, key: str | None, notification_id: UUID) -> None:
        if key is None:
            return
        existing = self._idempotency_keys.get(key)
        if existing is not None and existing != notification_id:
            raise DuplicateNotificationError(key, existing)
        self._idempotency_keys[key] = notification_id

    def find_by_id(self, notification_id: UUID) -> Notification | None:
        with self._lock:
            notification = self._items.get(notification_id)
            return deepcopy(notification) if notification else None

    def find_by_filters(
        self, filters: NotificationFilters, limit: int | None = None
    ) -> list[Notification]:
        with self._lock:
            found = [n for n in self._items.values() if matches(n, filters)]

            if filters.order_by:
                # Missing values sort last in either direction
                present = [n for n in found if getattr(n, filters.order_by) is not None]
                missing = [n for n in found if getattr(n, filters.order_by) is None]
                present.sort(
                    key=lambda n: getattr(n, filters.order_by), reverse=filters.descending
                )
                found = present + missing

            if limit is not None:
                found = found[:limit]

            return [deepcopy(n) for n in found]

    def count_by_filters(self, filters: NotificationFilters) -> int:
        with self._lock:
            return sum(1 for n in self._items.values() if matches(n, filters))

    def count_by_field(self, filters: NotificationFilters, field_name: str) -> dict[str, int]:
        if field_name.startswith("metadata."):
            key = field_name.split(".", 1)[1]

            def extract(n: Notification) -> Any:
                return n.metadata.get(key)

        elif field_name in GROUPABLE_FIELDS:
            extract = GROUPABLE_FIELDS[field_name]
        else:
            raise InvalidDataError(f"Cannot group by {field_name!r}", field="field_name")

        with self._lock:
            counts = Counter(
                str(extract(n))
                for n in self._items.values()
                if matches(n, filters) and extract(n) is not None
            )
        return dict(counts)

    def update_by_id(
        self,
        notification_id: UUID,
        fields: dict[str, Any],
        expected_status: NotificationStatus | None = None,
    ) -> bool:
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidDataError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}", field="fields"
            )

        with self._lock:
            notification = self._items.get(notification_id)
            if notification is None:
                return False
            if expected_status is not None and notification.status != expected_status:
                return False

            for name, value in fields.items():
                setattr(notification, name, deepcopy(value))
            if "updated_at" not in fields:
                notification.updated_at = self.clock()
            return True

    def delete_by_filters(self, filters: NotificationFilters) -> int:
        with self._lock:
            doomed = [n for n in self._items.values() if matches(n, filters)]
            for notification in doomed:
                del self._items[notification.id]
                if notification.idempotency_key is not None:
                    self._idempotency_keys.pop(notification.idempotency_key, None)
            return len(doomed)

    def __len__(self) -> int:
        return len(self._items)


__all__ = ["InMemoryNotificationRepository", "matches"]
