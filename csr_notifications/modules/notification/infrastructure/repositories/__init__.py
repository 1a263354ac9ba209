"""Notification infrastructure repositories.

Implementations of ``INotificationRepository``: a SQLAlchemy store over the
``notifications`` table and a lock-guarded in-memory store.
"""

from csr_notifications.modules.notification.infrastructure.repositories.in_memory_notification_repository import (
    InMemoryNotificationRepository,
)
from csr_notifications.modules.notification.infrastructure.repositories.notification_repository import (
    NotificationRepository,
)

__all__ = ["InMemoryNotificationRepository", "NotificationRepository"]
