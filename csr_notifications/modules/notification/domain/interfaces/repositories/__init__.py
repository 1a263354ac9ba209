"""Notification repository interfaces."""

from csr_notifications.modules.notification.domain.interfaces.repositories.notification_repository import (
    INotificationRepository,
    NotificationFilters,
)

__all__ = ["INotificationRepository", "NotificationFilters"]
