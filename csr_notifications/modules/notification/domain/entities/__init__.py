"""Notification domain entities."""

from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
    NotificationDraft,
)

__all__ = ["Notification", "NotificationDraft"]
