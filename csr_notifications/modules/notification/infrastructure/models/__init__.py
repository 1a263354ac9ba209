"""Notification ORM models."""

from csr_notifications.modules.notification.infrastructure.models.notification import (
    NotificationModel,
)

__all__ = ["NotificationModel"]
