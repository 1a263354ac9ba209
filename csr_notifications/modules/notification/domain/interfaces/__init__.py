"""Notification domain interfaces."""

from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
    NotificationFilters,
)
from csr_notifications.modules.notification.domain.interfaces.services import (
    DispatchResult,
    IDigestPreferenceSource,
    IDigestRenderer,
    INotificationDispatcher,
)

__all__ = [
    "DispatchResult",
    "IDigestPreferenceSource",
    "IDigestRenderer",
    "INotificationDispatcher",
    "INotificationRepository",
    "NotificationFilters",
]
