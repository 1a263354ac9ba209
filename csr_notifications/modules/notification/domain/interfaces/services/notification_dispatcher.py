"""
Notification Dispatcher Interface

Port for handing a due notification to its channel transport.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from csr_notifications.modules.notification.domain.entities.notification import (
        Notification,
    )


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a single dispatch attempt."""

    success: bool
    message: str | None = None
    provider_message_id: str | None = None

    @classmethod
    def ok(cls, provider_message_id: str | None = None) -> "DispatchResult":
        return cls(success=True, provider_message_id=provider_message_id)

    @classmethod
    def failed(cls, message: str) -> "DispatchResult":
        return cls(success=False, message=message)


class INotificationDispatcher(ABC):
    """Port for notification delivery through the notification's channel."""

    @abstractmethod
    def send(
        self, notification: "Notification", delivery_options: dict[str, Any]
    ) -> DispatchResult:
        """
        Deliver a notification through ``notification.channel``.

        Args:
            notification: Notification to deliver
            delivery_options: Channel-specific options from the notification metadata

        Returns:
            DispatchResult describing success or failure

        A transport may also raise; callers treat any exception as a failed
        result for that notification only.
        """
        ...
