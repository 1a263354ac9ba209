"""
Notification Domain Service Interfaces

Ports for the collaborators the scheduling engine consumes: channel dispatch,
digest preference lookup and digest rendering.
"""

from .digest_preference_source import IDigestPreferenceSource
from .digest_renderer import IDigestRenderer
from .notification_dispatcher import DispatchResult, INotificationDispatcher

__all__ = [
    "DispatchResult",
    "IDigestPreferenceSource",
    "IDigestRenderer",
    "INotificationDispatcher",
]
