"""Digest aggregator.

Collects a user's notifications over a window and summarizes them into the
payload a digest notification carries: groups by type, per-group samples,
and delegated counts by priority, type and channel.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any

from csr_notifications.core.clock import Clock, ensure_aware, utc_now
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
    RecipientId,
)
from csr_notifications.modules.notification.domain.enums import DigestType
from csr_notifications.modules.notification.domain.errors import InvalidDataError
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
    NotificationFilters,
)
from csr_notifications.modules.notification.domain.value_objects import DigestPeriod

logger = get_logger(__name__)

DIGEST_NOTIFICATION_TYPE = "digest"
DEFAULT_MAX_NOTIFICATIONS = 100
MAX_NOTIFICATIONS_LIMIT = 1000


def parse_digest_type(digest_type: DigestType | str) -> DigestType:
    if isinstance(digest_type, DigestType):
        return digest_type
    try:
        return DigestType(digest_type)
    except ValueError as e:
        raise InvalidDataError(
            f"Invalid digest type: {digest_type!r}", field="digest_type"
        ) from e


def _sample(notification: Notification) -> dict[str, Any]:
    return {
        "id": str(notification.id),
        "title": notification.title,
        "message": notification.message,
        "priority": notification.priority.value,
        "status": notification.status.value,
        "created_at": notification.created_at.isoformat(),
    }


class DigestAggregator:
    """Builds digest payloads from a user's notifications."""

    def __init__(self, repository: INotificationRepository, clock: Clock = utc_now):
        self.repository = repository
        self.clock = clock

    def resolve_period(
        self, digest_type: DigestType, window: tuple[datetime, datetime] | None = None
    ) -> DigestPeriod:
        """Explicit window if given, otherwise one digest unit ending now."""
        if window is not None:
            start, end = window
            if not ensure_aware(start) or not ensure_aware(end):
                raise InvalidDataError("Digest window must be timezone-aware", field="window")
            return DigestPeriod(start, end)

        end = self.clock()
        return DigestPeriod(digest_type.window_start(end), end)

    def build_digest(
        self,
        user_id: RecipientId,
        digest_type: DigestType | str,
        window: tuple[datetime, datetime] | None = None,
        include_read: bool = False,
        group_by_type: bool = True,
        include_summary: bool = True,
        max_notifications: int = DEFAULT_MAX_NOTIFICATIONS,
    ) -> dict[str, Any]:
        """
        Build the digest payload for one user.

        Args:
            user_id: Recipient to summarize
            digest_type: hourly, daily, weekly or monthly
            window: Optional explicit (start, end) overriding the digest unit
            include_read: Include notifications already read
            group_by_type: Group notifications by type instead of a flat list
            include_summary: Add delegated counts
            max_notifications: Upper bound on notifications loaded

        Returns:
            Digest payload

        Raises:
            InvalidDataError: If the digest type, window or bound is invalid
        """
        digest_type = parse_digest_type(digest_type)

        if not 1 <= max_notifications <= MAX_NOTIFICATIONS_LIMIT:
            raise InvalidDataError(
                f"max_notifications must be between 1 and {MAX_NOTIFICATIONS_LIMIT}",
                field="max_notifications",
            )

        period = self.resolve_period(digest_type, window)

        filters = NotificationFilters(
            recipient_id=user_id,
            created_from=period.start,
            created_to=period.end,
            unread=None if include_read else True,
            exclude_type=DIGEST_NOTIFICATION_TYPE,
            order_by="created_at",
            descending=True,
        )
        notifications = self.repository.find_by_filters(filters, limit=max_notifications)

        digest: dict[str, Any] = {
            "user_id": str(user_id),
            "digest_type": digest_type.value,
            "period": period.to_dict(),
            "total_notifications": len(notifications),
            "metadata": {
                "generated_at": self.clock().isoformat(),
                "include_read": include_read,
                "max_notifications": max_notifications,
            },
        }

        if include_summary:
            digest["summary"] = self._build_summary(user_id, period)

        if group_by_type:
            digest["notifications_by_type"] = self._group_by_type(notifications)
        else:
            digest["notifications"] = [_sample(n) for n in notifications]

        logger.debug(
            "Digest built",
            user_id=str(user_id),
            digest_type=digest_type.value,
            total_notifications=len(notifications),
        )

        return digest

    @staticmethod
    def _group_by_type(notifications: list[Notification]) -> list[dict[str, Any]]:
        grouped: dict[str, list[Notification]] = defaultdict(list)
        for notification in notifications:
            grouped[notification.notification_type].append(notification)

        groups = []
        for notification_type, members in grouped.items():
            members.sort(key=lambda n: n.created_at, reverse=True)
            groups.append(
                {
                    "type": notification_type,
                    "count": len(members),
                    "notifications": [_sample(n) for n in members],
                    "latest_timestamp": members[0].created_at,
                }
            )

        groups.sort(key=lambda group: group["latest_timestamp"], reverse=True)
        for group in groups:
            group["latest_timestamp"] = group["latest_timestamp"].isoformat()
        return groups

    def _build_summary(self, user_id: RecipientId, period: DigestPeriod) -> dict[str, Any]:
        window = NotificationFilters(
            recipient_id=user_id,
            created_from=period.start,
            created_to=period.end,
            exclude_type=DIGEST_NOTIFICATION_TYPE,
        )
        unread = NotificationFilters(
            recipient_id=user_id,
            created_from=period.start,
            created_to=period.end,
            exclude_type=DIGEST_NOTIFICATION_TYPE,
            unread=True,
        )

        return {
            "total_count": self.repository.count_by_filters(window),
            "unread_count": self.repository.count_by_filters(unread),
            "by_priority": self.repository.count_by_field(window, "priority"),
            "by_type": self.repository.count_by_field(window, "type"),
            "by_channel": self.repository.count_by_field(window, "channel"),
        }


__all__ = [
    "DIGEST_NOTIFICATION_TYPE",
    "DigestAggregator",
    "parse_digest_type",
]
