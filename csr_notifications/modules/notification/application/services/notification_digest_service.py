"""Notification digest service.

Generates periodic digest notifications for users who opted in, one per user
and digest period, through the ordinary notification creation path.
"""

import time
from datetime import datetime, timedelta
from typing import Any

from csr_notifications.core.clock import Clock, utc_now
from csr_notifications.core.config import DigestConfig
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.application.services.digest_aggregator import (
    DIGEST_NOTIFICATION_TYPE,
    DigestAggregator,
    parse_digest_type,
)
from csr_notifications.modules.notification.application.services.digest_formatter import (
    DigestContent,
    DigestFormatter,
)
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
    NotificationDraft,
    RecipientId,
)
from csr_notifications.modules.notification.domain.enums import (
    DigestType,
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from csr_notifications.modules.notification.domain.errors import (
    DigestGenerationFailedError,
    DuplicateNotificationError,
    InvalidDataError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
    NotificationFilters,
)
from csr_notifications.modules.notification.domain.interfaces.services import (
    IDigestPreferenceSource,
    IDigestRenderer,
)

logger = get_logger(__name__)

DEFAULT_DIGEST_FREQUENCY = 1


def digest_idempotency_key(
    user_id: RecipientId, digest_type: DigestType, period_start: datetime
) -> str:
    """One key per user, digest type and digest unit containing ``period_start``."""
    unit_start = digest_type.truncate(period_start)
    return f"digest:{user_id}:{digest_type.value}:{unit_start.isoformat()}"


class NotificationDigestService:
    """
    Application service for notification digests.

    Creation is idempotent per user and digest period: a second run inside
    the same unit reports the user as skipped with ``already_generated``.
    """

    def __init__(
        self,
        repository: INotificationRepository,
        preferences: IDigestPreferenceSource,
        renderer: IDigestRenderer,
        config: DigestConfig | None = None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.preferences = preferences
        self.config = config or DigestConfig()
        self.clock = clock

        self.aggregator = DigestAggregator(repository, clock)
        self.formatter = DigestFormatter(renderer, sample_size=self.config.sample_size)

    def build_user_digest(self, user_id: RecipientId, digest_type: DigestType | str) -> dict[str, Any]:
        """Unread notifications of ``user_id``, grouped by type, with summary."""
        return self.aggregator.build_digest(
            user_id,
            digest_type,
            include_read=False,
            group_by_type=True,
            include_summary=True,
            max_notifications=self.config.max_notifications,
        )

    def preview_digest(self, user_id: RecipientId, digest_type: DigestType | str) -> dict[str, Any]:
        """Formatted digest content for ``user_id`` without creating anything."""
        digest = self.build_user_digest(user_id, digest_type)
        content = self.formatter.format(digest, self.clock())

        return {
            "title": content.title,
            "message": content.message,
            "html": content.html,
            "digest": digest,
        }

    def generate_and_send(
        self,
        digest_type: DigestType | str,
        user_ids: list[RecipientId] | None = None,
    ) -> dict[str, Any]:
        """
        Create one digest notification per target user.

        Args:
            digest_type: hourly, daily, weekly or monthly
            user_ids: Explicit targets; defaults to users whose preference
                frequency maps to ``digest_type``

        Returns:
            ``generated``, ``skipped`` and ``failed`` lists plus totals

        Raises:
            InvalidDataError: If ``digest_type`` is unknown
            DigestGenerationFailedError: If target users cannot be resolved
        """
        digest_type = parse_digest_type(digest_type)
        started = time.perf_counter()

        targets = self._resolve_targets(digest_type, user_ids)

        generated: list[dict[str, Any]] = []
        skipped: list[dict[str, Any]] = []
        failed: list[dict[str, Any]] = []

        for user_id in targets:
            try:
                outcome = self._generate_for_user(user_id, digest_type)
            except Exception as e:
                failed.append({"user_id": str(user_id), "error": str(e)})
                logger.exception(
                    "Failed to generate digest for user",
                    user_id=str(user_id),
                    digest_type=digest_type.value,
                    error=str(e),
                )
                continue

            if "notification_id" in outcome:
                generated.append(outcome)
            else:
                skipped.append(outcome)

        execution_time_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            "Digest generation completed",
            digest_type=digest_type.value,
            total_users=len(targets),
            generated=len(generated),
            skipped=len(skipped),
            failed=len(failed),
            execution_time_ms=execution_time_ms,
        )

        return {
            "digest_type": digest_type.value,
            "generated": generated,
            "skipped": skipped,
            "failed": failed,
            "total_users": len(targets),
            "execution_time_ms": execution_time_ms,
        }

    def _resolve_targets(
        self, digest_type: DigestType, user_ids: list[RecipientId] | None
    ) -> list[RecipientId]:
        if user_ids:
            return list(dict.fromkeys(user_ids))

        frequency = digest_type.preference_frequency()
        try:
            return list(self.preferences.find_users_by_digest_frequency(frequency))
        except Exception as e:
            logger.exception(
                "Digest target resolution failed",
                digest_type=digest_type.value,
                frequency=frequency,
                error=str(e),
            )
            raise DigestGenerationFailedError(
                digest_type.value, f"Failed to resolve digest recipients: {e}", cause=e
            ) from e

    def _generate_for_user(self, user_id: RecipientId, digest_type: DigestType) -> dict[str, Any]:
        digest = self.build_user_digest(user_id, digest_type)
        count = digest["total_notifications"]

        if count == 0:
            return {"user_id": str(user_id), "reason": "no_notifications"}

        period_start = datetime.fromisoformat(digest["period"]["start"])
        key = digest_idempotency_key(user_id, digest_type, period_start)

        if self.repository.count_by_filters(NotificationFilters(idempotency_key=key)) > 0:
            return {"user_id": str(user_id), "reason": "already_generated"}

        content = self.formatter.format(digest, self.clock())

        try:
            notification = self._create_digest_notification(
                user_id, digest_type, digest, content, key
            )
        except DuplicateNotificationError:
            return {"user_id": str(user_id), "reason": "already_generated"}

        logger.info(
            "Digest notification created",
            user_id=str(user_id),
            digest_type=digest_type.value,
            notification_id=str(notification.id),
            notification_count=count,
        )

        return {
            "user_id": str(user_id),
            "notification_id": str(notification.id),
            "notification_count": count,
        }

    def _create_digest_notification(
        self,
        user_id: RecipientId,
        digest_type: DigestType,
        digest: dict[str, Any],
        content: DigestContent,
        idempotency_key: str,
    ) -> Notification:
        return self.repository.create(
            NotificationDraft(
                recipient_id=user_id,
                title=content.title,
                message=content.message,
                notification_type=DIGEST_NOTIFICATION_TYPE,
                channel=NotificationChannel(self.config.channel),
                priority=NotificationPriority(self.config.priority),
                data={"digest_data": digest, "html_content": content.html},
                metadata={
                    "digest_type": digest_type.value,
                    "notification_count": digest["total_notifications"],
                    "period_start": digest["period"]["start"],
                    "period_end": digest["period"]["end"],
                    "auto_generated": True,
                },
                idempotency_key=idempotency_key,
            )
        )

    def get_digest_stats(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> dict[str, Any]:
        """
        Digest notifications created between ``start`` and ``end``.

        Defaults to the last seven days.
        """
        end = end or self.clock()
        start = start or end - timedelta(weeks=1)
        if start > end:
            raise InvalidDataError("Stats window start must not be after its end", field="start")

        window = NotificationFilters(
            notification_type=DIGEST_NOTIFICATION_TYPE,
            created_from=start,
            created_to=end,
        )

        by_status = self.repository.count_by_field(window, "status")

        return {
            "period": {"start": start.isoformat(), "end": end.isoformat()},
            "total_digests": self.repository.count_by_filters(window),
            "by_digest_type": self.repository.count_by_field(window, "metadata.digest_type"),
            "by_status": by_status,
            "read": by_status.get(NotificationStatus.READ.value, 0),
        }

    def get_digest_configuration(self, user_id: RecipientId) -> dict[str, Any]:
        """
        Effective digest settings of ``user_id``.

        Users without a stored preference get daily digests.
        """
        frequency = self.preferences.get_digest_frequency(str(user_id))
        if frequency is None:
            frequency = DEFAULT_DIGEST_FREQUENCY

        digest_type = DigestType.from_preference_frequency(frequency)

        latest = self.repository.find_by_filters(
            NotificationFilters(
                recipient_id=user_id,
                notification_type=DIGEST_NOTIFICATION_TYPE,
                order_by="created_at",
                descending=True,
            ),
            limit=1,
        )

        return {
            "user_id": str(user_id),
            "digest_frequency": frequency,
            "digest_enabled": frequency > 0,
            "digest_type": digest_type.value if digest_type else None,
            "last_digest_sent": latest[0].created_at.isoformat() if latest else None,
        }

    def cleanup_old_digests(self, days_old: int | None = None) -> int:
        """
        Delete read or delivered digests created at least ``days_old`` days ago.

        Args:
            days_old: Age threshold; defaults to ``retention_days``

        Returns:
            Number of digests deleted

        Raises:
            InvalidDataError: If ``days_old`` is not positive
        """
        if days_old is None:
            days_old = self.config.retention_days
        if days_old < 1:
            raise InvalidDataError("days_old must be at least 1", field="days_old")

        cutoff = self.clock() - timedelta(days=days_old)
        deleted = self.repository.delete_by_filters(
            NotificationFilters(
                notification_type=DIGEST_NOTIFICATION_TYPE,
                statuses=(NotificationStatus.READ, NotificationStatus.DELIVERED),
                created_to=cutoff,
            )
        )

        logger.info("Old digests cleaned up", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted


__all__ = ["DEFAULT_DIGEST_FREQUENCY", "NotificationDigestService", "digest_idempotency_key"]
