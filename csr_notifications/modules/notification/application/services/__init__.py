"""Notification application services."""

from csr_notifications.modules.notification.application.services.digest_aggregator import (
    DIGEST_NOTIFICATION_TYPE,
    DigestAggregator,
    parse_digest_type,
)
from csr_notifications.modules.notification.application.services.digest_formatter import (
    DigestContent,
    DigestFormatter,
)
from csr_notifications.modules.notification.application.services.due_notification_processor import (
    DueNotificationProcessor,
    DueProcessingResult,
)
from csr_notifications.modules.notification.application.services.notification_digest_service import (
    NotificationDigestService,
    digest_idempotency_key,
)
from csr_notifications.modules.notification.application.services.notification_scheduling_service import (
    NotificationSchedulingService,
)
from csr_notifications.modules.notification.application.services.recurrence_generator import (
    RecurrenceGenerator,
    occurrence_key,
)
from csr_notifications.modules.notification.application.services.rescheduler import (
    Rescheduler,
)

__all__ = [
    "DIGEST_NOTIFICATION_TYPE",
    "DigestAggregator",
    "DigestContent",
    "DigestFormatter",
    "DueNotificationProcessor",
    "DueProcessingResult",
    "NotificationDigestService",
    "NotificationSchedulingService",
    "RecurrenceGenerator",
    "Rescheduler",
    "digest_idempotency_key",
    "occurrence_key",
    "parse_digest_type",
]
