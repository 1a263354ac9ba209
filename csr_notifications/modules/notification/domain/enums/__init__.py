"""Notification domain enums.

Type-safe constants for notification status, channels, priorities,
recurrence frequencies and digest types.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from dateutil.relativedelta import relativedelta


class NotificationStatus(Enum):
    """Notification lifecycle status."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def is_reschedulable(self) -> bool:
        """Check if a notification in this status can be moved to a new time."""
        return self in [NotificationStatus.PENDING, NotificationStatus.SCHEDULED]

    def is_cancellable(self) -> bool:
        """Check if a notification in this status can still be cancelled."""
        return self in [NotificationStatus.PENDING, NotificationStatus.SCHEDULED]

    def allows_read_marker(self) -> bool:
        """Check if ``read_at`` may be set while in this status."""
        return self in [
            NotificationStatus.SENT,
            NotificationStatus.DELIVERED,
            NotificationStatus.READ,
        ]

    def can_transition_to(self, new_status: "NotificationStatus") -> bool:
        """Check if transition to new status is valid."""
        valid_transitions: dict[NotificationStatus, list[NotificationStatus]] = {
            NotificationStatus.PENDING: [
                NotificationStatus.SCHEDULED,
                NotificationStatus.PROCESSING,
                NotificationStatus.SENT,
                NotificationStatus.FAILED,
                NotificationStatus.CANCELLED,
            ],
            NotificationStatus.SCHEDULED: [
                NotificationStatus.PROCESSING,
                NotificationStatus.SENT,
                NotificationStatus.FAILED,
                NotificationStatus.CANCELLED,
            ],
            NotificationStatus.PROCESSING: [
                NotificationStatus.SENT,
                NotificationStatus.FAILED,
                NotificationStatus.SCHEDULED,  # Claim released
            ],
            NotificationStatus.SENT: [
                NotificationStatus.DELIVERED,
                NotificationStatus.READ,
                NotificationStatus.FAILED,
            ],
            NotificationStatus.DELIVERED: [NotificationStatus.READ],
            NotificationStatus.FAILED: [NotificationStatus.SCHEDULED],  # Manual retry
            NotificationStatus.READ: [],
            NotificationStatus.CANCELLED: [],
        }
        return new_status in valid_transitions.get(self, [])


class NotificationChannel(Enum):
    """Logical delivery channels."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"
    DATABASE = "database"


class NotificationPriority(Enum):
    """Notification priority levels."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RecurrenceFrequency(Enum):
    """Units a recurring series advances by."""

    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"

    def max_interval(self) -> int:
        """Largest interval accepted for this unit (one day of minutes, a week of hours, a year otherwise)."""
        limits = {
            RecurrenceFrequency.MINUTES: 1440,
            RecurrenceFrequency.HOURS: 168,
            RecurrenceFrequency.DAYS: 365,
            RecurrenceFrequency.WEEKS: 52,
            RecurrenceFrequency.MONTHS: 12,
        }
        return limits[self]

    def advance(self, moment: datetime, interval: int) -> datetime:
        """Add ``interval`` units to ``moment``.

        Months are calendar months; a day missing from the target month is
        clamped to that month's last day.
        """
        if self == RecurrenceFrequency.MINUTES:
            return moment + timedelta(minutes=interval)
        if self == RecurrenceFrequency.HOURS:
            return moment + timedelta(hours=interval)
        if self == RecurrenceFrequency.DAYS:
            return moment + timedelta(days=interval)
        if self == RecurrenceFrequency.WEEKS:
            return moment + timedelta(weeks=interval)
        return moment + relativedelta(months=interval)


class DigestType(Enum):
    """Digest periods."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    def window_start(self, end: datetime) -> datetime:
        """Start of the window covering one unit before ``end``."""
        if self == DigestType.HOURLY:
            return end - timedelta(hours=1)
        if self == DigestType.DAILY:
            return end - timedelta(days=1)
        if self == DigestType.WEEKLY:
            return end - timedelta(weeks=1)
        return end - relativedelta(months=1)

    def truncate(self, moment: datetime) -> datetime:
        """Start of the digest unit containing ``moment``.

        Units are the hour, the UTC day, the ISO week starting Monday and the
        calendar month.
        """
        moment = moment.astimezone(UTC)
        if self == DigestType.HOURLY:
            return moment.replace(minute=0, second=0, microsecond=0)

        day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
        if self == DigestType.WEEKLY:
            return day_start - timedelta(days=day_start.weekday())
        if self == DigestType.MONTHLY:
            return day_start.replace(day=1)
        return day_start

    def preference_frequency(self) -> int:
        """Digest frequency value stored in user preferences (days)."""
        frequencies = {
            DigestType.HOURLY: 1,
            DigestType.DAILY: 1,
            DigestType.WEEKLY: 7,
            DigestType.MONTHLY: 30,
        }
        return frequencies[self]

    @classmethod
    def from_preference_frequency(cls, frequency: int) -> "DigestType | None":
        """Map a stored preference frequency to a digest type; 0 means disabled."""
        mapping = {
            1: cls.DAILY,
            7: cls.WEEKLY,
            30: cls.MONTHLY,
        }
        if frequency == 0:
            return None
        return mapping.get(frequency, cls.DAILY)


__all__ = [
    "DigestType",
    "NotificationChannel",
    "NotificationPriority",
    "NotificationStatus",
    "RecurrenceFrequency",
]
