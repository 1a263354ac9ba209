"""Notification domain value objects.

Immutable values describing recurrence rules, reschedule audit entries and
digest periods. Each validates on construction and can be converted to and
from a plain mapping for storage in JSON columns or task payloads.
"""

from datetime import datetime
from typing import Any

from csr_notifications.core.domain.base import ValueObject
from csr_notifications.modules.notification.domain.enums import RecurrenceFrequency
from csr_notifications.modules.notification.domain.errors import (
    InvalidConfigurationError,
    InvalidDataError,
)

DEFAULT_MAX_OCCURRENCES = 100
MAX_OCCURRENCES_LIMIT = 1000


def _parse_datetime(value: Any, field_name: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as e:
            raise InvalidConfigurationError(
                f"{field_name} is not an ISO-8601 timestamp: {value!r}",
                config_key=field_name,
            ) from e
    raise InvalidConfigurationError(
        f"{field_name} must be a datetime or ISO-8601 string", config_key=field_name
    )


class RecurrenceConfig(ValueObject):
    """How a recurring series repeats and when it stops."""

    def __init__(
        self,
        frequency: RecurrenceFrequency,
        interval: int = 1,
        max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
        end_date: datetime | None = None,
    ):
        """Initialize recurrence config.

        Args:
            frequency: Unit the series advances by
            interval: Number of units between occurrences
            max_occurrences: Upper bound on generated instances per series
            end_date: Optional last permissible occurrence time (inclusive)

        Raises:
            InvalidConfigurationError: If any value is out of range
        """
        super().__init__()

        if not isinstance(frequency, RecurrenceFrequency):
            raise InvalidConfigurationError(
                f"Unsupported recurrence frequency: {frequency!r}",
                config_key="frequency",
            )

        if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
            raise InvalidConfigurationError(
                "Recurrence interval must be a positive integer",
                config_key="interval",
            )

        if interval > frequency.max_interval():
            raise InvalidConfigurationError(
                f"Interval {interval} exceeds the maximum of "
                f"{frequency.max_interval()} for {frequency.value}",
                config_key="interval",
            )

        if (
            isinstance(max_occurrences, bool)
            or not isinstance(max_occurrences, int)
            or not 1 <= max_occurrences <= MAX_OCCURRENCES_LIMIT
        ):
            raise InvalidConfigurationError(
                f"max_occurrences must be between 1 and {MAX_OCCURRENCES_LIMIT}",
                config_key="max_occurrences",
            )

        if end_date is not None and end_date.tzinfo is None:
            raise InvalidConfigurationError(
                "end_date must be timezone-aware", config_key="end_date"
            )

        self.frequency = frequency
        self.interval = interval
        self.max_occurrences = max_occurrences
        self.end_date = end_date

        self._freeze()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecurrenceConfig":
        """Build a config from a raw mapping such as a stored JSON payload."""
        if not isinstance(data, dict):
            raise InvalidConfigurationError("Recurrence configuration must be a mapping")

        raw_frequency = data.get("frequency")
        try:
            frequency = RecurrenceFrequency(raw_frequency)
        except ValueError as e:
            raise InvalidConfigurationError(
                f"Unsupported recurrence frequency: {raw_frequency!r}",
                config_key="frequency",
            ) from e

        return cls(
            frequency=frequency,
            interval=data.get("interval", 1),
            max_occurrences=data.get("max_occurrences", DEFAULT_MAX_OCCURRENCES),
            end_date=_parse_datetime(data.get("end_date"), "end_date"),
        )

    def next_occurrence(self, current: datetime) -> datetime:
        """Advance ``current`` by one interval of this config's frequency."""
        return self.frequency.advance(current, self.interval)

    def allows(self, moment: datetime) -> bool:
        """Check that ``moment`` is not past the configured end date."""
        return self.end_date is None or moment <= self.end_date

    def to_dict(self) -> dict[str, Any]:
        return {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "max_occurrences": self.max_occurrences,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    def __str__(self) -> str:
        return f"every {self.interval} {self.frequency.value}"


class RescheduleHistoryEntry(ValueObject):
    """One audit record of a notification being moved to a new time."""

    def __init__(
        self,
        rescheduled_at: datetime,
        previous_scheduled_for: datetime | None,
        new_scheduled_for: datetime,
        reason: str | None = None,
    ):
        super().__init__()

        self.rescheduled_at = rescheduled_at
        self.previous_scheduled_for = previous_scheduled_for
        self.new_scheduled_for = new_scheduled_for
        self.reason = reason.strip() if reason else None

        self._freeze()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RescheduleHistoryEntry":
        return cls(
            rescheduled_at=_parse_datetime(data["rescheduled_at"], "rescheduled_at"),
            previous_scheduled_for=_parse_datetime(
                data.get("previous_scheduled_for"), "previous_scheduled_for"
            ),
            new_scheduled_for=_parse_datetime(data["new_scheduled_for"], "new_scheduled_for"),
            reason=data.get("reason"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "rescheduled_at": self.rescheduled_at.isoformat(),
            "previous_scheduled_for": self.previous_scheduled_for.isoformat()
            if self.previous_scheduled_for
            else None,
            "new_scheduled_for": self.new_scheduled_for.isoformat(),
            "reason": self.reason,
        }

    def __str__(self) -> str:
        return f"{self.previous_scheduled_for} -> {self.new_scheduled_for}"


class DigestPeriod(ValueObject):
    """Closed time window a digest summarizes."""

    def __init__(self, start: datetime, end: datetime):
        super().__init__()

        if start.tzinfo is None or end.tzinfo is None:
            raise InvalidDataError("Digest period bounds must be timezone-aware", field="period")
        if start > end:
            raise InvalidDataError("Digest period start must not be after its end", field="period")

        self.start = start
        self.end = end

        self._freeze()

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}

    def __str__(self) -> str:
        return f"{self.start.isoformat()} - {self.end.isoformat()}"


__all__ = [
    "DEFAULT_MAX_OCCURRENCES",
    "MAX_OCCURRENCES_LIMIT",
    "DigestPeriod",
    "RecurrenceConfig",
    "RescheduleHistoryEntry",
]
