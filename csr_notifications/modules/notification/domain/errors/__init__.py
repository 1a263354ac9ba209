"""Notification domain errors.

Domain-specific exceptions for the scheduling and digest engine. Validation
errors are raised straight to the caller; the two ``...FailedError`` types
wrap unexpected lower-layer failures with context and are retryable.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from csr_notifications.core.errors import DomainError, NotFoundError


class NotificationError(DomainError):
    """Base error for notification domain."""

    default_code = "NOTIFICATION_ERROR"


class NotificationNotFoundError(NotFoundError):
    """Raised when a notification is not found."""

    def __init__(self, notification_id: UUID | str, **kwargs):
        super().__init__(resource="Notification", identifier=notification_id, **kwargs)
        self.notification_id = notification_id


class InvalidStateError(NotificationError):
    """Raised when an operation is not valid for the notification's status."""

    default_code = "INVALID_STATE"

    def __init__(
        self,
        message: str,
        notification_id: UUID | None = None,
        current_status: str | None = None,
        **kwargs,
    ):
        super().__init__(
            message=message,
            details={
                "notification_id": str(notification_id) if notification_id else None,
                "current_status": current_status,
            },
            **kwargs,
        )
        self.current_status = current_status


class InvalidDataError(NotificationError):
    """Raised when caller-supplied input is malformed or out of range."""

    default_code = "INVALID_DATA"

    def __init__(self, message: str, field: str | None = None, **kwargs):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(message=message, details=details, **kwargs)
        self.field = field


class InvalidTimeError(InvalidDataError):
    """Raised when a supplied timestamp is outside the accepted range."""

    default_code = "INVALID_TIME"

    def __init__(
        self,
        message: str,
        requested_time: datetime | None = None,
        field: str | None = "scheduled_for",
        **kwargs,
    ):
        super().__init__(
            message,
            field=field,
            details={
                "requested_time": requested_time.isoformat() if requested_time else None,
            },
            **kwargs,
        )
        self.requested_time = requested_time


class MissingConfigurationError(NotificationError):
    """Raised when a recurring notification carries no recurrence config."""

    default_code = "MISSING_CONFIGURATION"

    def __init__(self, notification_id: UUID | None = None, **kwargs):
        message = "Recurrence configuration is missing"
        if notification_id:
            message += f" for notification {notification_id}"
        super().__init__(
            message=message,
            details={
                "notification_id": str(notification_id) if notification_id else None
            },
            **kwargs,
        )


class InvalidConfigurationError(NotificationError):
    """Raised when recurrence configuration is malformed."""

    default_code = "INVALID_CONFIGURATION"

    def __init__(self, message: str, config_key: str | None = None, **kwargs):
        super().__init__(
            message=message,
            details={"config_key": config_key},
            **kwargs,
        )
        self.config_key = config_key


class DuplicateNotificationError(NotificationError):
    """Raised when attempting to create a duplicate notification."""

    default_code = "DUPLICATE_NOTIFICATION"

    def __init__(
        self, idempotency_key: str, existing_notification_id: UUID | None, **kwargs
    ):
        message = (
            f"Notification with idempotency key '{idempotency_key}' already exists"
        )

        super().__init__(
            message=message,
            details={
                "idempotency_key": idempotency_key,
                "existing_notification_id": str(existing_notification_id)
                if existing_notification_id
                else None,
            },
            user_message="This notification has already been created.",
            **kwargs,
        )
        self.idempotency_key = idempotency_key
        self.existing_notification_id = existing_notification_id


class SchedulingFailedError(NotificationError):
    """Raised when a scheduling operation fails for a non-validation reason."""

    default_code = "SCHEDULING_FAILED"
    retryable = True

    def __init__(self, operation: str, reason: str, **kwargs):
        details: dict[str, Any] = kwargs.pop("details", {})
        details.update({"operation": operation, "reason": reason})
        super().__init__(
            message=f"Scheduling operation '{operation}' failed: {reason}",
            details=details,
            recovery_hint="Retry the operation once the notification store is reachable.",
            **kwargs,
        )
        self.operation = operation


class DigestGenerationFailedError(NotificationError):
    """Raised when digest generation fails for a non-validation reason."""

    default_code = "DIGEST_GENERATION_FAILED"
    retryable = True

    def __init__(self, digest_type: str, reason: str, **kwargs):
        details: dict[str, Any] = kwargs.pop("details", {})
        details.update({"digest_type": digest_type, "reason": reason})
        super().__init__(
            message=f"Failed to generate {digest_type} digests: {reason}",
            details=details,
            **kwargs,
        )
        self.digest_type = digest_type


__all__ = [
    "DigestGenerationFailedError",
    "DuplicateNotificationError",
    "InvalidConfigurationError",
    "InvalidDataError",
    "InvalidStateError",
    "InvalidTimeError",
    "MissingConfigurationError",
    "NotificationError",
    "NotificationNotFoundError",
    "SchedulingFailedError",
]
