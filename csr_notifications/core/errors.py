"""Shared error classes for the notification engine.

Every error logs itself once on construction, so batch drivers only need to
decide whether to retry. ``retryable`` marks failures of the store or another
collaborator that a later task run may get past.
"""

import logging
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

SENSITIVE_DETAIL_KEYS = ("password", "token", "secret", "credential", "authorization")


class ErrorSeverity(Enum):
    """Error severity levels for monitoring and alerting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    def log_level(self) -> int:
        levels = {
            ErrorSeverity.LOW: logging.INFO,
            ErrorSeverity.MEDIUM: logging.WARNING,
            ErrorSeverity.HIGH: logging.ERROR,
            ErrorSeverity.CRITICAL: logging.CRITICAL,
        }
        return levels[self]


def redact_details(details: dict[str, Any]) -> dict[str, Any]:
    """Copy ``details`` with secret-looking keys masked, recursing into mappings."""
    redacted: dict[str, Any] = {}
    for key, value in details.items():
        if any(marker in key.lower() for marker in SENSITIVE_DETAIL_KEYS):
            redacted[key] = "***REDACTED***"
        elif isinstance(value, dict):
            redacted[key] = redact_details(value)
        else:
            redacted[key] = value
    return redacted


class CsrError(Exception):
    """
    Base exception for the notification engine.

    Carries a stable ``code`` for task results and log queries, free-form
    ``details``, a correlation ID shared by related failures, and the
    ``retryable`` hint read by the Celery tasks.
    """

    default_code: str = "ERROR"
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    retryable: bool = False

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message)
        self.message = message
        self.code = kwargs.get("code") or self.default_code
        self.details: dict[str, Any] = kwargs.get("details") or {}
        self.user_message = kwargs.get("user_message") or message
        self.recovery_hint = kwargs.get("recovery_hint")
        self.correlation_id = kwargs.get("correlation_id") or str(uuid.uuid4())
        self.error_id = str(uuid.uuid4())
        self.occurred_at = datetime.now(UTC)
        self.__cause__ = kwargs.get("cause")

        self._log_error()

    def _log_error(self) -> None:
        logger = logging.getLogger(f"csr_notifications.errors.{self.__class__.__name__}")
        logger.log(
            self.severity.log_level(),
            "%s error raised",
            self.severity.value.capitalize(),
            extra={
                "error_id": self.error_id,
                "correlation_id": self.correlation_id,
                "code": self.code,
                "error_message": self.message,
                "severity": self.severity.value,
                "retryable": self.retryable,
                "details": redact_details(self.details),
                "error_class": self.__class__.__name__,
            },
        )

    def to_dict(self, include_internal: bool = False) -> dict[str, Any]:
        """
        Serialize for task results and failure logs.

        Args:
            include_internal: Add error/correlation IDs, severity and the raw message
        """
        data: dict[str, Any] = {
            "error": self.code,
            "message": self.user_message,
            "occurred_at": self.occurred_at.isoformat(),
        }

        public_details = {k: v for k, v in self.details.items() if not k.startswith("_")}
        if public_details:
            data["details"] = redact_details(public_details)
        if self.recovery_hint:
            data["recovery_hint"] = self.recovery_hint
        if self.retryable:
            data["retryable"] = True

        if include_internal:
            data.update(
                {
                    "error_id": self.error_id,
                    "correlation_id": self.correlation_id,
                    "severity": self.severity.value,
                    "internal_message": self.message,
                }
            )

        return data

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class DomainError(CsrError):
    """Base class for domain errors."""

    default_code = "DOMAIN_ERROR"


class ApplicationError(CsrError):
    """Base class for application layer errors."""

    default_code = "APPLICATION_ERROR"


class InfrastructureError(CsrError):
    """Store, broker or configuration failure."""

    default_code = "INFRASTRUCTURE_ERROR"
    severity = ErrorSeverity.HIGH
    retryable = True


class ValidationError(ApplicationError):
    """Invalid entity or value object state."""

    default_code = "VALIDATION_ERROR"
    severity = ErrorSeverity.LOW

    def __init__(self, message: str, field: str | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        super().__init__(message, details=details, **kwargs)
        self.field = field


class NotFoundError(ApplicationError):
    """Resource not found error."""

    default_code = "NOT_FOUND"
    severity = ErrorSeverity.LOW

    def __init__(self, resource: str, identifier: Any, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details.update({"resource": resource, "identifier": str(identifier)})
        super().__init__(
            f"{resource} not found: {identifier}",
            details=details,
            user_message=f"The requested {resource.lower()} was not found",
            **kwargs,
        )


class ConfigurationError(InfrastructureError):
    """Missing or invalid settings; retrying will not help."""

    default_code = "CONFIGURATION_ERROR"
    severity = ErrorSeverity.CRITICAL
    retryable = False

    def __init__(self, message: str, config_key: str | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        super().__init__(
            message, details=details, user_message="Service configuration issue", **kwargs
        )
