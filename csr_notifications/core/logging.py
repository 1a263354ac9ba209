# ruff: noqa: A005
"""Structured logging configuration.

Provides the logging infrastructure for the notification engine on top of
structlog: a validated ``LogConfig``, sensitive-data filtering, a
``StructuredLogger`` accepting keyword fields, and a cached factory behind
``get_logger``.

Note: this module name shadows the standard library 'logging' module inside
the ``csr_notifications.core`` package only.
"""

import logging
import re
import sys
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from structlog.contextvars import merge_contextvars

from csr_notifications.core.enums import Environment, LogFormat, LogLevel
from csr_notifications.core.errors import ConfigurationError


@dataclass
class LogConfig:
    """
    Logging configuration with validation and environment defaults.

    Usage Example:
        config = LogConfig(
            level=LogLevel.INFO,
            format=LogFormat.JSON,
            environment=Environment.PRODUCTION,
        )
    """

    level: LogLevel = field(default=LogLevel.INFO)
    format: LogFormat = field(default=LogFormat.JSON)
    environment: Environment = field(default=Environment.DEVELOPMENT)

    enable_timestamps: bool = field(default=True)
    enable_caller_info: bool = field(default=False)
    enable_exception_info: bool = field(default=True)

    enable_sensitive_data_filtering: bool = field(default=True)
    truncate_long_messages: bool = field(default=True)
    max_message_length: int = field(default=10000)

    def __post_init__(self):
        self.validate()
        self.apply_environment_defaults()

    def validate(self) -> None:
        """
        Validate logging configuration parameters.

        Raises:
            ConfigurationError: If configuration is invalid
        """
        if self.max_message_length < 1000:
            raise ConfigurationError(
                "Maximum message length must be at least 1000 characters",
                config_key="max_message_length",
            )

    def apply_environment_defaults(self) -> None:
        """Apply environment-specific defaults."""
        if self.environment == Environment.DEVELOPMENT:
            self.format = LogFormat.CONSOLE
            self.enable_caller_info = True

        elif self.environment == Environment.TESTING:
            self.level = LogLevel.WARNING
            self.format = LogFormat.PLAIN

        elif self.environment in (Environment.STAGING, Environment.PRODUCTION):
            self.format = LogFormat.JSON
            self.enable_caller_info = False
            self.enable_sensitive_data_filtering = True

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "level": self.level.level_name,
            "format": self.format.value,
            "environment": self.environment.value,
            "enable_sensitive_data_filtering": self.enable_sensitive_data_filtering,
            "max_message_length": self.max_message_length,
        }


class SensitiveDataFilter:
    """
    Masks sensitive values in log records.

    Field names matching a sensitive pattern are masked entirely; string
    values are scanned for card numbers and email addresses.
    """

    def __init__(self, mask_char: str = "*", preserve_length: bool = False):
        self.mask_char = mask_char
        self.preserve_length = preserve_length

        self.sensitive_patterns = [
            re.compile(r"password", re.IGNORECASE),
            re.compile(r"token", re.IGNORECASE),
            re.compile(r"secret", re.IGNORECASE),
            re.compile(r"credential", re.IGNORECASE),
            re.compile(r"card.number", re.IGNORECASE),
        ]

        self.value_patterns = [
            re.compile(r"\b\d{4}[- ]?\d{4}[- ]?\d{4}[- ]?\d{4}\b"),
            re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        ]

    def filter(self, record: dict[str, Any]) -> dict[str, Any]:
        """Filter and sanitize log record."""
        filtered_record = {}

        for key, value in record.items():
            if self._is_sensitive_field(key):
                filtered_record[key] = self._mask_value(value)
            elif isinstance(value, str):
                filtered_record[key] = self._sanitize_string_value(value)
            elif isinstance(value, dict):
                filtered_record[key] = self.filter(value)
            else:
                filtered_record[key] = value

        return filtered_record

    def _is_sensitive_field(self, field_name: str) -> bool:
        return any(pattern.search(field_name) for pattern in self.sensitive_patterns)

    def _mask_value(self, value: Any) -> str | None:
        if value is None:
            return None

        if self.preserve_length:
            return self.mask_char * len(str(value))
        return f"{self.mask_char * 3}[MASKED]"

    def _sanitize_string_value(self, value: str) -> str:
        sanitized = value
        for pattern in self.value_patterns:
            sanitized = pattern.sub(lambda m: self._mask_value(m.group()), sanitized)
        return sanitized


class StructuredLogger:
    """
    Structured logger accepting a message plus keyword fields.

    Without a pinned config the logger follows whatever ``configure_logging``
    installed last, so module-level loggers pick up later reconfiguration.

    Usage Example:
        logger = get_logger(__name__)
        logger.info("Due notifications processed", processed=3, failed=0)
    """

    def __init__(self, name: str, config: LogConfig | None = None):
        self.name = name
        self._config = config
        self._filter = SensitiveDataFilter()
        self._logger = structlog.get_logger(name)

        self._log_count = 0
        self._error_count = 0
        self._last_log_time: datetime | None = None

    @property
    def config(self) -> LogConfig:
        if self._config is not None:
            return self._config
        return _active_factory().config

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, **kwargs)
        self._error_count += 1

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log error with the active exception's traceback."""
        kwargs["exc_info"] = True
        self.error(message, **kwargs)

    def _log(self, level: LogLevel, message: str, **kwargs: Any) -> None:
        config = self.config
        if level.priority < config.level.priority:
            return

        if config.truncate_long_messages and len(message) > config.max_message_length:
            message = message[: config.max_message_length] + "...[truncated]"

        record = dict(kwargs)
        if config.enable_sensitive_data_filtering:
            record = self._filter.filter(record)

        try:
            getattr(self._logger, level.level_name.lower())(message, **record)
            self._log_count += 1
            self._last_log_time = datetime.now(UTC)
        except Exception as e:
            # Fall back to the stdlib logger when a processor rejects the record
            fallback_logger = logging.getLogger(self.name)
            with suppress(Exception):
                fallback_logger.error("Structured logging failed: %s", str(e))
            fallback_logger.log(level.to_logging_level(), message)

    def get_stats(self) -> dict[str, Any]:
        """Get logger statistics."""
        return {
            "logger_name": self.name,
            "log_count": self._log_count,
            "error_count": self._error_count,
            "last_log_time": self._last_log_time.isoformat()
            if self._last_log_time
            else None,
        }


class LoggerFactory:
    """Creates structured loggers and installs the structlog processor chain."""

    def __init__(self, config: LogConfig):
        self.config = config
        self._loggers: dict[str, StructuredLogger] = {}
        self._configured = False

    def configure_logging(self) -> None:
        """Configure global logging settings."""
        if self._configured:
            return

        processors: list[Any] = [
            merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
        ]

        if self.config.enable_timestamps:
            processors.append(structlog.processors.TimeStamper(fmt="iso"))

        if self.config.enable_caller_info:
            processors.append(
                structlog.processors.CallsiteParameterAdder(
                    parameters=[
                        structlog.processors.CallsiteParameter.FILENAME,
                        structlog.processors.CallsiteParameter.LINENO,
                        structlog.processors.CallsiteParameter.FUNC_NAME,
                    ]
                )
            )

        if self.config.enable_exception_info:
            processors.extend(
                [
                    structlog.processors.StackInfoRenderer(),
                    structlog.processors.format_exc_info,
                ]
            )

        processors.append(structlog.processors.UnicodeDecoder())

        if self.config.format == LogFormat.JSON:
            processors.append(structlog.processors.JSONRenderer(default=str))
        elif self.config.format == LogFormat.CONSOLE:
            processors.append(structlog.dev.ConsoleRenderer(colors=False))
        else:
            processors.append(structlog.processors.KeyValueRenderer())

        structlog.configure(
            processors=processors,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )

        level = self.config.level.to_logging_level()
        logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
        # basicConfig is a no-op once handlers exist
        logging.getLogger().setLevel(level)

        self._configured = True

    def get_logger(self, name: str) -> StructuredLogger:
        """Get or create structured logger."""
        if not self._configured:
            self.configure_logging()

        if name not in self._loggers:
            self._loggers[name] = StructuredLogger(name)

        return self._loggers[name]


_logger_factory: LoggerFactory | None = None


def configure_logging(config: LogConfig | None = None) -> None:
    """
    Configure global logging system.

    Loggers already handed out by ``get_logger`` follow the new config.

    Args:
        config: Logging configuration (built from settings if not provided)
    """
    global _logger_factory  # noqa: PLW0603

    if config is None:
        from csr_notifications.core.config import get_settings

        settings = get_settings()
        config = LogConfig(
            level=settings.log_level,
            format=settings.log_format,
            environment=settings.environment,
        )

    _logger_factory = LoggerFactory(config)
    _logger_factory.configure_logging()


def _active_factory() -> LoggerFactory:
    if _logger_factory is None:
        configure_logging()
    return _logger_factory


def get_logger(name: str) -> StructuredLogger:
    """
    Get structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        StructuredLogger: Logger following the active configuration
    """
    return _active_factory().get_logger(name)
