"""Application configuration.

Settings are read from the process environment (optionally seeded from a
``.env`` file) by ``EnvironmentLoader`` and grouped into dataclasses for the
scheduling engine, the digest aggregator and the Celery driver.

Usage Example:
    settings = get_settings()
    limit = settings.scheduling.due_batch_limit
    channel = settings.digest.channel
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any

from csr_notifications.core.enums import Environment, LogFormat, LogLevel
from csr_notifications.core.errors import ConfigurationError

ENV_PREFIX = "CSR_NOTIFY_"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class EnvironmentLoader:
    """
    Environment variable loader with type conversion and validation.

    Keys are looked up with the ``CSR_NOTIFY_`` prefix. Values from the
    environment file never override variables already set in the process.
    """

    def __init__(self, env_file: str | None = ".env", prefix: str = ENV_PREFIX):
        self.env_file = env_file
        self.prefix = prefix
        self._load_env_file()

    def _load_env_file(self) -> None:
        """Load environment variables from file if it exists."""
        if not self.env_file or not os.path.exists(self.env_file):
            return

        try:
            with open(self.env_file, encoding="utf-8") as f:
                for raw_line in f:
                    line = raw_line.strip()

                    if not line or line.startswith("#") or "=" not in line:
                        continue

                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip()

                    if (value.startswith('"') and value.endswith('"')) or (
                        value.startswith("'") and value.endswith("'")
                    ):
                        value = value[1:-1]

                    if key not in os.environ:
                        os.environ[key] = value

        except OSError as e:
            raise ConfigurationError(
                f"Failed to load environment file {self.env_file}: {e}"
            ) from e

    def _raw(self, key: str) -> str | None:
        return os.environ.get(f"{self.prefix}{key}")

    def get_string(self, key: str, default: str | None = None) -> str | None:
        value = self._raw(key)
        return value if value is not None else default

    def get_integer(
        self, key: str, default: int, min_value: int | None = None
    ) -> int:
        value = self._raw(key)
        if value is None:
            return default

        try:
            result = int(value)
        except ValueError as e:
            raise ConfigurationError(
                f"{self.prefix}{key} must be an integer, got {value!r}",
                config_key=key,
            ) from e

        if min_value is not None and result < min_value:
            raise ConfigurationError(
                f"{self.prefix}{key} must be at least {min_value}", config_key=key
            )
        return result

    def get_boolean(self, key: str, default: bool) -> bool:
        value = self._raw(key)
        if value is None:
            return default

        normalized = value.strip().lower()
        if normalized in _TRUE_VALUES:
            return True
        if normalized in _FALSE_VALUES:
            return False
        raise ConfigurationError(
            f"{self.prefix}{key} must be a boolean, got {value!r}", config_key=key
        )

    def get_enum(self, key: str, enum_class: type[Enum], default: Enum) -> Any:
        value = self._raw(key)
        if value is None:
            return default

        for member in enum_class:
            candidates = {member.name.lower()}
            if isinstance(member.value, str):
                candidates.add(member.value.lower())
            if value.strip().lower() in candidates:
                return member

        raise ConfigurationError(
            f"{self.prefix}{key} has invalid value {value!r}", config_key=key
        )


@dataclass
class SchedulingConfig:
    """Scheduling engine limits and defaults."""

    due_batch_limit: int = 100
    recurrence_horizon_days: int = 14
    default_max_occurrences: int = 100
    max_occurrences_limit: int = 1000
    max_schedule_ahead_days: int = 365
    overdue_threshold_minutes: int = 60
    claim_before_dispatch: bool = True
    claim_timeout_minutes: int = 15

    def __post_init__(self):
        if self.due_batch_limit < 1:
            raise ConfigurationError(
                "Due batch limit must be at least 1", config_key="due_batch_limit"
            )
        if self.claim_timeout_minutes < 1:
            raise ConfigurationError(
                "Claim timeout must be at least 1 minute", config_key="claim_timeout_minutes"
            )
        if not 1 <= self.default_max_occurrences <= self.max_occurrences_limit:
            raise ConfigurationError(
                "Default max occurrences must be between 1 and the occurrence limit",
                config_key="default_max_occurrences",
            )


@dataclass
class DigestConfig:
    """Digest aggregation and delivery defaults."""

    max_notifications: int = 50
    channel: str = "email"
    priority: str = "low"
    sample_size: int = 3
    retention_days: int = 30

    def __post_init__(self):
        if not 1 <= self.max_notifications <= 1000:
            raise ConfigurationError(
                "Digest max notifications must be between 1 and 1000",
                config_key="max_notifications",
            )
        if self.retention_days < 1:
            raise ConfigurationError(
                "Digest retention must be at least 1 day", config_key="retention_days"
            )


@dataclass
class DatabaseConfig:
    """Notification store connection settings; no URL means the in-memory store."""

    url: str | None = None
    echo: bool = False
    pool_size: int = 5


@dataclass
class CeleryConfig:
    """Celery broker settings for the periodic driver."""

    broker_url: str = "redis://localhost:6379/0"
    result_backend: str | None = None
    task_always_eager: bool = False
    digest_hour_utc: int = 8


@dataclass
class Settings:
    """Main application settings."""

    app_name: str = "CSR Notification Engine"
    environment: Environment = Environment.DEVELOPMENT
    log_level: LogLevel = LogLevel.INFO
    log_format: LogFormat = LogFormat.JSON
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    digest: DigestConfig = field(default_factory=DigestConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    celery: CeleryConfig = field(default_factory=CeleryConfig)

    @classmethod
    def from_environment(cls, env_file: str | None = ".env") -> "Settings":
        """Build settings from environment variables."""
        loader = EnvironmentLoader(env_file)

        return cls(
            app_name=loader.get_string("APP_NAME", "CSR Notification Engine"),
            environment=loader.get_enum(
                "ENVIRONMENT", Environment, Environment.DEVELOPMENT
            ),
            log_level=loader.get_enum("LOG_LEVEL", LogLevel, LogLevel.INFO),
            log_format=loader.get_enum("LOG_FORMAT", LogFormat, LogFormat.JSON),
            scheduling=SchedulingConfig(
                due_batch_limit=loader.get_integer("DUE_BATCH_LIMIT", 100, min_value=1),
                recurrence_horizon_days=loader.get_integer(
                    "RECURRENCE_HORIZON_DAYS", 14, min_value=1
                ),
                default_max_occurrences=loader.get_integer(
                    "DEFAULT_MAX_OCCURRENCES", 100, min_value=1
                ),
                max_occurrences_limit=loader.get_integer(
                    "MAX_OCCURRENCES_LIMIT", 1000, min_value=1
                ),
                max_schedule_ahead_days=loader.get_integer(
                    "MAX_SCHEDULE_AHEAD_DAYS", 365, min_value=1
                ),
                overdue_threshold_minutes=loader.get_integer(
                    "OVERDUE_THRESHOLD_MINUTES", 60, min_value=1
                ),
                claim_before_dispatch=loader.get_boolean("CLAIM_BEFORE_DISPATCH", True),
                claim_timeout_minutes=loader.get_integer(
                    "CLAIM_TIMEOUT_MINUTES", 15, min_value=1
                ),
            ),
            digest=DigestConfig(
                max_notifications=loader.get_integer(
                    "DIGEST_MAX_NOTIFICATIONS", 50, min_value=1
                ),
                channel=loader.get_string("DIGEST_CHANNEL", "email"),
                priority=loader.get_string("DIGEST_PRIORITY", "low"),
                sample_size=loader.get_integer("DIGEST_SAMPLE_SIZE", 3, min_value=1),
                retention_days=loader.get_integer("DIGEST_RETENTION_DAYS", 30, min_value=1),
            ),
            database=DatabaseConfig(
                url=loader.get_string("DATABASE_URL"),
                echo=loader.get_boolean("DATABASE_ECHO", False),
                pool_size=loader.get_integer("DATABASE_POOL_SIZE", 5, min_value=1),
            ),
            celery=CeleryConfig(
                broker_url=loader.get_string(
                    "CELERY_BROKER_URL", "redis://localhost:6379/0"
                ),
                result_backend=loader.get_string("CELERY_RESULT_BACKEND"),
                task_always_eager=loader.get_boolean("CELERY_TASK_ALWAYS_EAGER", False),
                digest_hour_utc=loader.get_integer("DIGEST_HOUR_UTC", 8, min_value=0),
            ),
        )


@lru_cache
def get_settings(env_file: str | None = ".env") -> Settings:
    """
    Get cached settings instance.

    Args:
        env_file: Environment file to load

    Returns:
        Settings: Application settings
    """
    return Settings.from_environment(env_file)


__all__ = [
    "CeleryConfig",
    "DatabaseConfig",
    "DigestConfig",
    "EnvironmentLoader",
    "SchedulingConfig",
    "Settings",
    "get_settings",
]
