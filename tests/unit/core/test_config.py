"""Tests for environment-driven configuration."""

import pytest

from csr_notifications.core.config import (
    DigestConfig,
    EnvironmentLoader,
    SchedulingConfig,
    Settings,
)
from csr_notifications.core.enums import Environment
from csr_notifications.core.errors import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every CSR_NOTIFY_ variable for the test."""
    import os

    for key in list(os.environ):
        if key.startswith("CSR_NOTIFY_"):
            monkeypatch.delenv(key)
    return monkeypatch


class TestEnvironmentLoader:
    """Test suite for typed environment lookups."""

    def test_typed_values(self, clean_env):
        clean_env.setenv("CSR_NOTIFY_DUE_BATCH_LIMIT", "25")
        clean_env.setenv("CSR_NOTIFY_CLAIM_BEFORE_DISPATCH", "no")
        loader = EnvironmentLoader(env_file=None)

        assert loader.get_integer("DUE_BATCH_LIMIT", 100) == 25
        assert loader.get_boolean("CLAIM_BEFORE_DISPATCH", True) is False
        assert loader.get_string("MISSING", "fallback") == "fallback"

    def test_invalid_integer(self, clean_env):
        clean_env.setenv("CSR_NOTIFY_DUE_BATCH_LIMIT", "lots")

        with pytest.raises(ConfigurationError):
            EnvironmentLoader(env_file=None).get_integer("DUE_BATCH_LIMIT", 100)

    def test_env_file_does_not_override_process(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# scheduling\nCSR_NOTIFY_DUE_BATCH_LIMIT=10\nCSR_NOTIFY_DIGEST_CHANNEL='push'\n"
        )
        clean_env.setenv("CSR_NOTIFY_DUE_BATCH_LIMIT", "20")

        loader = EnvironmentLoader(env_file=str(env_file))

        assert loader.get_integer("DUE_BATCH_LIMIT", 100) == 20
        assert loader.get_string("DIGEST_CHANNEL") == "push"


class TestSettings:
    """Test suite for settings assembly."""

    def test_defaults(self, clean_env):
        settings = Settings.from_environment(env_file=None)

        assert settings.scheduling == SchedulingConfig()
        assert settings.digest == DigestConfig()
        assert settings.database.url is None
        assert settings.celery.digest_hour_utc == 8

    def test_overrides(self, clean_env):
        clean_env.setenv("CSR_NOTIFY_ENVIRONMENT", "test")
        clean_env.setenv("CSR_NOTIFY_RECURRENCE_HORIZON_DAYS", "7")
        clean_env.setenv("CSR_NOTIFY_DATABASE_URL", "sqlite://")
        clean_env.setenv("CSR_NOTIFY_DIGEST_MAX_NOTIFICATIONS", "20")
        clean_env.setenv("CSR_NOTIFY_CLAIM_TIMEOUT_MINUTES", "5")
        clean_env.setenv("CSR_NOTIFY_DIGEST_RETENTION_DAYS", "90")

        settings = Settings.from_environment(env_file=None)

        assert settings.environment is Environment.TESTING
        assert settings.scheduling.recurrence_horizon_days == 7
        assert settings.database.url == "sqlite://"
        assert settings.digest.max_notifications == 20
        assert settings.scheduling.claim_timeout_minutes == 5
        assert settings.digest.retention_days == 90

    def test_invalid_scheduling_defaults(self):
        with pytest.raises(ConfigurationError):
            SchedulingConfig(default_max_occurrences=5000)

    def test_invalid_retention_and_claim_timeout(self):
        with pytest.raises(ConfigurationError):
            SchedulingConfig(claim_timeout_minutes=0)
        with pytest.raises(ConfigurationError):
            DigestConfig(retention_days=0)
