"""Database connection and session management.

Synchronous SQLAlchemy engine and session handling for the notification
store. The engine runs inside bounded batch invocations, so plain sessions
with commit-on-success / rollback-on-error scopes are all it needs.

Architecture:
- Base: declarative base for ORM models
- UTCDateTime: column type that always round-trips timezone-aware UTC
- SessionManager: engine lifecycle and transactional session scopes
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import DateTime, create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from csr_notifications.core.config import DatabaseConfig
from csr_notifications.core.errors import ConfigurationError, InfrastructureError
from csr_notifications.core.logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()


class RepositoryError(InfrastructureError):
    """Raised when the notification store fails."""

    default_code = "REPOSITORY_ERROR"


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns timezone-aware UTC."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes cannot be stored")
        return value.astimezone(UTC).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=UTC)


class SessionManager:
    """
    Engine and session lifecycle.

    Usage Example:
        manager = SessionManager(DatabaseConfig(url="sqlite://"))
        manager.create_schema()
        with manager.session_scope() as session:
            session.add(model)
    """

    def __init__(self, config: DatabaseConfig):
        if not config.url:
            raise ConfigurationError("Database URL is not configured", config_key="database_url")

        self.config = config
        self.engine: Engine = self._create_engine(config)
        self.session_factory = sessionmaker(
            self.engine,
            class_=Session,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("SessionManager initialized", dialect=self.engine.dialect.name)

    @staticmethod
    def _create_engine(config: DatabaseConfig) -> Engine:
        if config.url.startswith("sqlite"):
            # One shared connection so in-memory databases survive across sessions
            return create_engine(
                config.url,
                echo=config.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            config.url,
            echo=config.echo,
            pool_size=config.pool_size,
            pool_pre_ping=True,
        )

    def create_schema(self) -> None:
        """Create all tables registered on ``Base``."""
        # Register models on the metadata before creating tables
        from csr_notifications.modules.notification.infrastructure.models import (  # noqa: F401
            NotificationModel,
        )

        Base.metadata.create_all(self.engine)

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """
        Transactional session: commit on success, rollback on error.

        Raises:
            RepositoryError: If the database fails
        """
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Database session rolled back", error=str(e))
            raise RepositoryError(f"Database operation failed: {e}", cause=e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning("Database health check failed", error=str(e))
            return False
        return True

    def dispose(self) -> None:
        self.engine.dispose()


__all__ = ["Base", "RepositoryError", "SessionManager", "UTCDateTime"]
