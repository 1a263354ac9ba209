"""Notification module dependency configuration.

The host application supplies the delivery dispatcher and the digest
preference source; everything else is built from settings. Periodic tasks
resolve the configured services from here.
"""

import threading
from dataclasses import dataclass

from csr_notifications.core.clock import Clock, utc_now
from csr_notifications.core.config import Settings, get_settings
from csr_notifications.core.database import SessionManager
from csr_notifications.core.errors import ConfigurationError
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.application.services import (
    NotificationDigestService,
    NotificationSchedulingService,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
)
from csr_notifications.modules.notification.domain.interfaces.services import (
    IDigestPreferenceSource,
    IDigestRenderer,
    INotificationDispatcher,
)
from csr_notifications.modules.notification.infrastructure.engines import (
    JinjaDigestRenderer,
)
from csr_notifications.modules.notification.infrastructure.repositories import (
    InMemoryNotificationRepository,
    NotificationRepository,
)

logger = get_logger(__name__)


@dataclass
class NotificationServices:
    """Configured facades sharing one repository."""

    repository: INotificationRepository
    scheduling: NotificationSchedulingService
    digest: NotificationDigestService


_services: NotificationServices | None = None
_lock = threading.Lock()


def build_repository(settings: Settings, clock: Clock = utc_now) -> INotificationRepository:
    """SQL store when a database URL is configured, in-memory store otherwise."""
    if settings.database.url:
        session_manager = SessionManager(settings.database)
        session_manager.create_schema()
        return NotificationRepository(session_manager, clock)

    logger.warning("No database URL configured, using the in-memory notification store")
    return InMemoryNotificationRepository(clock)


def configure_notification_services(
    dispatcher: INotificationDispatcher,
    preferences: IDigestPreferenceSource,
    settings: Settings | None = None,
    repository: INotificationRepository | None = None,
    renderer: IDigestRenderer | None = None,
    clock: Clock = utc_now,
) -> NotificationServices:
    """
    Build and register the notification facades.

    Args:
        dispatcher: Channel delivery collaborator
        preferences: Source of users opted in to digests
        settings: Application settings (cached settings if not provided)
        repository: Notification store (built from settings if not provided)
        renderer: Digest HTML renderer (Jinja2 renderer if not provided)
        clock: Time source shared by all services

    Returns:
        NotificationServices: The registered services
    """
    global _services  # noqa: PLW0603

    settings = settings or get_settings()
    repository = repository or build_repository(settings, clock)

    services = NotificationServices(
        repository=repository,
        scheduling=NotificationSchedulingService(
            repository, dispatcher, config=settings.scheduling, clock=clock
        ),
        digest=NotificationDigestService(
            repository,
            preferences,
            renderer or JinjaDigestRenderer(),
            config=settings.digest,
            clock=clock,
        ),
    )

    with _lock:
        _services = services

    logger.info(
        "Notification services configured",
        repository=type(repository).__name__,
        dispatcher=type(dispatcher).__name__,
    )
    return services


def get_notification_services() -> NotificationServices:
    """
    Get the registered notification services.

    Raises:
        ConfigurationError: If ``configure_notification_services`` was never called
    """
    with _lock:
        services = _services

    if services is None:
        raise ConfigurationError(
            "Notification services are not configured",
            config_key="notification_services",
        )
    return services


def get_scheduling_service() -> NotificationSchedulingService:
    return get_notification_services().scheduling


def get_digest_service() -> NotificationDigestService:
    return get_notification_services().digest


def reset_notification_services() -> None:
    """Forget the registered services."""
    global _services  # noqa: PLW0603

    with _lock:
        _services = None


__all__ = [
    "NotificationServices",
    "build_repository",
    "configure_notification_services",
    "get_digest_service",
    "get_notification_services",
    "get_scheduling_service",
    "reset_notification_services",
]
