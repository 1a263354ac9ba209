"""Notification rendering engines."""

from csr_notifications.modules.notification.infrastructure.engines.digest_renderer import (
    JinjaDigestRenderer,
)

__all__ = ["JinjaDigestRenderer"]
