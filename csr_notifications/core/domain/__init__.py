"""Domain base classes."""

from csr_notifications.core.domain.base import Entity, ValueObject

__all__ = ["Entity", "ValueObject"]
