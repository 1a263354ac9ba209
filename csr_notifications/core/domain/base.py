"""Domain primitives.

Framework-agnostic base classes for the domain layer:

- ValueObject: immutable objects compared by their attributes
- Entity: mutable objects with identity and lifecycle timestamps
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from csr_notifications.core.clock import to_utc
from csr_notifications.core.errors import ValidationError


class ValueObject(ABC):
    """
    Base value object.

    Subclasses validate in ``__init__`` and call ``_freeze()`` once every
    attribute is assigned; later assignment raises ``AttributeError``.

    Usage Example:
        class Window(ValueObject):
            def __init__(self, start: datetime, end: datetime):
                super().__init__()
                if start > end:
                    raise ValidationError("start must not be after end")
                self.start = start
                self.end = end
                self._freeze()
    """

    def __init__(self):
        self._frozen = False

    def _freeze(self) -> None:
        """Mark the object as frozen (immutable)."""
        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(f"Cannot modify immutable {self.__class__.__name__}")
        super().__setattr__(name, value)

    def __delattr__(self, name: str) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(
                f"Cannot delete attribute from immutable {self.__class__.__name__}"
            )
        super().__delattr__(name)

    def _public_attrs(self) -> dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if not k.startswith("_")}

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self._public_attrs() == other._public_attrs()

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, tuple(sorted(self._public_attrs().items()))))

    def __repr__(self) -> str:
        attrs = ", ".join(f"{k}={v!r}" for k, v in self._public_attrs().items())
        return f"{self.__class__.__name__}({attrs})"

    @abstractmethod
    def __str__(self) -> str:
        """String representation. Must be implemented by subclasses."""


class Entity(ABC):
    """
    Base entity with identity and lifecycle timestamps.

    Entities are equal when they share a type and an ID. Timestamps are
    timezone-aware UTC.
    """

    def __init__(
        self, entity_id: UUID | None = None, created_at: datetime | None = None
    ):
        self.id = entity_id or uuid4()
        self.created_at = to_utc(created_at) or datetime.now(UTC)
        self.updated_at = self.created_at

        self._validate_entity()

    def _validate_entity(self) -> None:
        if not isinstance(self.id, UUID):
            raise ValidationError("Entity ID must be a UUID")

        if not isinstance(self.created_at, datetime):
            raise ValidationError("Entity created_at must be a datetime")

    def mark_modified(self, at: datetime | None = None) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = at or datetime.now(UTC)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, self.__class__):
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash((self.__class__.__name__, self.id))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id}, created_at={self.created_at})"

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.id})"
