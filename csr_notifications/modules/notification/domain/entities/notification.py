"""Notification entity representing a single schedulable notification.

The entity owns its lifecycle: status transitions are validated against the
closed ``NotificationStatus`` table, rescheduling appends to a typed audit
trail, and recurring series membership lives in typed fields rather than in
the free-form ``metadata`` map.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from csr_notifications.core.clock import to_utc
from csr_notifications.core.errors import ValidationError
from csr_notifications.core.domain.base import Entity
from csr_notifications.modules.notification.domain.enums import (
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)
from csr_notifications.modules.notification.domain.errors import (
    InvalidStateError,
    InvalidTimeError,
    MissingConfigurationError,
)
from csr_notifications.modules.notification.domain.value_objects import (
    RecurrenceConfig,
    RescheduleHistoryEntry,
)

RecipientId = UUID | str | int


@dataclass
class NotificationDraft:
    """Everything the creation path needs to persist a new notification."""

    recipient_id: RecipientId
    title: str
    message: str
    notification_type: str
    channel: NotificationChannel = NotificationChannel.DATABASE
    priority: NotificationPriority = NotificationPriority.NORMAL
    sender_id: RecipientId | None = None
    data: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    scheduled_for: datetime | None = None
    status: NotificationStatus | None = None
    schedule_id: str | None = None
    parent_notification_id: UUID | None = None
    recurrence: RecurrenceConfig | None = None
    is_recurring: bool = False
    recurring_active: bool = False
    recurring_instance: bool = False
    idempotency_key: str | None = None


class Notification(Entity):
    """A notification with delivery lifecycle and optional series membership."""

    def __init__(
        self,
        recipient_id: RecipientId,
        title: str,
        message: str,
        notification_type: str,
        channel: NotificationChannel = NotificationChannel.DATABASE,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        sender_id: RecipientId | None = None,
        data: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        status: NotificationStatus | None = None,
        scheduled_for: datetime | None = None,
        sent_at: datetime | None = None,
        read_at: datetime | None = None,
        schedule_id: str | None = None,
        parent_notification_id: UUID | None = None,
        recurrence: RecurrenceConfig | None = None,
        is_recurring: bool = False,
        recurring_active: bool = False,
        recurring_instance: bool = False,
        reschedule_history: list[RescheduleHistoryEntry] | None = None,
        idempotency_key: str | None = None,
        entity_id: UUID | None = None,
        created_at: datetime | None = None,
    ):
        """Initialize notification entity.

        Args:
            recipient_id: ID of the recipient user
            title: Short headline
            message: Plain text body
            notification_type: Free-form category such as ``donation_received``
            channel: Logical delivery channel
            priority: Notification priority
            sender_id: Optional sending user
            data: Channel payload
            metadata: Delivery options, digest linkage and failure details
            status: Initial status; derived from ``scheduled_for`` when omitted
            scheduled_for: When the notification becomes due (None means now)
            schedule_id: Series identifier shared by recurring instances
            parent_notification_id: Template this instance was generated from
            recurrence: Recurrence rule for series templates
            is_recurring: Whether this notification belongs to a series
            recurring_active: Whether the series still generates instances
            recurring_instance: Whether this notification was generated
            reschedule_history: Prior reschedule audit entries
            idempotency_key: Key for duplicate prevention
            entity_id: Optional entity ID
            created_at: Optional creation timestamp
        """
        super().__init__(entity_id, created_at)

        if recipient_id is None or recipient_id == "":
            raise ValidationError("Recipient ID is required", field="recipient_id")
        if not title or not title.strip():
            raise ValidationError("Title cannot be empty", field="title")
        if not message or not message.strip():
            raise ValidationError("Message cannot be empty", field="message")
        if not notification_type or not notification_type.strip():
            raise ValidationError("Notification type is required", field="notification_type")
        if not isinstance(channel, NotificationChannel):
            raise ValidationError(f"Invalid channel: {channel!r}", field="channel")
        if not isinstance(priority, NotificationPriority):
            raise ValidationError(f"Invalid priority: {priority!r}", field="priority")

        self.recipient_id = recipient_id
        self.sender_id = sender_id
        self.title = title.strip()
        self.message = message.strip()
        self.notification_type = notification_type.strip()
        self.channel = channel
        self.priority = priority
        self.data = data or {}
        self.metadata = metadata or {}

        # Stored and compared in UTC so series keys survive a store round trip
        self.scheduled_for = to_utc(scheduled_for)
        self.sent_at = to_utc(sent_at)
        self.read_at = to_utc(read_at)
        self.status = status or (
            NotificationStatus.SCHEDULED
            if scheduled_for is not None
            else NotificationStatus.PENDING
        )

        # Series membership
        self.schedule_id = schedule_id
        self.parent_notification_id = parent_notification_id
        self.recurrence = recurrence
        self.is_recurring = is_recurring
        self.recurring_active = recurring_active
        self.recurring_instance = recurring_instance

        self.reschedule_history: list[RescheduleHistoryEntry] = list(
            reschedule_history or []
        )
        self.idempotency_key = idempotency_key

        self._validate_invariants()

    @classmethod
    def from_draft(
        cls,
        draft: NotificationDraft,
        entity_id: UUID | None = None,
        created_at: datetime | None = None,
    ) -> "Notification":
        """Materialize a draft as a new entity."""
        return cls(
            recipient_id=draft.recipient_id,
            title=draft.title,
            message=draft.message,
            notification_type=draft.notification_type,
            channel=draft.channel,
            priority=draft.priority,
            sender_id=draft.sender_id,
            data=dict(draft.data),
            metadata=dict(draft.metadata),
            status=draft.status,
            scheduled_for=draft.scheduled_for,
            schedule_id=draft.schedule_id,
            parent_notification_id=draft.parent_notification_id,
            recurrence=draft.recurrence,
            is_recurring=draft.is_recurring,
            recurring_active=draft.recurring_active,
            recurring_instance=draft.recurring_instance,
            idempotency_key=draft.idempotency_key,
            entity_id=entity_id,
            created_at=created_at,
        )

    def _validate_invariants(self) -> None:
        if self.read_at is not None and not self.status.allows_read_marker():
            raise ValidationError(
                f"read_at cannot be set on a {self.status.value} notification",
                field="read_at",
            )
        if (
            self.scheduled_for is not None
            and self.scheduled_for > self.created_at
            and self.status == NotificationStatus.PENDING
        ):
            raise ValidationError(
                "A notification scheduled in the future must have status scheduled",
                field="status",
            )

    @property
    def series_key(self) -> str:
        """Identifier shared by every member of this notification's series."""
        return self.schedule_id or str(self.id)

    @property
    def is_template(self) -> bool:
        """Check if this notification drives generation of a series."""
        return self.is_recurring and not self.recurring_instance

    def is_due(self, now: datetime) -> bool:
        """Check if the notification is scheduled and its time has passed."""
        return (
            self.status == NotificationStatus.SCHEDULED
            and self.scheduled_for is not None
            and self.scheduled_for <= now
        )

    def require_recurrence(self) -> RecurrenceConfig:
        """Get the recurrence rule.

        Raises:
            MissingConfigurationError: If the notification carries none
        """
        if self.recurrence is None:
            raise MissingConfigurationError(notification_id=self.id)
        return self.recurrence

    def transition_to(self, new_status: NotificationStatus, at: datetime) -> None:
        """Move to ``new_status``.

        Raises:
            InvalidStateError: If the status table forbids the transition
        """
        if not self.status.can_transition_to(new_status):
            raise InvalidStateError(
                f"Cannot transition from {self.status.value} to {new_status.value}",
                notification_id=self.id,
                current_status=self.status.value,
            )

        self.status = new_status
        if new_status == NotificationStatus.SENT:
            self.sent_at = at
        elif new_status == NotificationStatus.READ:
            self.read_at = at
        self.mark_modified(at)

    def mark_sent(self, at: datetime, provider_message_id: str | None = None) -> None:
        self.transition_to(NotificationStatus.SENT, at)
        if provider_message_id:
            self.metadata["provider_message_id"] = provider_message_id

    def mark_failed(self, at: datetime, reason: str) -> None:
        self.transition_to(NotificationStatus.FAILED, at)
        self.metadata["failure"] = {"reason": reason, "failed_at": at.isoformat()}

    def cancel(self, at: datetime, reason: str | None = None) -> None:
        """Cancel a notification that has not been dispatched yet.

        Raises:
            InvalidStateError: If the notification is no longer pending or scheduled
        """
        if not self.status.is_cancellable():
            raise InvalidStateError(
                f"Cannot cancel notification in {self.status.value} status",
                notification_id=self.id,
                current_status=self.status.value,
            )

        self.transition_to(NotificationStatus.CANCELLED, at)
        self.metadata["cancellation"] = {
            "cancelled_at": at.isoformat(),
            "reason": reason or "Notification cancelled",
        }

    def reschedule(
        self, new_time: datetime, at: datetime, reason: str | None = None
    ) -> RescheduleHistoryEntry:
        """Move the notification to ``new_time`` and record the change.

        Prior history entries are preserved; a pending notification becomes
        scheduled.

        Raises:
            InvalidStateError: If status is not pending or scheduled
            InvalidTimeError: If ``new_time`` is not strictly after ``at``
        """
        if not self.status.is_reschedulable():
            raise InvalidStateError(
                f"Cannot reschedule notification in {self.status.value} status",
                notification_id=self.id,
                current_status=self.status.value,
            )

        if new_time <= at:
            raise InvalidTimeError(
                "New scheduled time must be in the future", requested_time=new_time
            )

        new_time = to_utc(new_time)
        entry = RescheduleHistoryEntry(
            rescheduled_at=at,
            previous_scheduled_for=self.scheduled_for,
            new_scheduled_for=new_time,
            reason=reason,
        )
        self.reschedule_history.append(entry)
        self.scheduled_for = new_time
        if self.status == NotificationStatus.PENDING:
            self.status = NotificationStatus.SCHEDULED
        self.mark_modified(at)
        return entry

    def deactivate_series(self, at: datetime) -> None:
        self.recurring_active = False
        self.mark_modified(at)

    def build_instance(self, scheduled_for: datetime, generated_at: datetime) -> NotificationDraft:
        """Draft the next generated member of this series.

        The template itself is never modified.
        """
        return NotificationDraft(
            recipient_id=self.recipient_id,
            title=self.title,
            message=self.message,
            notification_type=self.notification_type,
            channel=self.channel,
            priority=self.priority,
            sender_id=self.sender_id,
            data=dict(self.data),
            metadata={
                "delivery_options": dict(self.metadata.get("delivery_options", {})),
                "generated_at": generated_at.isoformat(),
            },
            scheduled_for=scheduled_for,
            status=NotificationStatus.SCHEDULED,
            schedule_id=self.series_key,
            parent_notification_id=self.id,
            is_recurring=True,
            recurring_active=True,
            recurring_instance=True,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for task results and digest snapshots."""
        return {
            "id": str(self.id),
            "recipient_id": str(self.recipient_id),
            "sender_id": str(self.sender_id) if self.sender_id is not None else None,
            "title": self.title,
            "message": self.message,
            "type": self.notification_type,
            "channel": self.channel.value,
            "priority": self.priority.value,
            "status": self.status.value,
            "data": self.data,
            "metadata": self.metadata,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "schedule_id": self.schedule_id,
            "parent_notification_id": str(self.parent_notification_id)
            if self.parent_notification_id
            else None,
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "is_recurring": self.is_recurring,
            "recurring_active": self.recurring_active,
            "recurring_instance": self.recurring_instance,
            "reschedule_history": [entry.to_dict() for entry in self.reschedule_history],
        }

    def __str__(self) -> str:
        return (
            f"Notification({self.id}) {self.notification_type} to {self.recipient_id} "
            f"via {self.channel.value} - {self.status.value}"
        )
