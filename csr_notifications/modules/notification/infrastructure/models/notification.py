"""SQLAlchemy model for Notification entity."""

from sqlalchemy import JSON, Boolean, Column, Enum, Index, String, Text, Uuid

from csr_notifications.core.database import Base, UTCDateTime
from csr_notifications.modules.notification.domain.enums import (
    NotificationChannel,
    NotificationPriority,
    NotificationStatus,
)


class NotificationModel(Base):
    """Database model for notifications."""

    __tablename__ = "notifications"

    # Primary key
    id = Column(Uuid(as_uuid=True), primary_key=True)

    # Core fields
    recipient_id = Column(String(64), nullable=False, index=True)
    sender_id = Column(String(64), nullable=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    notification_type = Column(String(100), nullable=False, index=True)
    channel = Column(Enum(NotificationChannel), nullable=False)
    priority = Column(
        Enum(NotificationPriority), nullable=False, default=NotificationPriority.NORMAL
    )
    data = Column(JSON, nullable=False, default=dict)
    # "metadata" is reserved on declarative models
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    # Status tracking
    status = Column(
        Enum(NotificationStatus),
        nullable=False,
        default=NotificationStatus.PENDING,
        index=True,
    )

    # Timestamps
    created_at = Column(UTCDateTime, nullable=False)
    updated_at = Column(UTCDateTime, nullable=False)
    scheduled_for = Column(UTCDateTime, nullable=True, index=True)
    sent_at = Column(UTCDateTime, nullable=True)
    read_at = Column(UTCDateTime, nullable=True)

    # Series membership
    schedule_id = Column(String(64), nullable=True, index=True)
    parent_notification_id = Column(Uuid(as_uuid=True), nullable=True)
    recurrence = Column(JSON, nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_active = Column(Boolean, nullable=False, default=False)
    recurring_instance = Column(Boolean, nullable=False, default=False)
    reschedule_history = Column(JSON, nullable=False, default=list)

    # Deduplication
    idempotency_key = Column(String(255), nullable=True, unique=True, index=True)

    # Indexes for common queries
    __table_args__ = (
        Index("idx_notifications_due", "status", "scheduled_for"),
        Index("idx_notifications_recipient_created", "recipient_id", "created_at"),
        Index(
            "idx_notifications_series",
            "is_recurring",
            "recurring_active",
            "recurring_instance",
        ),
    )
