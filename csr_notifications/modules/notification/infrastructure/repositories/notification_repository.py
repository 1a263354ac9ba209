"""Repository implementation for Notification entity."""

from collections import Counter
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from csr_notifications.core.clock import Clock, utc_now
from csr_notifications.core.database import SessionManager
from csr_notifications.core.logging import get_logger
from csr_notifications.modules.notification.domain.entities.notification import (
    Notification,
    NotificationDraft,
)
from csr_notifications.modules.notification.domain.enums import NotificationStatus
from csr_notifications.modules.notification.domain.errors import (
    DuplicateNotificationError,
    InvalidDataError,
)
from csr_notifications.modules.notification.domain.interfaces.repositories import (
    INotificationRepository,
    NotificationFilters,
)
from csr_notifications.modules.notification.domain.value_objects import (
    RecurrenceConfig,
    RescheduleHistoryEntry,
)
from csr_notifications.modules.notification.infrastructure.models import (
    NotificationModel,
)

logger = get_logger(__name__)

GROUPABLE_COLUMNS = {
    "priority": NotificationModel.priority,
    "type": NotificationModel.notification_type,
    "channel": NotificationModel.channel,
    "status": NotificationModel.status,
}

UPDATABLE_COLUMNS = {
    "status": "status",
    "scheduled_for": "scheduled_for",
    "sent_at": "sent_at",
    "read_at": "read_at",
    "metadata": "metadata_",
    "data": "data",
    "recurring_active": "recurring_active",
    "reschedule_history": "reschedule_history",
    "updated_at": "updated_at",
}


class NotificationRepository(INotificationRepository):
    """Repository for managing notification persistence with SQLAlchemy."""

    def __init__(self, session_manager: SessionManager, clock: Clock = utc_now):
        """Initialize repository with a session manager."""
        self.session_manager = session_manager
        self.clock = clock

    def find_by_id(self, notification_id: UUID) -> Notification | None:
        with self.session_manager.session_scope() as session:
            model = session.get(NotificationModel, notification_id)
            return self._to_entity(model) if model else None

    def find_by_filters(
        self, filters: NotificationFilters, limit: int | None = None
    ) -> list[Notification]:
        stmt = select(NotificationModel).where(*self._conditions(filters))

        if filters.order_by:
            column = getattr(NotificationModel, filters.order_by)
            # Rows without a value sort last in either direction
            stmt = stmt.order_by(
                column.is_(None), column.desc() if filters.descending else column.asc()
            )

        if limit is not None:
            stmt = stmt.limit(limit)

        with self.session_manager.session_scope() as session:
            return [self._to_entity(model) for model in session.scalars(stmt)]

    def count_by_filters(self, filters: NotificationFilters) -> int:
        stmt = select(func.count()).select_from(NotificationModel).where(
            *self._conditions(filters)
        )
        with self.session_manager.session_scope() as session:
            return session.scalar(stmt) or 0

    def count_by_field(self, filters: NotificationFilters, field_name: str) -> dict[str, int]:
        conditions = self._conditions(filters)

        with self.session_manager.session_scope() as session:
            if field_name.startswith("metadata."):
                key = field_name.split(".", 1)[1]
                rows = session.scalars(select(NotificationModel.metadata_).where(*conditions))
                counts = Counter(
                    str(metadata[key])
                    for metadata in rows
                    if metadata and metadata.get(key) is not None
                )
                return dict(counts)

            column = GROUPABLE_COLUMNS.get(field_name)
            if column is None:
                raise InvalidDataError(f"Cannot group by {field_name!r}", field="field_name")

            stmt = select(column, func.count()).where(*conditions).group_by(column)
            return {
                getattr(value, "value", value): count
                for value, count in session.execute(stmt)
            }

    def update_by_id(
        self,
        notification_id: UUID,
        fields: dict[str, Any],
        expected_status: NotificationStatus | None = None,
    ) -> bool:
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise InvalidDataError(
                f"Fields cannot be updated: {', '.join(sorted(unknown))}", field="fields"
            )

        fields = dict(fields)
        if "reschedule_history" in fields:
            fields["reschedule_history"] = [
                entry.to_dict() for entry in fields["reschedule_history"]
            ]
        fields.setdefault("updated_at", self.clock())
        values = {
            getattr(NotificationModel, UPDATABLE_COLUMNS[name]): value
            for name, value in fields.items()
        }

        stmt = update(NotificationModel).where(NotificationModel.id == notification_id)
        if expected_status is not None:
            stmt = stmt.where(NotificationModel.status == expected_status)
        stmt = stmt.values(values).execution_options(synchronize_session=False)

        with self.session_manager.session_scope() as session:
            result = session.execute(stmt)
            return result.rowcount == 1

    def create(self, draft: NotificationDraft) -> Notification:
        notification = Notification.from_draft(draft, created_at=self.clock())

        with self.session_manager.session_scope() as session:
            session.add(self._to_model(notification))
            try:
                session.flush()
            except IntegrityError as e:
                if notification.idempotency_key is None:
                    raise
                logger.info(
                    "Duplicate notification rejected",
                    idempotency_key=notification.idempotency_key,
                )
                raise DuplicateNotificationError(
                    notification.idempotency_key, None, cause=e
                ) from e

        return notification

    def delete_by_filters(self, filters: NotificationFilters) -> int:
        stmt = (
            delete(NotificationModel)
            .where(*self._conditions(filters))
            .execution_options(synchronize_session=False)
        )
        with self.session_manager.session_scope() as session:
            return session.execute(stmt).rowcount

    @staticmethod
    def _conditions(filters: NotificationFilters) -> list[Any]:
        m, f = NotificationModel, filters
        conditions: list[Any] = []

        if f.status is not None:
            conditions.append(m.status == f.status)
        if f.statuses is not None:
            conditions.append(m.status.in_(f.statuses))
        if f.scheduled_for_lte is not None:
            conditions.append(m.scheduled_for <= f.scheduled_for_lte)
        if f.scheduled_for_gte is not None:
            conditions.append(m.scheduled_for >= f.scheduled_for_gte)
        if f.scheduled_for_lt is not None:
            conditions.append(m.scheduled_for < f.scheduled_for_lt)
        if f.schedule_id is not None:
            conditions.append(m.schedule_id == f.schedule_id)
        if f.is_recurring is not None:
            conditions.append(m.is_recurring.is_(f.is_recurring))
        if f.recurring_active is not None:
            conditions.append(m.recurring_active.is_(f.recurring_active))
        if f.recurring_instance is not None:
            conditions.append(m.recurring_instance.is_(f.recurring_instance))
        if f.recipient_id is not None:
            conditions.append(m.recipient_id == str(f.recipient_id))
        if f.notification_type is not None:
            conditions.append(m.notification_type == f.notification_type)
        if f.exclude_type is not None:
            conditions.append(m.notification_type != f.exclude_type)
        if f.channel is not None:
            conditions.append(m.channel == f.channel)
        if f.created_from is not None:
            conditions.append(m.created_at >= f.created_from)
        if f.created_to is not None:
            conditions.append(m.created_at <= f.created_to)
        if f.updated_to is not None:
            conditions.append(m.updated_at <= f.updated_to)
        if f.unread is True:
            conditions.append(m.read_at.is_(None))
        elif f.unread is False:
            conditions.append(m.read_at.is_not(None))
        if f.idempotency_key is not None:
            conditions.append(m.idempotency_key == f.idempotency_key)

        return conditions

    @staticmethod
    def _to_model(notification: Notification) -> NotificationModel:
        return NotificationModel(
            id=notification.id,
            recipient_id=str(notification.recipient_id),
            sender_id=str(notification.sender_id)
            if notification.sender_id is not None
            else None,
            title=notification.title,
            message=notification.message,
            notification_type=notification.notification_type,
            channel=notification.channel,
            priority=notification.priority,
            data=notification.data,
            metadata_=notification.metadata,
            status=notification.status,
            created_at=notification.created_at,
            updated_at=notification.updated_at,
            scheduled_for=notification.scheduled_for,
            sent_at=notification.sent_at,
            read_at=notification.read_at,
            schedule_id=notification.schedule_id,
            parent_notification_id=notification.parent_notification_id,
            recurrence=notification.recurrence.to_dict() if notification.recurrence else None,
            is_recurring=notification.is_recurring,
            recurring_active=notification.recurring_active,
            recurring_instance=notification.recurring_instance,
            reschedule_history=[entry.to_dict() for entry in notification.reschedule_history],
            idempotency_key=notification.idempotency_key,
        )

    @staticmethod
    def _to_entity(model: NotificationModel) -> Notification:
        notification = Notification(
            recipient_id=model.recipient_id,
            sender_id=model.sender_id,
            title=model.title,
            message=model.message,
            notification_type=model.notification_type,
            channel=model.channel,
            priority=model.priority,
            data=dict(model.data or {}),
            metadata=dict(model.metadata_ or {}),
            status=model.status,
            scheduled_for=model.scheduled_for,
            sent_at=model.sent_at,
            read_at=model.read_at,
            schedule_id=model.schedule_id,
            parent_notification_id=model.parent_notification_id,
            recurrence=RecurrenceConfig.from_dict(model.recurrence)
            if model.recurrence
            else None,
            is_recurring=model.is_recurring,
            recurring_active=model.recurring_active,
            recurring_instance=model.recurring_instance,
            reschedule_history=[
                RescheduleHistoryEntry.from_dict(entry)
                for entry in model.reschedule_history or []
            ],
            idempotency_key=model.idempotency_key,
            entity_id=model.id,
            created_at=model.created_at,
        )
        notification.updated_at = model.updated_at
        return notification


__all__ = ["NotificationRepository"]
