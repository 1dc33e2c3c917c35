"""Notification repository.

Notifications are soft-deleted (status ``deleted``). Expiry is applied by
store triggers when a row is written with a past ``expires_at`` and by the
daily ``batch_update_expired_notifications`` procedure for rows nobody
touched.
"""

import sqlite3
from datetime import timedelta

from school_portal.database import Notification
from school_portal.database.sqlutils import FilterBuilder
from school_portal.errors import ValidationError
from school_portal.validation import NotificationCreate, NotificationFilter, NotificationUpdate

from .base import BaseRepository, logger

EXPIRY_PROCEDURE = "batch_update_expired_notifications"


class NotificationRepository(BaseRepository[Notification]):
    table = "notifications"
    entity = "notification"
    model = Notification
    create_schema = NotificationCreate
    update_schema = NotificationUpdate
    filter_schema = NotificationFilter
    soft_delete_status = "deleted"
    order_by = "notifications.created_at DESC"

    def _apply_filters(self, where: FilterBuilder, params: NotificationFilter) -> None:
        where.equals("notifications.status", params.status)
        where.equals("notifications.priority", params.priority)
        if params.audience:
            where.raw(
                "EXISTS (SELECT 1 FROM json_each(notifications.target_audience) WHERE value = ?)",
                params.audience,
            )
        where.contains(["notifications.title", "notifications.message"], params.search)
        if params.created_from:
            where.raw("notifications.created_at >= ?", params.created_from)
        if params.created_to:
            where.raw("notifications.created_at < ?", params.created_to + timedelta(days=1))

    def _after_update(self, conn: sqlite3.Connection, entity_id: str, schema: NotificationUpdate) -> None:
        # A partial update must still leave expiry after the stored schedule.
        row = self._require(conn, entity_id)
        if row["scheduled_for"] and row["expires_at"] and row["expires_at"] <= row["scheduled_for"]:
            raise ValidationError.single("expires_at", "expiry must be after the scheduled time")

    def expire_overdue(self) -> int:
        """Mark every active notification past its expiry as expired."""
        count = self.db.call_procedure(EXPIRY_PROCEDURE)
        logger.info("Expired overdue notifications", extra={"extra_data": {"count": count}})
        return count
