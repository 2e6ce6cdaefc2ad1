from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete
from sqlmodel import Session, func, select

from doctracker.core.config import settings
from doctracker.models.base import utcnow
from doctracker.models.notification import Notification


class NotificationNotFoundError(LookupError):
    pass


class UserNotificationService:
    def __init__(self, session: Session, *, max_limit: int | None = None) -> None:
        self.session = session
        self.max_limit = max_limit or settings.notification_list_limit

    def list_recent(
        self,
        *,
        recipient_id: UUID,
        limit: int | None = None,
        only_unread: bool = False,
    ) -> tuple[list[Notification], int]:
        effective_limit = max(1, min(limit or self.max_limit, self.max_limit))
        query = (
            select(Notification)
            .where(Notification.recipient_id == recipient_id)
            .order_by(Notification.created_at.desc())
            .limit(effective_limit)
        )
        if only_unread:
            query = query.where(Notification.read.is_(False))

        items = list(self.session.exec(query).all())
        return items, self.unread_count(recipient_id=recipient_id)

    def unread_count(self, *, recipient_id: UUID) -> int:
        unread_query = (
            select(func.count())
            .select_from(Notification)
            .where(Notification.recipient_id == recipient_id)
            .where(Notification.read.is_(False))
        )
        return int(self.session.exec(unread_query).one() or 0)

    def get(self, *, recipient_id: UUID, notification_id: UUID) -> Notification:
        notification = self.session.get(Notification, notification_id)
        if not notification or notification.recipient_id != recipient_id:
            raise NotificationNotFoundError("Notification not found")
        return notification

    def mark_as_read(self, *, recipient_id: UUID, notification_id: UUID) -> Notification:
        notification = self.get(recipient_id=recipient_id, notification_id=notification_id)
        if not notification.read:
            now = utcnow()
            notification.read = True
            notification.read_at = now
            notification.updated_at = now
            self.session.add(notification)
            self.session.commit()
            self.session.refresh(notification)
        return notification

    def mark_all_as_read(self, *, recipient_id: UUID) -> int:
        unread = self.session.exec(
            select(Notification)
            .where(Notification.recipient_id == recipient_id)
            .where(Notification.read.is_(False))
        ).all()
        if not unread:
            return 0
        now = utcnow()
        for item in unread:
            item.read = True
            item.read_at = now
            item.updated_at = now
            self.session.add(item)
        self.session.commit()
        return len(unread)

    def delete(self, *, recipient_id: UUID, notification_id: UUID) -> bool:
        """Removes one notification; returns whether it was still unread."""
        notification = self.get(recipient_id=recipient_id, notification_id=notification_id)
        was_unread = not notification.read
        self.session.delete(notification)
        self.session.commit()
        return was_unread

    def delete_all(self, *, recipient_id: UUID) -> int:
        result = self.session.exec(delete(Notification).where(Notification.recipient_id == recipient_id))
        self.session.commit()
        return int(result.rowcount or 0)
