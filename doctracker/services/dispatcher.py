from __future__ import annotations

from typing import Iterable

from fastapi import BackgroundTasks

from doctracker.core.logging_setup import logger
from doctracker.models.notification import Notification
from doctracker.schemas.notification import NotificationRead
from doctracker.services.push import PushDeliveryService
from doctracker.services.realtime import NotificationBroker


class NotificationDispatcher:
    """Hands committed notifications to the live channel and to Web Push."""

    def __init__(self, broker: NotificationBroker, push_service: PushDeliveryService | None = None) -> None:
        self.broker = broker
        self.push_service = push_service

    def dispatch(
        self,
        notifications: Iterable[Notification],
        background_tasks: BackgroundTasks | None = None,
    ) -> list[NotificationRead]:
        # snapshot while the session that created the rows is still open
        snapshots = [NotificationRead.model_validate(item) for item in notifications]
        if not snapshots:
            return snapshots

        delivered = 0
        for snapshot in snapshots:
            delivered += self.broker.publish(snapshot.recipient_id, snapshot.model_dump(mode="json"))
        logger.info("Dispatched %d notification(s), %d live deliveries", len(snapshots), delivered)

        if self.push_service is not None and self.push_service.enabled:
            if background_tasks is not None:
                background_tasks.add_task(self.push_service.send_many, snapshots)
            else:
                self.push_service.send_many(snapshots)
        return snapshots
