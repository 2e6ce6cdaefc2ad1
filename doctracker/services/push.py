from __future__ import annotations

import json
from typing import Any, Iterable
from uuid import UUID

from pywebpush import WebPushException, webpush
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from doctracker.core.config import Settings, settings as default_settings
from doctracker.core.logging_setup import logger
from doctracker.models.base import utcnow
from doctracker.models.notification import PushSubscription
from doctracker.schemas.notification import NotificationRead


class PushDeliveryError(RuntimeError):
    pass


class PushGoneError(PushDeliveryError):
    """The push service reported the subscription as expired (404/410)."""


class PushSubscriptionService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def upsert(
        self,
        *,
        user_id: UUID,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: str | None = None,
    ) -> PushSubscription:
        subscription = self.session.exec(
            select(PushSubscription)
            .where(PushSubscription.user_id == user_id)
            .where(PushSubscription.endpoint == endpoint)
        ).first()
        if subscription:
            subscription.p256dh = p256dh
            subscription.auth = auth
            subscription.user_agent = user_agent or subscription.user_agent
            subscription.updated_at = utcnow()
        else:
            subscription = PushSubscription(
                user_id=user_id,
                endpoint=endpoint,
                p256dh=p256dh,
                auth=auth,
                user_agent=user_agent,
            )
        self.session.add(subscription)
        self.session.commit()
        self.session.refresh(subscription)
        return subscription

    def remove(self, *, user_id: UUID, endpoint: str) -> bool:
        subscription = self.session.exec(
            select(PushSubscription)
            .where(PushSubscription.user_id == user_id)
            .where(PushSubscription.endpoint == endpoint)
        ).first()
        if not subscription:
            return False
        self.session.delete(subscription)
        self.session.commit()
        return True

    def list_for_user(self, user_id: UUID) -> list[PushSubscription]:
        return list(
            self.session.exec(select(PushSubscription).where(PushSubscription.user_id == user_id)).all()
        )


class PushDeliveryService:
    """Sends Web Push messages for stored notifications.

    Delivery is at most once: failures are logged and never retried, and a
    subscription the push service reports as gone is deleted.
    """

    def __init__(self, engine: Engine, config: Settings | None = None) -> None:
        self.engine = engine
        self.config = config or default_settings

    @property
    def enabled(self) -> bool:
        return self.config.push_enabled()

    def build_payload(self, notification: NotificationRead) -> dict[str, Any]:
        url = f"/document/{notification.document_id}" if notification.document_id else "/"
        return {
            "title": notification.title,
            "body": notification.message,
            "icon": self.config.push_icon,
            "badge": self.config.push_icon,
            "tag": f"notification-{notification.id}",
            "data": {
                "url": url,
                "notificationId": str(notification.id),
                "documentId": str(notification.document_id) if notification.document_id else None,
                "type": notification.type.value,
            },
            "actions": [],
        }

    def send_many(self, notifications: Iterable[NotificationRead]) -> int:
        delivered = 0
        for notification in notifications:
            delivered += self.send(notification)
        return delivered

    def send(self, notification: NotificationRead) -> int:
        if not self.enabled:
            return 0

        payload_json = json.dumps(self.build_payload(notification))
        delivered = 0
        with Session(self.engine) as session:
            subscriptions = session.exec(
                select(PushSubscription).where(PushSubscription.user_id == notification.recipient_id)
            ).all()
            for subscription in subscriptions:
                endpoint_short = subscription.endpoint[:60]
                try:
                    self._send_push(subscription, payload_json)
                    delivered += 1
                except PushGoneError:
                    logger.info("Removing expired push subscription %s (%s)", subscription.id, endpoint_short)
                    session.delete(subscription)
                except PushDeliveryError as exc:
                    logger.warning("Push delivery failed for %s (%s): %s", subscription.id, endpoint_short, exc)
            session.commit()
        return delivered

    def _send_push(self, subscription: PushSubscription, payload_json: str) -> None:
        subscription_info = {
            "endpoint": subscription.endpoint,
            "keys": {"p256dh": subscription.p256dh, "auth": subscription.auth},
        }
        try:
            webpush(
                subscription_info=subscription_info,
                data=payload_json,
                vapid_private_key=self.config.vapid_private_key,
                vapid_claims={"sub": self.config.vapid_claims_subject},
                ttl=self.config.push_ttl_seconds,
            )
        except WebPushException as exc:
            response = getattr(exc, "response", None)
            if response is not None and response.status_code in (404, 410):
                raise PushGoneError(subscription.endpoint) from exc
            raise PushDeliveryError(str(exc)) from exc
        except Exception as exc:  # network errors from the underlying HTTP client
            raise PushDeliveryError(str(exc)) from exc
