from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from doctracker.models.notification import NotificationType
from doctracker.schemas.common import IDModel, Timestamped


class NotificationRead(IDModel, Timestamped):
    recipient_id: UUID
    document_id: UUID | None = None
    title: str
    message: str
    type: NotificationType
    payload: dict[str, Any] | None = None
    read: bool
    read_at: datetime | None = None


class NotificationList(BaseModel):
    items: list[NotificationRead]
    unread_count: int


class NotificationMarkAllResponse(BaseModel):
    updated: int


class NotificationDeleteResponse(BaseModel):
    deleted: int
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class BroadcastRequest(BaseModel):
    title: str
    message: str
    type: NotificationType = NotificationType.ADMIN_APPROVAL
    recipient_id: UUID | None = None
    document_id: UUID | None = None
    payload: dict[str, Any] | None = None


class BroadcastResponse(BaseModel):
    created: int


# -------------------------------------------------------------------------
# Web Push
# -------------------------------------------------------------------------

class PushKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionCreate(BaseModel):
    endpoint: str
    keys: PushKeys
    user_agent: str | None = Field(default=None, max_length=255)


class PushSubscriptionDelete(BaseModel):
    endpoint: str


class PushSubscriptionRead(IDModel, Timestamped):
    user_id: UUID
    endpoint: str


class PushPublicKey(BaseModel):
    public_key: str | None = None
    enabled: bool = False
