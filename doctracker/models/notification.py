from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, UniqueConstraint
from sqlmodel import Field

from doctracker.models.base import TimestampedModel, UUIDModel, timestamp_field


class NotificationType(str, Enum):
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_DELETED = "document_deleted"
    STATUS_UPDATED = "status_updated"
    SIGNATURE_ADDED = "signature_added"
    ADMIN_APPROVAL = "admin_approval"
    COMMENT_ADDED = "comment_added"


class Notification(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "notifications"

    recipient_id: UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    document_id: UUID | None = Field(default=None, foreign_key="documents.id", index=True, ondelete="SET NULL")
    title: str
    message: str
    type: NotificationType = Field(index=True)
    payload: dict | None = Field(default_factory=dict, sa_type=JSON)
    read: bool = Field(default=False, index=True)
    read_at: datetime | None = timestamp_field(default=None)


class PushSubscription(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "push_subscriptions"
    __table_args__ = (UniqueConstraint("user_id", "endpoint", name="uq_push_subscriptions_user_endpoint"),)

    user_id: UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    endpoint: str
    p256dh: str
    auth: str
    user_agent: str | None = Field(default=None, max_length=255)
