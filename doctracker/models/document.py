from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import Field, Relationship

from doctracker.models.base import TimestampedModel, UUIDModel, timestamp_field, utcnow
from doctracker.models.user import User


class DocumentStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ApprovalState(str, Enum):
    UNREVIEWED = "unreviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class Document(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "documents"

    name: str = Field(max_length=255)
    description: str | None = Field(default=None)
    file_url: str | None = Field(default=None, max_length=500)
    file_name: str | None = Field(default=None, max_length=255)
    storage_path: str | None = Field(default=None, max_length=500)
    created_by_id: UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    requires_admin_approval: bool = Field(default=False)
    approval: ApprovalState = Field(default=ApprovalState.UNREVIEWED)
    approved_by_id: UUID | None = Field(default=None, foreign_key="users.id")
    approved_at: datetime | None = timestamp_field(default=None)
    status: DocumentStatus = Field(default=DocumentStatus.PENDING, index=True)

    created_by: User = Relationship(sa_relationship_kwargs={"foreign_keys": "Document.created_by_id"})
    signatories: List["DocumentSignatory"] = Relationship(
        back_populates="document",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "order_by": "DocumentSignatory.order_index",
        },
    )
    comments: List["DocumentComment"] = Relationship(
        back_populates="document",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    activity: List["DocumentActivity"] = Relationship(
        back_populates="document",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )

    @property
    def is_locked(self) -> bool:
        """Signatures can only be collected once a required approval is granted."""
        return self.requires_admin_approval and self.approval != ApprovalState.APPROVED


class DocumentSignatory(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "document_signatories"

    document_id: UUID = Field(foreign_key="documents.id", index=True, ondelete="CASCADE")
    name: str = Field(max_length=255)
    position: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=50)
    is_signed: bool = Field(default=False)
    signed_at: datetime | None = timestamp_field(default=None)
    notes: str | None = Field(default=None)
    order_index: int = Field(default=0)

    document: Optional[Document] = Relationship(back_populates="signatories")


class DocumentComment(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "document_comments"

    document_id: UUID = Field(foreign_key="documents.id", index=True, ondelete="CASCADE")
    user_id: UUID = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    comment: str

    document: Optional[Document] = Relationship(back_populates="comments")
    user: Optional[User] = Relationship()


class DocumentActivity(UUIDModel, table=True):
    __tablename__ = "document_activity"

    document_id: UUID = Field(foreign_key="documents.id", index=True, ondelete="CASCADE")
    user_id: UUID | None = Field(default=None, foreign_key="users.id")
    action: str = Field(max_length=100)
    description: str | None = Field(default=None)
    details: dict | None = Field(default=None, sa_type=JSON)
    created_at: datetime = timestamp_field(default_factory=utcnow, nullable=False)

    document: Optional[Document] = Relationship(back_populates="activity")
    user: Optional[User] = Relationship()
