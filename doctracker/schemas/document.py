from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from doctracker.models.document import ApprovalState, DocumentStatus
from doctracker.schemas.common import IDModel, Timestamped


# -------------------------------------------------------------------------
# Signatories
# -------------------------------------------------------------------------

class SignatoryCreate(BaseModel):
    name: str
    position: str | None = None
    email: EmailStr | None = None
    phone: str | None = None

    @field_validator("email", "position", "phone", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SignatoryRead(IDModel, Timestamped):
    document_id: UUID
    name: str
    position: str | None = None
    email: str | None = None
    phone: str | None = None
    is_signed: bool
    signed_at: datetime | None = None
    notes: str | None = None
    order_index: int


class SignatoryUpdate(BaseModel):
    is_signed: bool
    notes: str | None = None


# -------------------------------------------------------------------------
# Documents
# -------------------------------------------------------------------------

class DocumentCreate(BaseModel):
    name: str
    description: str | None = None
    requires_admin_approval: bool = False
    signatories: list[SignatoryCreate] = Field(default_factory=list)


class DocumentRead(IDModel, Timestamped):
    name: str
    description: str | None = None
    file_url: str | None = None
    file_name: str | None = None
    created_by_id: UUID
    requires_admin_approval: bool
    approval: ApprovalState
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    status: DocumentStatus


class DocumentSummary(DocumentRead):
    creator_name: str | None = None
    signatory_count: int = 0
    signed_count: int = 0
    progress: int = 0


class DocumentCounts(BaseModel):
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    rejected: int = 0


class DocumentList(BaseModel):
    items: list[DocumentSummary]
    counts: DocumentCounts


class ApprovalRequest(BaseModel):
    decision: ApprovalState


# -------------------------------------------------------------------------
# Comments / activity
# -------------------------------------------------------------------------

class CommentCreate(BaseModel):
    comment: str


class CommentRead(IDModel, Timestamped):
    document_id: UUID
    user_id: UUID
    comment: str
    author_name: str | None = None


class ActivityRead(IDModel):
    document_id: UUID
    user_id: UUID | None = None
    user_name: str | None = None
    action: str
    description: str | None = None
    details: dict[str, Any] | None = None
    created_at: datetime


class DocumentDetail(DocumentSummary):
    is_locked: bool = False
    signatories: list[SignatoryRead] = Field(default_factory=list)
    comments: list[CommentRead] = Field(default_factory=list)
    activity: list[ActivityRead] = Field(default_factory=list)
