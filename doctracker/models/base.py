from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_field(*, nullable: bool = True, **kwargs):
    """Timezone-aware timestamp column."""
    return Field(sa_type=DateTime(timezone=True), nullable=nullable, **kwargs)


class TimestampedModel(SQLModel):
    created_at: datetime = timestamp_field(default_factory=utcnow, nullable=False, index=True)
    updated_at: datetime | None = timestamp_field(default=None)


class UUIDModel(SQLModel):
    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
