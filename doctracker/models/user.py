from enum import Enum

from sqlmodel import Field

from doctracker.models.base import TimestampedModel, UUIDModel


class UserRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class User(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "users"

    email: str = Field(index=True, unique=True, max_length=255)
    full_name: str = Field(max_length=255)
    role: str = Field(default=UserRole.MEMBER.value, max_length=20)
    password_hash: str
    is_active: bool = Field(default=True)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value
