from pydantic import BaseModel

from doctracker.models.user import UserRole
from doctracker.schemas.common import IDModel, Timestamped


class UserRead(IDModel, Timestamped):
    email: str
    full_name: str
    role: UserRole
    is_active: bool


class UserSelfUpdate(BaseModel):
    full_name: str | None = None
    password: str | None = None


class UserRoleUpdate(BaseModel):
    role: UserRole
