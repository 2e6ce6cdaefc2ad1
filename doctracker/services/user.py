from __future__ import annotations

from typing import Sequence
from uuid import UUID

from sqlmodel import Session, select

from doctracker.core.logging_setup import logger
from doctracker.models.base import utcnow
from doctracker.models.user import User, UserRole
from doctracker.schemas.user import UserSelfUpdate
from doctracker.utils.security import get_password_hash


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_users(self) -> Sequence[User]:
        return self.session.exec(select(User).order_by(User.full_name)).all()

    def get_user(self, user_id: UUID) -> User | None:
        return self.session.get(User, user_id)

    def create_user(
        self,
        *,
        email: str,
        full_name: str,
        password: str,
        role: UserRole = UserRole.MEMBER,
    ) -> User:
        normalized = email.strip().lower()
        if self.session.exec(select(User).where(User.email == normalized)).first():
            raise ValueError("User already exists")
        user = User(
            email=normalized,
            full_name=full_name,
            role=role.value,
            password_hash=get_password_hash(password),
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def update_self(self, user: User, payload: UserSelfUpdate) -> User:
        if payload.full_name is not None:
            cleaned = payload.full_name.strip()
            if not cleaned:
                raise ValueError("Full name cannot be empty")
            user.full_name = cleaned
        if payload.password:
            user.password_hash = get_password_hash(payload.password)
        user.updated_at = utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def set_role(self, actor: User, user_id: UUID, role: UserRole) -> User:
        if actor.id == user_id:
            raise ValueError("Admins cannot change their own role")
        user = self.get_user(user_id)
        if not user:
            raise LookupError("User not found")
        user.role = role.value
        user.updated_at = utcnow()
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info("User %s role set to %s by %s", user.email, role.value, actor.email)
        return user
