from typing import Annotated, Callable, Generator
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session, select
from starlette.requests import HTTPConnection

from doctracker.core.config import Settings, settings
from doctracker.models.user import User, UserRole
from doctracker.services.dispatcher import NotificationDispatcher
from doctracker.services.realtime import NotificationBroker
from doctracker.services.storage import StorageBackend
from doctracker.utils.security import TokenType, decode_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_v1_str}/auth/token")


def get_db(connection: HTTPConnection) -> Generator[Session, None, None]:
    with Session(connection.app.state.engine) as session:
        yield session


def get_config(connection: HTTPConnection) -> Settings:
    return connection.app.state.config


def get_broker(connection: HTTPConnection) -> NotificationBroker:
    return connection.app.state.broker


def get_dispatcher(connection: HTTPConnection) -> NotificationDispatcher:
    return connection.app.state.dispatcher


def get_storage_backend(connection: HTTPConnection) -> StorageBackend:
    return connection.app.state.storage


def resolve_user(session: Session, token: str) -> User:
    try:
        payload = decode_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    if payload.get("token_type") != TokenType.ACCESS.value:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    try:
        user_id = UUID(str(payload["sub"]))
    except (KeyError, ValueError, TypeError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject") from exc

    user = session.exec(select(User).where(User.id == user_id)).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User inactive")
    return user


def get_current_user(
    token: Annotated[str, Depends(oauth2_scheme)],
    session: Annotated[Session, Depends(get_db)],
) -> User:
    return resolve_user(session, token)


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    allowed = {role.value for role in roles}

    def dependency(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if current_user.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return dependency
