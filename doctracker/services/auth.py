from uuid import UUID

from sqlmodel import Session, select

from doctracker.core.logging_setup import logger
from doctracker.models.user import User, UserRole
from doctracker.schemas.auth import LoginRequest, RefreshRequest, RegisterRequest, Token
from doctracker.utils.security import (
    TokenType,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)


class AuthService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def register(self, payload: RegisterRequest) -> Token:
        email = str(payload.email).strip().lower()
        existing_user = self.session.exec(select(User).where(User.email == email)).first()
        if existing_user:
            raise ValueError("User already exists")

        # self-service accounts are always members
        user = User(
            email=email,
            full_name=(payload.full_name or "").strip() or email.split("@", 1)[0],
            role=UserRole.MEMBER.value,
            password_hash=get_password_hash(payload.password),
        )
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        logger.info("User %s registered", user.email)

        return self._build_tokens(user)

    def authenticate(self, payload: LoginRequest) -> Token:
        email = str(payload.username).strip().lower()
        user = self.session.exec(select(User).where(User.email == email)).first()

        if not user or not user.is_active:
            raise ValueError("Invalid credentials")

        if not verify_password(payload.password, user.password_hash):
            raise ValueError("Invalid credentials")

        return self._build_tokens(user)

    def refresh(self, payload: RefreshRequest) -> Token:
        token_data = decode_token(payload.refresh_token)
        if token_data.get("token_type") != TokenType.REFRESH.value:
            raise ValueError("Invalid token type")

        user = self.session.get(User, _parse_uuid(token_data.get("sub")))
        if not user or not user.is_active:
            raise ValueError("Invalid token")

        return self._build_tokens(user)

    def _build_tokens(self, user: User) -> Token:
        return Token(
            access_token=create_access_token(str(user.id), {"role": user.role}),
            refresh_token=create_refresh_token(str(user.id)),
        )


def _parse_uuid(value: object) -> UUID:
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid token subject") from exc
