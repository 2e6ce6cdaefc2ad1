from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from doctracker.core.config import Settings
from doctracker.db.session import build_engine, init_db
from doctracker.main import create_app
from doctracker.models.user import User, UserRole
from doctracker.services.storage import LocalStorage
from doctracker.services.user import UserService
from doctracker.utils.security import create_access_token


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / f'test_{uuid.uuid4().hex}.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session(engine) -> Session:
    with Session(engine) as session:
        yield session


@pytest.fixture()
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(base_dir=tmp_path / "storage", base_url="http://testserver")


@pytest.fixture()
def app_settings(tmp_path, monkeypatch) -> Settings:
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir(exist_ok=True)
    monkeypatch.setenv("DOCTRACKER_STORAGE", str(storage_dir))
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        public_base_url="http://testserver",
        vapid_public_key=None,
        vapid_private_key=None,
        live_heartbeat_seconds=0.05,
    )


@pytest.fixture()
def app(app_settings):
    return create_app(app_settings)


@pytest.fixture()
def client(app) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def app_session(client) -> Session:
    with Session(client.app.state.engine) as session:
        yield session


@pytest.fixture()
def make_user():
    def factory(session: Session, name: str, role: UserRole = UserRole.MEMBER) -> User:
        return UserService(session).create_user(
            email=f"{name.lower()}_{uuid.uuid4().hex[:6]}@example.com",
            full_name=name,
            password="secret123",
            role=role,
        )

    return factory


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(str(user.id), {"role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers_for():
    return auth_headers
