import os
from typing import Any, Generator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from doctracker.core.logging_setup import logger


def build_engine(database_url: str, *, debug: bool = False) -> Engine:
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    elif database_url.startswith("postgresql"):
        client_encoding = os.getenv("POSTGRES_CLIENT_ENCODING", "UTF8")
        connect_args["options"] = f"-c client_encoding={client_encoding}"

    engine = create_engine(
        database_url,
        echo=debug,
        connect_args=connect_args,
    )

    if database_url.startswith("sqlite"):
        # SET NULL / CASCADE rules are only honoured with foreign keys on
        @event.listens_for(engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    import doctracker.db.base  # noqa: F401

    SQLModel.metadata.create_all(bind=engine)
    logger.info("Database schema ready")


def session_scope(engine: Engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
