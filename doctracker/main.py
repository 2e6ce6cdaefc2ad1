from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from doctracker.api.routes import auth, documents, health, notifications, users
from doctracker.core.config import Settings, settings as default_settings
from doctracker.core.logging_setup import logger
from doctracker.db.session import build_engine, init_db
from doctracker.services.dispatcher import NotificationDispatcher
from doctracker.services.push import PushDeliveryService
from doctracker.services.realtime import NotificationBroker
from doctracker.services.storage import LocalStorage, get_storage


def _normalize_origin(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = value.strip().rstrip("/")
    return cleaned or None


def _cors_origins(config: Settings) -> list[str]:
    raw_origins = list(config.allowed_origins) + [config.resolved_public_app_url()]
    origins: list[str] = []
    for item in raw_origins:
        normalized = _normalize_origin(item)
        if normalized and normalized not in origins:
            origins.append(normalized)
    return origins


def create_app(config: Settings | None = None) -> FastAPI:
    config = config or default_settings
    engine = build_engine(config.database_url, debug=config.debug)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
        init_db(engine)
        yield
        engine.dispose()

    application = FastAPI(
        title=config.project_name,
        debug=config.debug,
        lifespan=lifespan,
    )

    broker = NotificationBroker()
    push_service = PushDeliveryService(engine, config)
    storage = get_storage(config)

    application.state.config = config
    application.state.engine = engine
    application.state.broker = broker
    application.state.push_service = push_service
    application.state.dispatcher = NotificationDispatcher(broker, push_service)
    application.state.storage = storage

    origins = _cors_origins(config)
    logger.info("CORS origins: %s", origins)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def log_unhandled_errors(request: Request, call_next):  # type: ignore[no-untyped-def]
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(status_code=500, content={"detail": str(exc)})

    application.include_router(health.router, prefix="/health")
    application.include_router(auth.router, prefix=config.api_v1_str)
    application.include_router(users.router, prefix=config.api_v1_str)
    application.include_router(documents.router, prefix=config.api_v1_str)
    application.include_router(notifications.router, prefix=config.api_v1_str)

    if isinstance(storage, LocalStorage):
        application.mount("/files", StaticFiles(directory=storage.base_dir, check_dir=False), name="files")

    @application.get("/")
    def root() -> dict[str, str]:
        return {"service": config.project_name}

    logger.info("%s initialised", config.project_name)
    return application


app = create_app()
