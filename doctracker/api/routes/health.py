from fastapi import APIRouter, Request
from sqlalchemy import text

from doctracker.core.logging_setup import logger

router = APIRouter(tags=["health"])


@router.get("/live")
def live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
def ready(request: Request) -> dict[str, object]:
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Database not ready: %s", exc)
        return {"status": "unavailable"}
    return {"status": "ready", "live_subscribers": request.app.state.broker.subscriber_count()}
