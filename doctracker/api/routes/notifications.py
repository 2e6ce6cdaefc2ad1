from __future__ import annotations

import asyncio
from typing import AsyncIterator
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import StreamingResponse
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from doctracker.api.deps import (
    get_broker,
    get_config,
    get_current_user,
    get_db,
    get_dispatcher,
    require_roles,
    resolve_user,
)
from doctracker.core.config import Settings
from doctracker.core.logging_setup import logger
from doctracker.models.document import Document
from doctracker.models.notification import Notification
from doctracker.models.user import User, UserRole
from doctracker.schemas.notification import (
    BroadcastRequest,
    BroadcastResponse,
    NotificationDeleteResponse,
    NotificationList,
    NotificationMarkAllResponse,
    NotificationRead,
    PushPublicKey,
    PushSubscriptionCreate,
    PushSubscriptionDelete,
    PushSubscriptionRead,
    UnreadCountResponse,
)
from doctracker.services.dispatcher import NotificationDispatcher
from doctracker.services.fanout import NotificationFanout
from doctracker.services.notifications import NotificationNotFoundError, UserNotificationService
from doctracker.services.push import PushSubscriptionService
from doctracker.services.realtime import NotificationBroker, format_sse

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _service(session: Session, config: Settings) -> UserNotificationService:
    return UserNotificationService(session, max_limit=config.notification_list_limit)


def _to_schema(item: Notification) -> NotificationRead:
    return NotificationRead.model_validate(item)


@router.get("", response_model=NotificationList)
def list_notifications(
    limit: int = Query(default=50, ge=1, le=100),
    only_unread: bool = Query(default=False),
    session: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    current_user: User = Depends(get_current_user),
) -> NotificationList:
    items, unread_count = _service(session, config).list_recent(
        recipient_id=current_user.id,
        limit=limit,
        only_unread=only_unread,
    )
    return NotificationList(items=[_to_schema(item) for item in items], unread_count=unread_count)


@router.get("/unread-count", response_model=UnreadCountResponse)
def unread_count(
    session: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    current_user: User = Depends(get_current_user),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread_count=_service(session, config).unread_count(recipient_id=current_user.id))


@router.post("/read-all", response_model=NotificationMarkAllResponse)
def mark_all_notifications_as_read(
    session: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    current_user: User = Depends(get_current_user),
) -> NotificationMarkAllResponse:
    updated = _service(session, config).mark_all_as_read(recipient_id=current_user.id)
    return NotificationMarkAllResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=NotificationRead)
def mark_notification_as_read(
    notification_id: UUID,
    session: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    current_user: User = Depends(get_current_user),
) -> NotificationRead:
    try:
        updated = _service(session, config).mark_as_read(
            recipient_id=current_user.id,
            notification_id=notification_id,
        )
    except NotificationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found") from exc
    return _to_schema(updated)


@router.delete("", response_model=NotificationDeleteResponse)
def delete_all_notifications(
    session: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    current_user: User = Depends(get_current_user),
) -> NotificationDeleteResponse:
    deleted = _service(session, config).delete_all(recipient_id=current_user.id)
    return NotificationDeleteResponse(deleted=deleted, unread_count=0)


@router.delete("/{notification_id}", response_model=NotificationDeleteResponse)
def delete_notification(
    notification_id: UUID,
    session: Session = Depends(get_db),
    config: Settings = Depends(get_config),
    current_user: User = Depends(get_current_user),
) -> NotificationDeleteResponse:
    service = _service(session, config)
    try:
        service.delete(recipient_id=current_user.id, notification_id=notification_id)
    except NotificationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found") from exc
    return NotificationDeleteResponse(deleted=1, unread_count=service.unread_count(recipient_id=current_user.id))


# -------------------------------------------------------------------------
# Live channel
# -------------------------------------------------------------------------

def _stream_token(request: Request, access_token: str | None) -> str:
    header = request.headers.get("authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()
    if access_token:
        return access_token
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _authenticate_stream(engine, token: str) -> UUID:  # type: ignore[no-untyped-def]
    # short-lived session: the stream may stay open for hours
    with Session(engine) as session:
        return resolve_user(session, token).id


@router.get("/stream")
async def stream_notifications(
    request: Request,
    access_token: str | None = Query(default=None),
    broker: NotificationBroker = Depends(get_broker),
    config: Settings = Depends(get_config),
) -> StreamingResponse:
    token = _stream_token(request, access_token)
    user_id = await run_in_threadpool(_authenticate_stream, request.app.state.engine, token)
    heartbeat = config.live_heartbeat_seconds

    async def event_stream() -> AsyncIterator[str]:
        async with broker.subscribe(user_id) as subscription:
            yield format_sse({"recipient_id": str(user_id)}, event_name="ready")
            while True:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=heartbeat)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield format_sse(event)

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


# -------------------------------------------------------------------------
# Web Push
# -------------------------------------------------------------------------

@router.get("/push/public-key", response_model=PushPublicKey)
def push_public_key(
    config: Settings = Depends(get_config),
    current_user: User = Depends(get_current_user),
) -> PushPublicKey:
    return PushPublicKey(public_key=config.vapid_public_key, enabled=config.push_enabled())


@router.post("/push/subscriptions", response_model=PushSubscriptionRead, status_code=status.HTTP_201_CREATED)
def subscribe_push(
    payload: PushSubscriptionCreate,
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PushSubscriptionRead:
    subscription = PushSubscriptionService(session).upsert(
        user_id=current_user.id,
        endpoint=payload.endpoint,
        p256dh=payload.keys.p256dh,
        auth=payload.keys.auth,
        user_agent=payload.user_agent,
    )
    logger.info("Push subscription stored for %s", current_user.email)
    return PushSubscriptionRead.model_validate(subscription)


@router.delete("/push/subscriptions", status_code=status.HTTP_204_NO_CONTENT)
def unsubscribe_push(
    payload: PushSubscriptionDelete,
    session: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    removed = PushSubscriptionService(session).remove(user_id=current_user.id, endpoint=payload.endpoint)
    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subscription not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -------------------------------------------------------------------------
# Administrative notifications
# -------------------------------------------------------------------------

@router.post("/broadcast", response_model=BroadcastResponse, status_code=status.HTTP_201_CREATED)
def broadcast(
    payload: BroadcastRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    current_user: User = Depends(require_roles(UserRole.ADMIN)),
) -> BroadcastResponse:
    fanout = NotificationFanout(session)
    data = dict(payload.payload or {})
    data.setdefault("sender", current_user.full_name)
    if payload.document_id is not None and session.get(Document, payload.document_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    try:
        if payload.recipient_id is not None:
            if session.get(User, payload.recipient_id) is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
            fanout.notify_user(
                payload.recipient_id,
                payload.title,
                payload.message,
                payload.type,
                document_id=payload.document_id,
                data=data,
            )
        else:
            fanout.notify_users(
                payload.title,
                payload.message,
                payload.type,
                document_id=payload.document_id,
                data=data,
            )
        session.commit()
    except Exception:
        session.rollback()
        raise

    dispatcher.dispatch(fanout.created, background_tasks)
    return BroadcastResponse(created=len(fanout.created))
