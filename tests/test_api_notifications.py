import json
import uuid
from functools import partial

import anyio
import pytest
from fastapi import status
from sqlmodel import select

from doctracker.core.config import settings
from doctracker.models.notification import Notification, NotificationType, PushSubscription
from doctracker.models.user import UserRole

API = settings.api_v1_str
SUBSCRIPTION = {
    "endpoint": "https://push.example/send/abc",
    "keys": {"p256dh": "BNcRdreALRFXTkOOUHK1EtK2wtaz5Ry4YfYCA_0QTpQtUbVlUls0VJXg7A8u-Ts1XbjhazAkj7I99e8QcYP7DkM", "auth": "tBHItJI5svbpez7KI4CCXg"},
    "user_agent": "pytest",
}


def _seed(session, user, count, read=False):
    rows = [
        Notification(
            recipient_id=user.id,
            title=f"Notice {index}",
            message="Something happened",
            type=NotificationType.DOCUMENT_CREATED,
            read=read,
        )
        for index in range(count)
    ]
    session.add_all(rows)
    session.commit()
    return [str(row.id) for row in rows]


def _create_document(client, headers):
    data = {
        "name": "Budget Request",
        "requires_admin_approval": "false",
        "signatories": json.dumps([{"name": "Treasurer"}]),
    }
    return client.post(f"{API}/documents", headers=headers, data=data)


def test_notification_endpoints(client, app_session, make_user, headers_for):
    alice = make_user(app_session, "Alice")
    bob = make_user(app_session, "Bob")
    ids = _seed(app_session, alice, 3)
    (bob_notification,) = _seed(app_session, bob, 1)
    headers = headers_for(alice)

    listing = client.get(f"{API}/notifications", headers=headers).json()
    assert listing["unread_count"] == 3
    assert sorted(item["id"] for item in listing["items"]) == sorted(ids)
    limited = client.get(f"{API}/notifications", headers=headers, params={"limit": 2}).json()
    assert len(limited["items"]) == 2

    first = client.post(f"{API}/notifications/{ids[0]}/read", headers=headers)
    assert first.status_code == status.HTTP_200_OK
    assert first.json()["read"] is True
    again = client.post(f"{API}/notifications/{ids[0]}/read", headers=headers)
    assert again.json()["read_at"] == first.json()["read_at"]
    assert client.get(f"{API}/notifications/unread-count", headers=headers).json() == {"unread_count": 2}

    foreign = client.post(f"{API}/notifications/{bob_notification}/read", headers=headers)
    assert foreign.status_code == status.HTTP_404_NOT_FOUND
    assert client.delete(f"{API}/notifications/{bob_notification}", headers=headers).status_code == 404
    assert client.delete(f"{API}/notifications/{uuid.uuid4()}", headers=headers).status_code == 404

    removed = client.delete(f"{API}/notifications/{ids[1]}", headers=headers)
    assert removed.json() == {"deleted": 1, "unread_count": 1}

    assert client.post(f"{API}/notifications/read-all", headers=headers).json() == {"updated": 1}
    assert client.post(f"{API}/notifications/read-all", headers=headers).json() == {"updated": 0}

    cleared = client.delete(f"{API}/notifications", headers=headers)
    assert cleared.json() == {"deleted": 2, "unread_count": 0}
    assert client.get(f"{API}/notifications", headers=headers).json() == {"items": [], "unread_count": 0}
    assert client.get(f"{API}/notifications/unread-count", headers=headers_for(bob)).json() == {"unread_count": 1}


def test_push_subscription_endpoints(client, app_session, make_user, headers_for):
    alice = make_user(app_session, "Alice")
    headers = headers_for(alice)

    key = client.get(f"{API}/notifications/push/public-key", headers=headers)
    assert key.json() == {"public_key": None, "enabled": False}

    first = client.post(f"{API}/notifications/push/subscriptions", headers=headers, json=SUBSCRIPTION)
    assert first.status_code == status.HTTP_201_CREATED, first.json()
    renewed = dict(SUBSCRIPTION, keys={"p256dh": "new-key", "auth": "new-auth"})
    second = client.post(f"{API}/notifications/push/subscriptions", headers=headers, json=renewed)
    assert second.json()["id"] == first.json()["id"]

    rows = app_session.exec(select(PushSubscription).where(PushSubscription.user_id == alice.id)).all()
    assert [(row.p256dh, row.auth) for row in rows] == [("new-key", "new-auth")]

    url = f"{API}/notifications/push/subscriptions"
    body = {"endpoint": SUBSCRIPTION["endpoint"]}
    assert client.request("DELETE", url, headers=headers, json=body).status_code == status.HTTP_204_NO_CONTENT
    assert client.request("DELETE", url, headers=headers, json=body).status_code == status.HTTP_404_NOT_FOUND


def test_broadcast_is_admin_only(client, app_session, make_user, headers_for):
    alice = make_user(app_session, "Alice")
    bob = make_user(app_session, "Bob")
    carol = make_user(app_session, "Carol", UserRole.ADMIN)
    url = f"{API}/notifications/broadcast"
    body = {"title": "Club meeting", "message": "General assembly on Friday"}

    assert client.post(url, headers=headers_for(alice), json=body).status_code == status.HTTP_403_FORBIDDEN

    everyone = client.post(url, headers=headers_for(carol), json=body)
    assert everyone.status_code == status.HTTP_201_CREATED
    assert everyone.json() == {"created": 3}

    direct = client.post(url, headers=headers_for(carol), json={**body, "recipient_id": str(bob.id)})
    assert direct.json() == {"created": 1}

    missing = client.post(url, headers=headers_for(carol), json={**body, "recipient_id": str(uuid.uuid4())})
    assert missing.status_code == status.HTTP_404_NOT_FOUND

    unknown_document = client.post(url, headers=headers_for(carol), json={**body, "document_id": str(uuid.uuid4())})
    assert unknown_document.status_code == status.HTTP_404_NOT_FOUND
    assert unknown_document.json()["detail"] == "Document not found"

    inbox = client.get(f"{API}/notifications", headers=headers_for(bob)).json()
    assert inbox["unread_count"] == 2
    assert {item["type"] for item in inbox["items"]} == {"admin_approval"}
    assert inbox["items"][0]["payload"]["sender"] == "Carol"


def test_stream_requires_a_valid_token(client):
    url = f"{API}/notifications/stream"

    assert client.get(url).status_code == status.HTTP_401_UNAUTHORIZED
    assert client.get(url, params={"access_token": "not-a-token"}).status_code == status.HTTP_401_UNAUTHORIZED


async def _open_stream(app, headers, chunks, stop):
    """Drives the stream endpoint over ASGI until ``stop`` is set."""
    scope = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": f"{API}/notifications/stream",
        "raw_path": f"{API}/notifications/stream".encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver"), (b"authorization", headers["Authorization"].encode())],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    request_sent = False

    async def receive():
        nonlocal request_sent
        if not request_sent:
            request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await stop.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        if message["type"] == "http.response.body":
            chunks.append(message.get("body", b"").decode())

    await app(scope, receive, send)


async def _wait_until(predicate):
    with anyio.fail_after(5):
        while not predicate():
            await anyio.sleep(0.01)


@pytest.mark.anyio
async def test_stream_delivers_new_notifications_to_their_recipient(client, app_session, make_user, headers_for):
    alice = make_user(app_session, "Alice")
    bob = make_user(app_session, "Bob")
    broker = client.app.state.broker
    alice_chunks, bob_chunks = [], []
    stop = anyio.Event()

    async with anyio.create_task_group() as tg:
        tg.start_soon(_open_stream, client.app, headers_for(alice), alice_chunks, stop)
        tg.start_soon(_open_stream, client.app, headers_for(bob), bob_chunks, stop)
        await _wait_until(lambda: broker.subscriber_count() == 2)

        created = await anyio.to_thread.run_sync(partial(_create_document, client, headers_for(alice)))
        assert created.status_code == status.HTTP_201_CREATED

        await _wait_until(lambda: "event: notification" in "".join(bob_chunks))
        await _wait_until(lambda: ": keep-alive" in "".join(alice_chunks))
        stop.set()

    alice_text, bob_text = "".join(alice_chunks), "".join(bob_chunks)
    assert alice_text.startswith("event: ready")
    assert bob_text.startswith("event: ready")
    assert "event: notification" not in alice_text

    frame = next(block for block in bob_text.split("\n\n") if "event: notification" in block)
    data = json.loads(next(line for line in frame.splitlines() if line.startswith("data: "))[len("data: "):])
    assert data["recipient_id"] == str(bob.id)
    assert data["title"] == "New Document Created"
    assert data["document_id"] == created.json()["id"]
    assert f"id: {data['id']}" in frame
    assert broker.subscriber_count() == 0
