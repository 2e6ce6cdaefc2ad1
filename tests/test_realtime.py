import asyncio
import json
import uuid

import anyio
import pytest
from fastapi import BackgroundTasks

from doctracker.models.notification import Notification, NotificationType
from doctracker.services.dispatcher import NotificationDispatcher
from doctracker.services.realtime import NotificationBroker, format_sse


@pytest.mark.anyio
async def test_publish_from_worker_thread_reaches_only_the_recipient():
    broker = NotificationBroker()
    alice, bob = uuid.uuid4(), uuid.uuid4()

    async with broker.subscribe(alice) as alice_sub, broker.subscribe(bob) as bob_sub:
        assert broker.subscriber_count() == 2
        delivered = await anyio.to_thread.run_sync(broker.publish, alice, {"id": "n1"})
        assert delivered == 1

        with anyio.fail_after(1):
            event = await alice_sub.queue.get()
        assert event == {"id": "n1"}
        await asyncio.sleep(0)
        assert bob_sub.queue.empty()

    assert broker.subscriber_count() == 0
    assert broker.subscriber_count(alice) == 0


@pytest.mark.anyio
async def test_publish_without_subscribers_is_a_no_op():
    broker = NotificationBroker()
    assert broker.publish(uuid.uuid4(), {"id": "n1"}) == 0


@pytest.mark.anyio
async def test_full_queue_drops_the_oldest_event():
    broker = NotificationBroker(max_queue_size=2)
    alice = uuid.uuid4()

    async with broker.subscribe(alice) as subscription:
        for index in range(3):
            broker.publish(alice, {"id": f"n{index}"})
        await asyncio.sleep(0)

        assert subscription.dropped == 1
        assert subscription.queue.get_nowait() == {"id": "n1"}
        assert subscription.queue.get_nowait() == {"id": "n2"}


@pytest.mark.anyio
async def test_subscription_is_released_when_the_consumer_fails():
    broker = NotificationBroker()
    alice = uuid.uuid4()

    with pytest.raises(RuntimeError):
        async with broker.subscribe(alice):
            raise RuntimeError("client went away")

    assert broker.subscriber_count(alice) == 0


def test_format_sse_frames_one_event():
    frame = format_sse({"id": "n1", "title": "Hi"})

    lines = frame.split("\n")
    assert lines[0] == "id: n1"
    assert lines[1] == "event: notification"
    assert json.loads(lines[2][len("data: "):]) == {"id": "n1", "title": "Hi"}
    assert frame.endswith("\n\n")


class RecordingBroker:
    def __init__(self):
        self.events = []

    def publish(self, recipient_id, event):
        self.events.append((recipient_id, event))
        return 1


class RecordingPush:
    enabled = True

    def __init__(self):
        self.batches = []

    def send_many(self, notifications):
        self.batches.append(list(notifications))
        return len(notifications)


def _notification(recipient_id):
    return Notification(
        recipient_id=recipient_id,
        title="New Comment",
        message="Bob commented",
        type=NotificationType.COMMENT_ADDED,
    )


def test_dispatcher_publishes_in_order_and_defers_push():
    broker, push = RecordingBroker(), RecordingPush()
    dispatcher = NotificationDispatcher(broker, push)
    alice, bob = uuid.uuid4(), uuid.uuid4()
    tasks = BackgroundTasks()

    snapshots = dispatcher.dispatch([_notification(alice), _notification(bob)], tasks)

    assert [recipient for recipient, _ in broker.events] == [alice, bob]
    assert broker.events[0][1]["recipient_id"] == str(alice)
    assert broker.events[0][1]["type"] == "comment_added"
    assert len(tasks.tasks) == 1
    assert push.batches == []
    assert [item.recipient_id for item in snapshots] == [alice, bob]


def test_dispatcher_without_background_tasks_pushes_inline():
    push = RecordingPush()
    dispatcher = NotificationDispatcher(RecordingBroker(), push)

    dispatcher.dispatch([_notification(uuid.uuid4())])

    assert len(push.batches) == 1


def test_dispatcher_ignores_empty_batches():
    broker, push = RecordingBroker(), RecordingPush()

    assert NotificationDispatcher(broker, push).dispatch([], BackgroundTasks()) == []
    assert broker.events == []
