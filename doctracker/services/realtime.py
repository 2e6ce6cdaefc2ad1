"""In-process live channel: pushes newly inserted notifications to the
connected clients of their recipient.

Route handlers that publish run in the threadpool, so publication hands the
event over to each subscriber's event loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import json
import threading
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator
from uuid import UUID

from doctracker.core.logging_setup import logger


@dataclass(eq=False)
class LiveSubscription:
    recipient_id: UUID
    loop: asyncio.AbstractEventLoop
    queue: asyncio.Queue = field(repr=False)
    dropped: int = 0

    def offer(self, event: dict[str, Any]) -> None:
        # must run on ``self.loop``
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
            logger.warning("Live queue full for %s, dropped oldest event", self.recipient_id)
        self.queue.put_nowait(event)


class NotificationBroker:
    def __init__(self, max_queue_size: int = 100) -> None:
        self.max_queue_size = max_queue_size
        self._lock = threading.Lock()
        self._subscriptions: dict[UUID, set[LiveSubscription]] = defaultdict(set)

    @asynccontextmanager
    async def subscribe(self, recipient_id: UUID) -> AsyncIterator[LiveSubscription]:
        subscription = LiveSubscription(
            recipient_id=recipient_id,
            loop=asyncio.get_running_loop(),
            queue=asyncio.Queue(maxsize=self.max_queue_size),
        )
        with self._lock:
            self._subscriptions[recipient_id].add(subscription)
        logger.info("Live channel opened for %s", recipient_id)
        try:
            yield subscription
        finally:
            with self._lock:
                bucket = self._subscriptions.get(recipient_id)
                if bucket is not None:
                    bucket.discard(subscription)
                    if not bucket:
                        del self._subscriptions[recipient_id]
            logger.info("Live channel closed for %s", recipient_id)

    def subscriber_count(self, recipient_id: UUID | None = None) -> int:
        with self._lock:
            if recipient_id is not None:
                return len(self._subscriptions.get(recipient_id, ()))
            return sum(len(bucket) for bucket in self._subscriptions.values())

    def publish(self, recipient_id: UUID, event: dict[str, Any]) -> int:
        """Delivers ``event`` to every open subscription of ``recipient_id``."""
        with self._lock:
            targets = list(self._subscriptions.get(recipient_id, ()))

        delivered = 0
        for subscription in targets:
            try:
                subscription.loop.call_soon_threadsafe(subscription.offer, event)
            except RuntimeError:
                logger.warning("Live subscription for %s has a closed loop", recipient_id)
                continue
            delivered += 1
        return delivered


def format_sse(event: dict[str, Any], *, event_name: str = "notification") -> str:
    lines = []
    if event.get("id"):
        lines.append(f"id: {event['id']}")
    lines.append(f"event: {event_name}")
    lines.append(f"data: {json.dumps(event, separators=(',', ':'))}")
    return "\n".join(lines) + "\n\n"
