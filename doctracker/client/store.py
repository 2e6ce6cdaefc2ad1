"""Client-side mirror of the signed-in user's notifications.

The store keeps the most recent notifications (newest first) together with an
unread counter. ``reload`` reconciles both with the server; live events and
local actions apply deltas on top of that state.

The server only ever moves a notification from unread to read, so a read flag
seen locally wins over a late live event that still carries ``read: false``.
Live events may be delivered from a ``LiveChannel`` thread; every mutation
holds the store lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping

import httpx

from doctracker.client.api import APIError, DocTrackerAPI

logger = logging.getLogger("doctracker.client")

Listener = Callable[["NotificationStore"], None]


class NotificationStore:
    def __init__(self, api: DocTrackerAPI, *, limit: int = 50) -> None:
        self.api = api
        self.limit = limit
        self.items: list[dict[str, Any]] = []
        self.unread_count = 0
        self.push_subscription: dict[str, Any] | None = None
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()
        self._read_ids: set[str] = set()
        self._removed_ids: set[str] = set()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get(self, notification_id: str) -> dict[str, Any] | None:
        with self._lock:
            index = self._index_of(notification_id)
            return self.items[index] if index is not None else None

    # ======================================================================
    # Server reconciliation
    # ======================================================================

    def reload(self) -> None:
        data = self.api.list_notifications(limit=self.limit)
        with self._lock:
            self.items = [dict(item) for item in data.get("items", [])][: self.limit]
            self.unread_count = max(0, int(data.get("unread_count", 0)))
            self._read_ids.update(str(item.get("id")) for item in self.items if item.get("read"))
        self._notify()

    def apply_live_event(self, item: Mapping[str, Any]) -> bool:
        """Merges one notification by id; returns whether the store changed."""
        incoming = dict(item)
        key = str(incoming.get("id"))
        with self._lock:
            if key in self._removed_ids:
                return False
            if key in self._read_ids:
                incoming["read"] = True

            index = self._index_of(incoming.get("id"))
            if index is None:
                self.items.insert(0, incoming)
                self.items.sort(key=lambda entry: str(entry.get("created_at") or ""), reverse=True)
                del self.items[self.limit :]
                if not incoming.get("read"):
                    self.unread_count += 1
            else:
                current = self.items[index]
                if current.get("read"):
                    incoming["read"] = True
                if current == incoming:
                    return False
                self.items[index] = incoming
                if not current.get("read") and incoming.get("read"):
                    self._decrement()
            if incoming.get("read"):
                self._read_ids.add(key)
        self._notify()
        return True

    # ======================================================================
    # User actions
    # ======================================================================

    def mark_read(self, notification_id: str) -> None:
        self.api.mark_read(notification_id)
        key = str(notification_id)
        with self._lock:
            self._read_ids.add(key)
            index = self._index_of(key)
            if index is not None:
                if self.items[index].get("read"):
                    return
                self.items[index] = {**self.items[index], "read": True}
                self._decrement()
        if index is None:
            self._sync_unread_count()
        self._notify()

    def mark_all_read(self) -> None:
        self.api.mark_all_read()
        with self._lock:
            self.items = [{**item, "read": True} for item in self.items]
            self._read_ids.update(str(item.get("id")) for item in self.items)
            self.unread_count = 0
        self._notify()

    def delete(self, notification_id: str) -> None:
        response = self.api.delete_notification(notification_id)
        key = str(notification_id)
        with self._lock:
            self._removed_ids.add(key)
            index = self._index_of(key)
            if index is not None:
                removed = self.items.pop(index)
                if not removed.get("read"):
                    self._decrement()
            elif response and "unread_count" in response:
                self.unread_count = max(0, int(response["unread_count"]))
            else:
                return
        self._notify()

    def clear_all(self) -> None:
        self.api.clear_notifications()
        with self._lock:
            self._removed_ids.update(str(item.get("id")) for item in self.items)
            self.items = []
            self.unread_count = 0
        self._notify()

    # ======================================================================
    # Web Push
    # ======================================================================

    def enable_push(self, subscription: Mapping[str, Any]) -> bool:
        """Stores a browser push subscription on the server.

        Failures are reported as a warning and leave the store unchanged.
        """
        try:
            self.api.save_push_subscription(subscription)
        except (APIError, httpx.HTTPError) as exc:
            logger.warning("Failed to set up push notifications: %s", exc)
            return False
        self.push_subscription = dict(subscription)
        self._notify()
        return True

    def disable_push(self) -> bool:
        if not self.push_subscription:
            return False
        try:
            self.api.remove_push_subscription(self.push_subscription["endpoint"])
        except (APIError, httpx.HTTPError) as exc:
            logger.warning("Failed to remove push subscription: %s", exc)
            return False
        self.push_subscription = None
        self._notify()
        return True

    def _sync_unread_count(self) -> None:
        count = self.api.unread_count()
        with self._lock:
            self.unread_count = max(0, int(count))

    def _index_of(self, notification_id: Any) -> int | None:
        if notification_id is None:
            return None
        key = str(notification_id)
        for index, item in enumerate(self.items):
            if str(item.get("id")) == key:
                return index
        return None

    def _decrement(self) -> None:
        self.unread_count = max(0, self.unread_count - 1)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Notification store listener failed")
